"""
Pytest fixtures for the rollup-probe tests.
"""
import threading
from collections import defaultdict
from typing import Dict, Optional

import pytest
from eth_account import Account
from eth_account.typed_transactions import TypedTransaction
from eth_utils import keccak
from hexbytes import HexBytes
from web3.datastructures import AttributeDict
from web3.exceptions import TransactionNotFound
from web3.providers.rpc import HTTPProvider

from rollup_probe._rate_limited_log import reset_rate_limits
from rollup_probe.accounts import RollupAccount
from rollup_probe.cross_tx import decode_cross_tx
from rollup_probe.rollup import Rollup

# Constants for testing
CHAIN_ID_A = 77777
CHAIN_ID_B = 88888
RPC_URL_A = "http://rollup-a.example.com:8545"
RPC_URL_B = "http://rollup-b.example.com:8545"
TEST_PRIV_KEY_A = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_PRIV_KEY_B = "0x" + "22" * 32
TEST_RECIPIENT = "0x1234567890123456789012345678901234567890"
BLOCK_HASH = HexBytes(b"\xab" * 32)


@pytest.fixture(autouse=True)
def _patch_http_provider(request, monkeypatch):
    """
    Stub every Web3 HTTP call so no DNS / network traffic is triggered.
    Integration tests talk to real nodes and are left alone.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _dummy(self, method, params=None, _=None):
        if method == "eth_chainId":
            return {"jsonrpc": "2.0", "id": 1, "result": "0x1"}
        return {"jsonrpc": "2.0", "id": 1, "result": "0x0"}

    monkeypatch.setattr(HTTPProvider, "make_request", _dummy, raising=True)


@pytest.fixture(autouse=True)
def _reset_rate_limited_log():
    reset_rate_limits()
    yield
    reset_rate_limits()


def _key(tx_hash) -> str:
    if isinstance(tx_hash, (bytes, bytearray)):
        return "0x" + bytes(tx_hash).hex()
    return tx_hash.lower() if tx_hash.startswith("0x") else "0x" + tx_hash.lower()


def decode_raw(raw: bytes) -> Dict:
    """Decode a signed type-2 transaction into its fields."""
    return TypedTransaction.from_bytes(HexBytes(raw)).as_dict()


class FakeEth:
    """
    In-memory stand-in for ``w3.eth`` of one chain.

    Transactions are unknown until mined (or added as pending); a mined
    transaction may report itself pending for a configurable number of polls.
    """

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        self.transactions: Dict[str, AttributeDict] = {}
        self.receipts: Dict[str, AttributeDict] = {}
        self.pending_polls: Dict[str, int] = {}
        self.nonces = defaultdict(int)
        self.balances = defaultdict(lambda: 10 ** 18)
        self.sent = []
        self.get_transaction_calls = 0
        self.receipt_error: Optional[Exception] = None
        self.block_number = 100

    def get_transaction(self, tx_hash):
        self.get_transaction_calls += 1
        key = _key(tx_hash)
        if key not in self.transactions:
            raise TransactionNotFound(f"Transaction with hash: '{key}' not found.")
        if self.pending_polls.get(key, 0) > 0:
            self.pending_polls[key] -= 1
            return AttributeDict({**self.transactions[key], "blockNumber": None, "blockHash": None})
        return self.transactions[key]

    def get_transaction_receipt(self, tx_hash):
        if self.receipt_error is not None:
            raise self.receipt_error
        key = _key(tx_hash)
        if key not in self.receipts:
            raise TransactionNotFound(f"Transaction with hash: '{key}' not found.")
        return self.receipts[key]

    def get_transaction_count(self, address, block_identifier="latest"):
        return self.nonces[address]

    def get_balance(self, address):
        return self.balances[address]

    def mine_raw(self, raw: bytes, status: int = 1, pending_polls: int = 0) -> str:
        """Include a signed transaction, as the coordinator would."""
        fields = decode_raw(raw)
        sender = Account.recover_transaction(raw)
        key = _key(keccak(raw))
        self.block_number += 1
        self.transactions[key] = AttributeDict({
            "hash": HexBytes(key),
            "from": sender,
            "to": fields.get("to"),
            "nonce": fields["nonce"],
            "value": fields["value"],
            "input": HexBytes(fields.get("data", b"")),
            "blockNumber": self.block_number,
            "blockHash": BLOCK_HASH,
        })
        self.receipts[key] = AttributeDict({
            "transactionHash": HexBytes(key),
            "blockNumber": self.block_number,
            "blockHash": BLOCK_HASH,
            "status": status,
            "gasUsed": 21000,
            "from": sender,
            "to": TEST_RECIPIENT,
            "logs": [],
        })
        if pending_polls:
            self.pending_polls[key] = pending_polls
        if status == 1:
            self.nonces[sender] = fields["nonce"] + 1
        return key

    def send_raw_transaction(self, raw):
        self.sent.append(bytes(raw))
        return HexBytes(self.mine_raw(bytes(raw)))


class FakeWeb3:
    def __init__(self, chain_id: int):
        self.eth = FakeEth(chain_id)


class RecordingEvent:
    """Cancel event double that records waits and never blocks."""

    def __init__(self, cancel_after: Optional[int] = None):
        self.waits = []
        self.cancel_after = cancel_after
        self._set = False

    def is_set(self):
        return self._set

    def set(self):
        self._set = True

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if self.cancel_after is not None and len(self.waits) >= self.cancel_after:
            self._set = True
        return self._set


class FakeCoordinator:
    """
    Coordinator double for eth_sendXTransaction.

    Executes both legs of a bundle only if every leg meets its chain's gas
    requirement, carries the sender's next nonce and the sender can afford the
    value; otherwise executes none.
    """

    def __init__(self, chains: Dict[int, FakeWeb3], min_gas: Optional[Dict[int, int]] = None):
        self.chains = chains
        self.min_gas = min_gas or {}
        self.bundles = []
        self._lock = threading.Lock()

    def _leg_ok(self, chain_id: int, raw: bytes) -> bool:
        chain = self.chains.get(chain_id)
        if chain is None:
            return False
        fields = decode_raw(raw)
        if fields["chainId"] != chain_id:
            return False
        if fields["gas"] < self.min_gas.get(chain_id, 21000):
            return False
        sender = Account.recover_transaction(raw)
        if fields["nonce"] != chain.eth.nonces[sender]:
            return False
        return fields["value"] <= chain.eth.balances[sender]

    def __call__(self, request, context):
        body = request.json()
        bundle = decode_cross_tx(body["params"][0])
        legs = [(leg.chain_id, raw) for leg in bundle.legs for raw in leg.transactions]
        with self._lock:
            self.bundles.append(bundle)
            if all(self._leg_ok(chain_id, raw) for chain_id, raw in legs):
                for chain_id, raw in legs:
                    self.chains[chain_id].eth.mine_raw(raw)
        return {"jsonrpc": "2.0", "id": body["id"], "result": None}


@pytest.fixture
def rollup_a():
    return Rollup(rpc_url=RPC_URL_A, chain_id=CHAIN_ID_A, name="rollup-a")


@pytest.fixture
def rollup_b():
    return Rollup(rpc_url=RPC_URL_B, chain_id=CHAIN_ID_B, name="rollup-b")


@pytest.fixture
def chain_a():
    return FakeWeb3(CHAIN_ID_A)


@pytest.fixture
def chain_b():
    return FakeWeb3(CHAIN_ID_B)


@pytest.fixture
def account_a(rollup_a, chain_a):
    return RollupAccount(TEST_PRIV_KEY_A, rollup_a, w3=chain_a)


@pytest.fixture
def account_b(rollup_b, chain_b):
    return RollupAccount(TEST_PRIV_KEY_B, rollup_b, w3=chain_b)


@pytest.fixture
def coordinator(requests_mock, rollup_a, chain_a, chain_b):
    """Fake coordinator listening on rollup A's endpoint."""
    fake = FakeCoordinator({CHAIN_ID_A: chain_a, CHAIN_ID_B: chain_b})
    requests_mock.post(rollup_a.rpc_url, json=fake)
    return fake
