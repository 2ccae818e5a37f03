"""
Helper flows built on the transaction builder, the bundle encoder and the poller.

These are the building blocks of the harness scenarios: plain self transfers,
token mint/approve, funding spawned accounts, and the two-leg bridge call
whose legs share a session id.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3Exception

from .accounts import RollupAccount
from .config import AppConfig, CONTRACT_NAME_BRIDGE, CONTRACT_NAME_PINGPONG, CONTRACT_NAME_TOKEN
from .cross_tx import DEFAULT_SENDER_ID, encode_cross_tx, send_cross_tx_request
from .exceptions import EncodingError
from .models import TransactionDetails
from .poller import ConfirmationOutcome, ConfirmationPoller
from .session import generate_session_id
from .transactions import SignedTransaction, build_transaction, send_transaction

logger = logging.getLogger(__name__)

# Fee settings used for plain value transfers
TRANSFER_GAS = 25000
TRANSFER_TIP_CAP = 1_000_000
TRANSFER_FEE_CAP = 2_000_000

# Fee settings used for contract calls
CALL_GAS = 900000
CALL_TIP_CAP = 1_000_000_000
CALL_FEE_CAP = 20_000_000_000

MAX_UINT256 = 2 ** 256 - 1

DEFAULT_PING_DATA = b"Hello from rollup A"
DEFAULT_PONG_DATA = b"Hello from rollup B"

_abi_codec = Web3()


def encode_call(abi: List[Dict[str, Any]], fn_name: str, *args: Any) -> bytes:
    """
    ABI-encode a contract call.

    Args:
        abi: Contract ABI
        fn_name: Function name
        *args: Call arguments

    Returns:
        Call data (selector + encoded arguments)

    Raises:
        EncodingError: If the arguments do not match the ABI
    """
    contract = _abi_codec.eth.contract(abi=abi)
    try:
        return bytes(HexBytes(contract.encode_abi(fn_name, args=list(args))))
    except (Web3Exception, ValueError, TypeError, AttributeError) as e:
        raise EncodingError(f"failed to encode {fn_name} call: {e}") from e


def call_details(to: str, data: bytes, gas: int = CALL_GAS, value: int = 0) -> TransactionDetails:
    return TransactionDetails(
        to=to,
        value=value,
        data=data,
        gas=gas,
        max_priority_fee_per_gas=CALL_TIP_CAP,
        max_fee_per_gas=CALL_FEE_CAP,
    )


def self_transfer_details(account: RollupAccount, amount: int) -> TransactionDetails:
    """Value transfer from the account to itself."""
    return TransactionDetails(
        to=account.address,
        value=amount,
        gas=TRANSFER_GAS,
        max_priority_fee_per_gas=TRANSFER_TIP_CAP,
        max_fee_per_gas=TRANSFER_FEE_CAP,
    )


def send_and_confirm(
    signed: SignedTransaction,
    account: RollupAccount,
    cancel_event: Optional[threading.Event] = None,
    **poller_kwargs: Any
) -> ConfirmationOutcome:
    """
    Broadcast a standalone transaction and wait for a successful receipt.

    Raises:
        TransactionError: If sending fails
        TransactionFailedError: If the receipt reports failure
        NotObservedError: If the transaction never reaches the chain
    """
    tx_hash = send_transaction(signed, account.rollup, w3=account.w3)
    poller = ConfirmationPoller(account.rollup, w3=account.w3, **poller_kwargs)
    return poller.poll(tx_hash, cancel_event=cancel_event).raise_for_status()


def send_self_move_balance_tx(
    account: RollupAccount,
    amount: int,
    nonce: Optional[int] = None
) -> Tuple[SignedTransaction, str]:
    """
    Send a standalone self transfer without waiting for it.

    Returns:
        (signed transaction, hash)
    """
    signed = build_transaction(self_transfer_details(account, amount), account, nonce=nonce)
    tx_hash = send_transaction(signed, account.rollup, w3=account.w3)
    logger.info(f"Self move balance transaction sent successfully: {tx_hash}")
    return signed, tx_hash


def send_mint_tx(
    account: RollupAccount,
    amount: int,
    token_address: str,
    token_abi: List[Dict[str, Any]],
    **poller_kwargs: Any
) -> ConfirmationOutcome:
    """Mint tokens to the account and wait for success."""
    data = encode_call(token_abi, "mint", account.address, amount)
    signed = build_transaction(call_details(token_address, data), account)
    outcome = send_and_confirm(signed, account, **poller_kwargs)
    logger.info(f"Mint transaction executed successfully: {signed.hash_hex}")
    return outcome


def approve_tokens(
    account: RollupAccount,
    spender: str,
    token_address: str,
    token_abi: List[Dict[str, Any]],
    amount: int = MAX_UINT256,
    **poller_kwargs: Any
) -> ConfirmationOutcome:
    """Approve spender (max uint256 by default) and wait for success."""
    logger.info(f"Approving tokens on rollup {account.rollup.name} for {account.address} on {spender} ...")
    data = encode_call(token_abi, "approve", Web3.to_checksum_address(spender), amount)
    signed = build_transaction(call_details(token_address, data), account)
    outcome = send_and_confirm(signed, account, **poller_kwargs)
    logger.info(f"Approve transaction executed successfully: {signed.hash_hex}")
    return outcome


def distribute_eth(
    sponsor: RollupAccount,
    recipients: Sequence[RollupAccount],
    amount: int,
    **poller_kwargs: Any
) -> List[ConfirmationOutcome]:
    """
    Fund several accounts from one sponsor, one confirmed transfer at a time.

    Nonces are fetched once and incremented locally.

    Raises:
        TransactionFailedError: If a transfer is mined with failure status
    """
    nonce = sponsor.get_nonce()
    outcomes = []
    for recipient in recipients:
        details = TransactionDetails(
            to=recipient.address,
            value=amount,
            gas=TRANSFER_GAS,
            max_priority_fee_per_gas=TRANSFER_TIP_CAP,
            max_fee_per_gas=TRANSFER_FEE_CAP,
        )
        signed = build_transaction(details, sponsor, nonce=nonce)
        outcomes.append(send_and_confirm(signed, sponsor, **poller_kwargs))
        nonce += 1
    return outcomes


def send_cross_tx(
    account_a: RollupAccount,
    details_a: TransactionDetails,
    account_b: RollupAccount,
    details_b: TransactionDetails,
    nonce_a: Optional[int] = None,
    nonce_b: Optional[int] = None,
    coordinator_url: Optional[str] = None,
    sender_id: str = DEFAULT_SENDER_ID,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[SignedTransaction, SignedTransaction]:
    """
    Build one leg per chain, bundle them and submit the bundle.

    The legs are never broadcast individually. The bundle goes to chain A's
    endpoint unless coordinator_url is given.

    Returns:
        (signed leg A, signed leg B)
    """
    signed_a = build_transaction(details_a, account_a, nonce=nonce_a, cancel_event=cancel_event)
    signed_b = build_transaction(details_b, account_b, nonce=nonce_b, cancel_event=cancel_event)

    encoded = encode_cross_tx((account_a.rollup, signed_a), (account_b.rollup, signed_b), sender_id=sender_id)
    send_cross_tx_request(coordinator_url or account_a.rollup.rpc_url, encoded, cancel_event=cancel_event)

    logger.info(f"Cross tx leg A sent successfully: {signed_a.hash_hex}")
    logger.info(f"Cross tx leg B sent successfully: {signed_b.hash_hex}")
    return signed_a, signed_b


def send_bridge_tx(
    config: AppConfig,
    account_a: RollupAccount,
    account_b: RollupAccount,
    amount: int,
    nonce_a: Optional[int] = None,
    nonce_b: Optional[int] = None,
    gas_b: int = CALL_GAS,
    session_id: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[SignedTransaction, SignedTransaction]:
    """
    Bridge tokens from account_a's chain to account_b's chain.

    Leg A calls ``send`` on the source bridge, leg B calls ``receiveTokens``
    on the destination bridge; both carry the same session id.

    Args:
        config: Harness configuration (bridge and token contracts)
        account_a: Sender on the source chain
        account_b: Receiver on the destination chain
        amount: Token amount
        nonce_a: Explicit nonce for leg A
        nonce_b: Explicit nonce for leg B
        gas_b: Gas limit of leg B (lower it to force an out-of-gas leg)
        session_id: Correlation id; generated when omitted
        cancel_event: Optional cancellation event

    Returns:
        (signed leg A, signed leg B)
    """
    bridge = config.contract(CONTRACT_NAME_BRIDGE)
    token = config.contract(CONTRACT_NAME_TOKEN)
    bridge_abi = bridge.parsed_abi
    bridge_address = bridge.checksum_address

    if session_id is None:
        session_id = generate_session_id()

    calldata_a = encode_call(
        bridge_abi, "send",
        account_b.rollup.chain_id,   # otherChainId
        token.checksum_address,      # token
        account_a.address,           # sender
        account_b.address,           # receiver
        amount,
        session_id,
        bridge_address,              # destBridge
    )
    calldata_b = encode_call(
        bridge_abi, "receiveTokens",
        account_a.rollup.chain_id,   # chainSrc
        account_b.address,           # sender
        account_b.address,           # receiver
        session_id,
        bridge_address,              # srcBridge
    )

    return send_cross_tx(
        account_a, call_details(bridge_address, calldata_a),
        account_b, call_details(bridge_address, calldata_b, gas=gas_b),
        nonce_a=nonce_a,
        nonce_b=nonce_b,
        cancel_event=cancel_event,
    )


def send_ping_pong_tx(
    config: AppConfig,
    account_a: RollupAccount,
    account_b: RollupAccount,
    ping_data: bytes = DEFAULT_PING_DATA,
    pong_data: bytes = DEFAULT_PONG_DATA,
    nonce_a: Optional[int] = None,
    nonce_b: Optional[int] = None,
    session_id: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[SignedTransaction, SignedTransaction]:
    """
    Exchange a ping on chain A and a pong on chain B in one bundle.

    Both calls go to the pingpong contract and carry the same session id.

    Returns:
        (signed ping leg, signed pong leg)
    """
    pingpong = config.contract(CONTRACT_NAME_PINGPONG)
    abi = pingpong.parsed_abi
    address = pingpong.checksum_address

    if session_id is None:
        session_id = generate_session_id()

    calldata_a = encode_call(
        abi, "ping",
        account_b.rollup.chain_id,   # otherChain
        account_a.address,           # pongSender
        account_b.address,           # pingReceiver
        session_id,
        ping_data,
    )
    calldata_b = encode_call(
        abi, "pong",
        account_a.rollup.chain_id,   # otherChain
        account_b.address,           # pingSender
        session_id,
        pong_data,
    )

    return send_cross_tx(
        account_a, call_details(address, calldata_a),
        account_b, call_details(address, calldata_b),
        nonce_a=nonce_a,
        nonce_b=nonce_b,
        cancel_event=cancel_event,
    )
