"""
Signed-transaction builder.

Building and broadcasting are separate steps: a leg of a cross-chain bundle
is built and signed here, then handed to the bundle encoder and never sent to
its chain directly.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from eth_utils import keccak
from web3 import Web3
from web3.exceptions import Web3Exception

from .accounts import RollupAccount
from .exceptions import EncodingError, TransactionError
from .models import TransactionDetails
from .rollup import Rollup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedTransaction:
    """
    A signed EIP-1559 transaction ready to be bundled or broadcast.

    Attributes:
        raw_transaction: Canonical (typed envelope) transaction bytes
        hash: Keccak-256 of raw_transaction
        chain_id: Chain id the signature is bound to
        nonce: Sender nonce used for signing
        sender: Checksummed sender address
    """
    raw_transaction: bytes
    hash: bytes
    chain_id: int
    nonce: int
    sender: str

    @property
    def hash_hex(self) -> str:
        return Web3.to_hex(self.hash)

    @property
    def raw_hex(self) -> str:
        return Web3.to_hex(self.raw_transaction)


def build_transaction(
    details: TransactionDetails,
    account: RollupAccount,
    nonce: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None
) -> SignedTransaction:
    """
    Sign a transaction for the account's rollup.

    Args:
        details: Recipient, value, call data, gas and fee caps
        account: Sender; its rollup provides the chain id
        nonce: Explicit nonce; when omitted the pending nonce is queried
        cancel_event: Optional event that aborts the nonce query

    Returns:
        SignedTransaction

    Raises:
        SigningError: If the account has no key material or signing fails
        EncodingError: If the signed transaction cannot be serialized
        TransactionError: If the nonce query fails
        CancellationError: If cancel_event is set before the nonce query
    """
    rollup = account.rollup
    if nonce is None:
        nonce = account.get_nonce(cancel_event=cancel_event)
        logger.info(f"Creating transaction on {rollup.name} with nonce: {nonce}")
    else:
        logger.info(f"Creating transaction on {rollup.name} with explicit nonce: {nonce}")

    tx_dict = details.to_tx_dict(chain_id=rollup.chain_id, nonce=nonce)
    signed = account.sign_transaction(tx_dict)

    raw = getattr(signed, "raw_transaction", None)
    tx_hash = getattr(signed, "hash", None)
    if not raw or tx_hash is None:
        raise EncodingError(f"failed to marshal transaction on {rollup.name}: signer returned no raw bytes")

    raw = bytes(raw)
    tx_hash = bytes(tx_hash)
    if keccak(raw) != tx_hash:
        raise EncodingError(
            f"failed to marshal transaction on {rollup.name}: hash {Web3.to_hex(tx_hash)} does not match its bytes"
        )

    logger.info(f"Transaction signed successfully: {Web3.to_hex(tx_hash)}")
    return SignedTransaction(
        raw_transaction=raw,
        hash=tx_hash,
        chain_id=rollup.chain_id,
        nonce=nonce,
        sender=account.address,
    )


def send_transaction(signed: SignedTransaction, rollup: Rollup, w3: Optional[Web3] = None) -> str:
    """
    Broadcast a standalone signed transaction.

    Only used by helper flows; bundle legs are never sent this way.

    Args:
        signed: Transaction to broadcast
        rollup: Destination chain
        w3: Optional Web3 instance for the rollup

    Returns:
        Transaction hash as 0x-prefixed hex

    Raises:
        TransactionError: If the node rejects the transaction
    """
    if signed.chain_id != rollup.chain_id:
        logger.warning(
            f"Sending transaction signed for chain {signed.chain_id} to {rollup.name} (chain {rollup.chain_id})"
        )
    w3 = w3 or Web3(Web3.HTTPProvider(rollup.rpc_url))
    try:
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    except (Web3Exception, OSError, ValueError) as e:
        logger.error(f"failed to send transaction: {e}")
        raise TransactionError(
            f"failed to send transaction: {e}", chain=rollup.name, tx_hash=signed.hash_hex
        ) from e
    tx_hash_hex = Web3.to_hex(tx_hash)
    logger.info(f"Transaction sent successfully: {tx_hash_hex}")
    return tx_hash_hex
