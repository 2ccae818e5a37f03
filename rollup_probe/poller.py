"""
Confirmation polling for transactions submitted through the coordinator.

A leg goes through three phases on its own chain:

1. awaiting propagation: the RPC has not seen the hash yet. Bounded by
   ``max_retries``; exhausting it yields NOT_OBSERVED, which for a bundle leg
   usually means the coordinator declined to execute the bundle.
2. pending: the transaction is known but not mined. Waited on without bound.
3. mined: the receipt status decides SUCCESS or FAILED.
"""
import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from ._rate_limited_log import rate_limited_log
from .accounts import make_web3
from .exceptions import (
    CancellationError, NotObservedError, TransactionError, TransactionFailedError
)
from .models import TxReceipt
from .rollup import Rollup

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10
DEFAULT_RETRY_INTERVAL = 0.6  # seconds
PENDING_LOG_INTERVAL = 10  # seconds between identical "still pending" lines
LEG_WATCH_INTERVAL = 0.05  # seconds between checks of the caller's cancel event in poll_legs

TxHash = Union[str, bytes]


class ConfirmationStatus(str, Enum):
    """Final state of a polled transaction."""
    SUCCESS = "success"
    FAILED = "failed"
    NOT_OBSERVED = "not_observed"


@dataclass(frozen=True)
class ConfirmationOutcome:
    """
    Result of polling one transaction on one chain.

    SUCCESS carries the transaction and its receipt, FAILED carries the
    receipt of a mined but reverted transaction, NOT_OBSERVED carries the
    reason the hash never showed up.
    """
    status: ConfirmationStatus
    tx_hash: str
    chain: Rollup
    transaction: Optional[Dict[str, Any]] = None
    receipt: Optional[TxReceipt] = None
    reason: Optional[str] = None
    queries: int = 0
    elapsed: float = 0.0

    @classmethod
    def success(cls, tx_hash: str, chain: Rollup, transaction: Dict[str, Any],
                receipt: TxReceipt, queries: int = 0, elapsed: float = 0.0) -> "ConfirmationOutcome":
        return cls(ConfirmationStatus.SUCCESS, tx_hash, chain, transaction=transaction,
                   receipt=receipt, queries=queries, elapsed=elapsed)

    @classmethod
    def failed(cls, tx_hash: str, chain: Rollup, transaction: Dict[str, Any],
               receipt: TxReceipt, queries: int = 0, elapsed: float = 0.0) -> "ConfirmationOutcome":
        return cls(ConfirmationStatus.FAILED, tx_hash, chain, transaction=transaction,
                   receipt=receipt, queries=queries, elapsed=elapsed)

    @classmethod
    def not_observed(cls, tx_hash: str, chain: Rollup, reason: str,
                     queries: int = 0, elapsed: float = 0.0) -> "ConfirmationOutcome":
        return cls(ConfirmationStatus.NOT_OBSERVED, tx_hash, chain, reason=reason,
                   queries=queries, elapsed=elapsed)

    @property
    def succeeded(self) -> bool:
        return self.status is ConfirmationStatus.SUCCESS

    @property
    def observed(self) -> bool:
        return self.status is not ConfirmationStatus.NOT_OBSERVED

    def raise_for_status(self) -> "ConfirmationOutcome":
        """
        Raise unless the transaction was mined successfully.

        Returns:
            self, for chaining

        Raises:
            NotObservedError: If the transaction never showed up
            TransactionFailedError: If the receipt reports failure
        """
        if self.status is ConfirmationStatus.NOT_OBSERVED:
            raise NotObservedError(
                self.reason or f"transaction {self.tx_hash} not observed on {self.chain.name}",
                chain=self.chain.name, tx_hash=self.tx_hash, retries=max(self.queries - 1, 0),
            )
        if self.status is ConfirmationStatus.FAILED:
            raise TransactionFailedError(
                f"transaction failed: {self.tx_hash} on {self.chain.name}",
                chain=self.chain.name, tx_hash=self.tx_hash,
            )
        return self


def _normalize_hash(tx_hash: TxHash) -> str:
    if isinstance(tx_hash, (bytes, bytearray)):
        return Web3.to_hex(tx_hash)
    if tx_hash[:2] in ("0x", "0X"):
        tx_hash = tx_hash[2:]
    return "0x" + tx_hash


class ConfirmationPoller:
    """
    Polls one chain until a transaction is mined or declared not observed.

    Pollers hold no per-poll state, so one instance can serve several hashes
    on the same chain, and pollers for different chains can run concurrently.
    """

    def __init__(
        self,
        rollup: Rollup,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        w3: Optional[Web3] = None
    ):
        """
        Initialize the poller

        Args:
            rollup: Chain to query
            max_retries: "Not found" retries before giving up
            retry_interval: Seconds between queries
            w3: Optional Web3 instance (defaults to an HTTP provider for the rollup)
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if retry_interval < 0:
            raise ValueError(f"retry_interval must be >= 0, got {retry_interval}")
        self.rollup = rollup
        self.max_retries = max_retries
        self.retry_interval = retry_interval
        self.w3 = w3 or make_web3(rollup)

    def _wait(self, cancel_event: Any, tx_hash: str) -> None:
        if cancel_event.wait(self.retry_interval):
            raise CancellationError(
                f"context cancelled while waiting for transaction {tx_hash}",
                chain=self.rollup.name, tx_hash=tx_hash,
            )

    def poll(self, tx_hash: TxHash, cancel_event: Optional[threading.Event] = None) -> ConfirmationOutcome:
        """
        Poll until the transaction resolves.

        Args:
            tx_hash: Transaction hash (hex string or bytes)
            cancel_event: Optional event; setting it aborts any wait

        Returns:
            ConfirmationOutcome (SUCCESS, FAILED or NOT_OBSERVED)

        Raises:
            CancellationError: If cancel_event is set while polling
            TransactionError: If a query fails for a reason other than "not found"
        """
        tx_hash = _normalize_hash(tx_hash)
        if cancel_event is None:
            cancel_event = threading.Event()
        chain = self.rollup.name

        logger.info(f"Fetching transaction details on {chain} for hash: {tx_hash}")
        start = time.monotonic()
        retry_count = 0
        queries = 0

        while True:
            if cancel_event.is_set():
                raise CancellationError(
                    f"context cancelled while waiting for transaction {tx_hash}", chain=chain, tx_hash=tx_hash
                )

            queries += 1
            try:
                tx = self.w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                retry_count += 1
                if retry_count > self.max_retries:
                    reason = f"transaction receipt not found after {self.max_retries} retries for hash {tx_hash}"
                    elapsed = time.monotonic() - start
                    logger.info(f"Transaction {tx_hash} not observed on {chain} after {elapsed:.2f}s")
                    return ConfirmationOutcome.not_observed(
                        tx_hash, self.rollup, reason, queries=queries, elapsed=elapsed
                    )
                logger.debug(
                    f"Transaction {tx_hash} did not reach the RPC yet, waiting {self.retry_interval}s "
                    f"before retry... (retry {retry_count}/{self.max_retries})"
                )
                self._wait(cancel_event, tx_hash)
                continue
            except (Web3Exception, OSError, ValueError) as e:
                raise TransactionError(
                    f"failed to get transaction by hash {tx_hash}: {e}", chain=chain, tx_hash=tx_hash
                ) from e

            if tx.get("blockNumber") is None:
                rate_limited_log(
                    f"Transaction {tx_hash} is still pending on {chain}, waiting {self.retry_interval}s before retry...",
                    level="debug",
                    interval=PENDING_LOG_INTERVAL,
                    logger_instance=logger,
                )
                self._wait(cancel_event, tx_hash)
                continue

            try:
                raw_receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            except (Web3Exception, OSError, ValueError) as e:
                raise TransactionError(
                    f"failed to get transaction receipt for hash {tx_hash}: {e}", chain=chain, tx_hash=tx_hash
                ) from e

            receipt = TxReceipt.from_web3(raw_receipt)
            transaction = dict(tx)
            elapsed = time.monotonic() - start
            logger.info(f"Successfully retrieved transaction details on {chain} for hash: {tx_hash}")
            logger.info(f"Transaction took {elapsed:.2f}s to be processed")

            if receipt.succeeded:
                return ConfirmationOutcome.success(
                    tx_hash, self.rollup, transaction, receipt, queries=queries, elapsed=elapsed
                )
            logger.warning(f"Transaction {tx_hash} on {chain} was mined with status {receipt.status}")
            return ConfirmationOutcome.failed(
                tx_hash, self.rollup, transaction, receipt, queries=queries, elapsed=elapsed
            )


def get_transaction_details(
    tx_hash: TxHash,
    rollup: Rollup,
    cancel_event: Optional[threading.Event] = None,
    **poller_kwargs: Any
) -> Tuple[Dict[str, Any], TxReceipt]:
    """
    Wait for a transaction and return it with its receipt.

    The receipt is returned whatever its status; check ``receipt.succeeded``.

    Raises:
        NotObservedError: If the transaction never reached the chain
        CancellationError: If cancel_event is set while waiting
        TransactionError: If a query fails
    """
    outcome = ConfirmationPoller(rollup, **poller_kwargs).poll(tx_hash, cancel_event=cancel_event)
    if outcome.status is ConfirmationStatus.NOT_OBSERVED:
        outcome.raise_for_status()
    return outcome.transaction, outcome.receipt


def poll_legs(
    legs: Sequence[Tuple[Rollup, TxHash]],
    cancel_event: Optional[threading.Event] = None,
    **poller_kwargs: Any
) -> List[ConfirmationOutcome]:
    """
    Poll several (rollup, hash) pairs concurrently, one poller per leg.

    The pollers share an internal stop event. It is set as soon as any leg
    raises or the caller's cancel_event is set, so sibling pollers end with
    CancellationError instead of waiting out their pending phase.

    Args:
        legs: Chain and hash of each leg
        cancel_event: Optional caller event that cancels every poller
        **poller_kwargs: Forwarded to ConfirmationPoller

    Returns:
        Outcomes in the order of ``legs``

    Raises:
        The first non-cancellation error in leg order; CancellationError only
        when every failure was a cancellation
    """
    if not legs:
        return []

    stop = threading.Event()
    if cancel_event is not None and cancel_event.is_set():
        stop.set()

    pollers = [(ConfirmationPoller(rollup, **poller_kwargs), tx_hash) for rollup, tx_hash in legs]
    with ThreadPoolExecutor(max_workers=len(pollers), thread_name_prefix="poller") as pool:
        futures = [pool.submit(poller.poll, tx_hash, stop) for poller, tx_hash in pollers]
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=LEG_WATCH_INTERVAL, return_when=FIRST_EXCEPTION)
            if any(future.exception() is not None for future in done):
                stop.set()
            elif cancel_event is not None and cancel_event.is_set():
                stop.set()

    errors = [future.exception() for future in futures]
    for error in errors:
        if error is not None and not isinstance(error, CancellationError):
            logger.warning(f"Stopped polling sibling legs after failure: {error}")
            raise error
    return [future.result() for future in futures]
