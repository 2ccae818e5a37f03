"""
Tests for the confirmation poller.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
from web3.exceptions import Web3Exception

from rollup_probe.exceptions import (
    CancellationError, NotObservedError, TransactionError, TransactionFailedError
)
from rollup_probe.helpers import self_transfer_details
from rollup_probe.poller import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_INTERVAL,
    ConfirmationPoller,
    ConfirmationStatus,
    get_transaction_details,
    poll_legs,
)
from rollup_probe.transactions import build_transaction

from .conftest import CHAIN_ID_A, CHAIN_ID_B, RecordingEvent


class MineAfterWaits(RecordingEvent):
    """Mines a transaction once the poller has waited a given number of times."""

    def __init__(self, chain, raw, after):
        super().__init__()
        self.chain = chain
        self.raw = raw
        self.after = after

    def wait(self, timeout=None):
        result = super().wait(timeout)
        if len(self.waits) == self.after:
            self.chain.eth.mine_raw(self.raw)
        return result


@pytest.fixture
def signed_a(account_a):
    return build_transaction(self_transfer_details(account_a, 1), account_a, nonce=0)


@pytest.fixture
def signed_b(account_b):
    return build_transaction(self_transfer_details(account_b, 1), account_b, nonce=0)


@pytest.fixture
def poller_a(rollup_a, chain_a):
    return ConfirmationPoller(rollup_a, w3=chain_a)


class TestConfirmationPoller:
    """Tests for ConfirmationPoller.poll."""

    def test_defaults(self, poller_a):
        assert DEFAULT_MAX_RETRIES == 10
        assert DEFAULT_RETRY_INTERVAL == 0.6
        assert poller_a.max_retries == 10
        assert poller_a.retry_interval == 0.6

    def test_mined_immediately(self, poller_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction)
        event = RecordingEvent()

        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=event)

        assert outcome.status is ConfirmationStatus.SUCCESS
        assert outcome.succeeded and outcome.observed
        assert outcome.receipt.tx_hash == signed_a.hash_hex
        assert outcome.transaction["blockNumber"] == outcome.receipt.block_number
        assert outcome.queries == 1
        assert event.waits == []
        assert outcome.raise_for_status() is outcome

    def test_not_observed_after_bounded_retries(self, poller_a, chain_a, signed_a):
        """Eleven queries and ten 0.6s waits, then NOT_OBSERVED."""
        event = RecordingEvent()

        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=event)

        assert outcome.status is ConfirmationStatus.NOT_OBSERVED
        assert not outcome.observed
        assert outcome.receipt is None
        assert chain_a.eth.get_transaction_calls == 11
        assert outcome.queries == 11
        assert event.waits == [0.6] * 10
        assert outcome.reason == (
            f"transaction receipt not found after 10 retries for hash {signed_a.hash_hex}"
        )

    def test_not_observed_raise_for_status(self, poller_a, signed_a):
        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=RecordingEvent())
        with pytest.raises(NotObservedError, match="not found after 10 retries") as exc_info:
            outcome.raise_for_status()
        assert exc_info.value.retries == 10
        assert exc_info.value.chain == "rollup-a"
        assert exc_info.value.tx_hash == signed_a.hash_hex

    def test_zero_retries(self, rollup_a, chain_a, signed_a):
        poller = ConfirmationPoller(rollup_a, max_retries=0, w3=chain_a)
        event = RecordingEvent()
        outcome = poller.poll(signed_a.hash_hex, cancel_event=event)
        assert outcome.status is ConfirmationStatus.NOT_OBSERVED
        assert chain_a.eth.get_transaction_calls == 1
        assert event.waits == []

    def test_appears_after_some_retries(self, poller_a, chain_a, signed_a):
        event = MineAfterWaits(chain_a, signed_a.raw_transaction, after=4)
        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=event)
        assert outcome.status is ConfirmationStatus.SUCCESS
        assert chain_a.eth.get_transaction_calls == 5

    def test_pending_wait_is_unbounded(self, poller_a, chain_a, signed_a):
        """A known but unmined transaction is polled past max_retries."""
        chain_a.eth.mine_raw(signed_a.raw_transaction, pending_polls=25)
        event = RecordingEvent()

        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=event)

        assert outcome.status is ConfirmationStatus.SUCCESS
        assert chain_a.eth.get_transaction_calls == 26
        assert len(event.waits) == 25

    def test_pending_log_is_rate_limited(self, poller_a, chain_a, signed_a, caplog):
        chain_a.eth.mine_raw(signed_a.raw_transaction, pending_polls=5)
        with caplog.at_level(logging.DEBUG, logger="rollup_probe.poller"):
            poller_a.poll(signed_a.hash_hex, cancel_event=RecordingEvent())
        assert caplog.text.count("is still pending") == 1

    def test_failed_receipt(self, poller_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction, status=0)

        outcome = poller_a.poll(signed_a.hash_hex, cancel_event=RecordingEvent())

        assert outcome.status is ConfirmationStatus.FAILED
        assert outcome.observed and not outcome.succeeded
        assert outcome.receipt.status == 0
        with pytest.raises(TransactionFailedError, match="transaction failed"):
            outcome.raise_for_status()

    def test_hash_formats(self, poller_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction)
        for tx_hash in (signed_a.hash, signed_a.hash_hex, signed_a.hash_hex[2:], "0X" + signed_a.hash_hex[2:]):
            outcome = poller_a.poll(tx_hash, cancel_event=RecordingEvent())
            assert outcome.tx_hash == signed_a.hash_hex
            assert outcome.succeeded

    def test_cancelled_before_first_query(self, poller_a, chain_a, signed_a):
        event = RecordingEvent()
        event.set()
        with pytest.raises(CancellationError):
            poller_a.poll(signed_a.hash_hex, cancel_event=event)
        assert chain_a.eth.get_transaction_calls == 0

    def test_cancelled_while_awaiting_propagation(self, poller_a, chain_a, signed_a):
        event = RecordingEvent(cancel_after=3)
        with pytest.raises(CancellationError) as exc_info:
            poller_a.poll(signed_a.hash_hex, cancel_event=event)
        assert exc_info.value.tx_hash == signed_a.hash_hex
        assert chain_a.eth.get_transaction_calls == 3

    def test_cancel_interrupts_pending_wait(self, rollup_a, chain_a, signed_a):
        """Setting the event from another thread ends a long wait promptly."""
        chain_a.eth.mine_raw(signed_a.raw_transaction, pending_polls=10 ** 6)
        poller = ConfirmationPoller(rollup_a, retry_interval=5, w3=chain_a)
        cancel = threading.Event()

        with ThreadPoolExecutor(max_workers=1) as pool:
            start = time.monotonic()
            future = pool.submit(poller.poll, signed_a.hash_hex, cancel)
            time.sleep(0.1)
            cancel.set()
            with pytest.raises(CancellationError):
                future.result(timeout=2)
        assert time.monotonic() - start < 2

    def test_real_interval_is_respected(self, rollup_a, chain_a, signed_a):
        poller = ConfirmationPoller(rollup_a, max_retries=3, retry_interval=0.02, w3=chain_a)
        outcome = poller.poll(signed_a.hash_hex)
        assert outcome.status is ConfirmationStatus.NOT_OBSERVED
        assert outcome.elapsed >= 0.05

    def test_receipt_query_failure(self, poller_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction)
        chain_a.eth.receipt_error = Web3Exception("receipt unavailable")
        with pytest.raises(TransactionError, match="failed to get transaction receipt"):
            poller_a.poll(signed_a.hash_hex, cancel_event=RecordingEvent())

    def test_transaction_query_failure(self, rollup_a, signed_a):
        w3 = MagicMock()
        w3.eth.get_transaction.side_effect = OSError("connection reset")
        poller = ConfirmationPoller(rollup_a, w3=w3)
        with pytest.raises(TransactionError, match="failed to get transaction by hash") as exc_info:
            poller.poll(signed_a.hash_hex, cancel_event=RecordingEvent())
        assert exc_info.value.chain == "rollup-a"
        w3.eth.get_transaction.assert_called_once()

    @pytest.mark.parametrize("kwargs", [{"max_retries": -1}, {"retry_interval": -0.1}])
    def test_invalid_settings(self, rollup_a, chain_a, kwargs):
        with pytest.raises(ValueError):
            ConfirmationPoller(rollup_a, w3=chain_a, **kwargs)

    def test_default_web3_uses_rollup_endpoint(self, rollup_a):
        with patch("rollup_probe.poller.make_web3") as mock_make_web3:
            poller = ConfirmationPoller(rollup_a)
        mock_make_web3.assert_called_once_with(rollup_a)
        assert poller.w3 is mock_make_web3.return_value


class TestGetTransactionDetails:
    """Tests for get_transaction_details."""

    def test_returns_transaction_and_receipt(self, rollup_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction)
        tx, receipt = get_transaction_details(signed_a.hash_hex, rollup_a, w3=chain_a)
        assert tx["hash"].hex().endswith(signed_a.hash.hex())
        assert receipt.succeeded

    def test_failed_receipt_is_returned(self, rollup_a, chain_a, signed_a):
        chain_a.eth.mine_raw(signed_a.raw_transaction, status=0)
        _, receipt = get_transaction_details(signed_a.hash_hex, rollup_a, w3=chain_a)
        assert not receipt.succeeded

    def test_not_observed_raises(self, rollup_a, chain_a, signed_a):
        with pytest.raises(NotObservedError, match="transaction receipt not found after 2 retries for hash"):
            get_transaction_details(signed_a.hash_hex, rollup_a, w3=chain_a, max_retries=2, retry_interval=0)


class TestPollLegs:
    """Tests for concurrent polling of bundle legs."""

    @pytest.fixture(autouse=True)
    def _route_web3(self, chain_a, chain_b):
        chains = {CHAIN_ID_A: chain_a, CHAIN_ID_B: chain_b}
        with patch("rollup_probe.poller.make_web3", side_effect=lambda rollup: chains[rollup.chain_id]):
            yield

    def test_both_legs_succeed(self, rollup_a, rollup_b, chain_a, chain_b, signed_a, signed_b):
        chain_a.eth.mine_raw(signed_a.raw_transaction)
        chain_b.eth.mine_raw(signed_b.raw_transaction, pending_polls=2)

        outcomes = poll_legs([(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)], retry_interval=0)

        assert [o.status for o in outcomes] == [ConfirmationStatus.SUCCESS, ConfirmationStatus.SUCCESS]
        assert [o.chain for o in outcomes] == [rollup_a, rollup_b]

    def test_neither_leg_observed(self, rollup_a, rollup_b, signed_a, signed_b):
        """A dropped bundle surfaces as NOT_OBSERVED on both chains."""
        outcomes = poll_legs(
            [(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)], max_retries=3, retry_interval=0
        )
        assert [o.status for o in outcomes] == [ConfirmationStatus.NOT_OBSERVED] * 2

    def test_cancel_stops_all_pollers(self, rollup_a, rollup_b, signed_a, signed_b):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CancellationError):
            poll_legs([(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)], cancel_event=cancel)

    def test_no_legs(self):
        assert poll_legs([]) == []

    @pytest.mark.parametrize("failing_chain", [CHAIN_ID_A, CHAIN_ID_B])
    def test_failing_leg_stops_pending_sibling(self, rollup_a, rollup_b, chain_a, chain_b,
                                               signed_a, signed_b, failing_chain):
        """A query error on one leg is raised without waiting for the other leg."""
        chain_a.eth.mine_raw(signed_a.raw_transaction, pending_polls=10 ** 6)
        chain_b.eth.mine_raw(signed_b.raw_transaction, pending_polls=10 ** 6)
        broken = MagicMock()
        broken.eth.get_transaction.side_effect = OSError("connection reset")
        chains = {CHAIN_ID_A: chain_a, CHAIN_ID_B: chain_b}
        chains[failing_chain] = broken

        start = time.monotonic()
        with patch("rollup_probe.poller.make_web3", side_effect=lambda rollup: chains[rollup.chain_id]):
            with pytest.raises(TransactionError, match="failed to get transaction by hash"):
                poll_legs([(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)], retry_interval=0.2)
        assert time.monotonic() - start < 1

    def test_caller_cancel_mid_poll(self, rollup_a, rollup_b, chain_a, chain_b, signed_a, signed_b):
        chain_a.eth.mine_raw(signed_a.raw_transaction, pending_polls=10 ** 6)
        chain_b.eth.mine_raw(signed_b.raw_transaction, pending_polls=10 ** 6)
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(CancellationError):
                poll_legs(
                    [(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)], cancel_event=cancel, retry_interval=5
                )
        finally:
            timer.cancel()
        assert time.monotonic() - start < 2
