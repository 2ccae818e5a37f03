"""
rollup-probe: client-side harness for cross-rollup atomic transaction bundles.

Build one signed transaction per chain, bundle them, submit the bundle to the
coordinator with eth_sendXTransaction, then confirm each leg on its own chain.
"""
from .accounts import RollupAccount
from .config import AppConfig, load_config, parse_config
from .cross_tx import (
    BundleLeg,
    CoordinatorClient,
    CrossTxBundle,
    decode_cross_tx,
    encode_cross_tx,
    send_cross_tx_request,
)
from .exceptions import (
    CancellationError,
    ConfigError,
    CoordinationError,
    EncodingError,
    NotObservedError,
    RollupProbeError,
    SigningError,
    TransactionError,
    TransactionFailedError,
)
from .log import configure_logging
from .models import TransactionDetails, TxReceipt
from .poller import (
    ConfirmationOutcome,
    ConfirmationPoller,
    ConfirmationStatus,
    get_transaction_details,
    poll_legs,
)
from .rollup import Rollup
from .session import generate_session_id
from .transactions import SignedTransaction, build_transaction, send_transaction
from .version import __version__

__all__ = [
    "RollupAccount",
    "AppConfig",
    "load_config",
    "parse_config",
    "BundleLeg",
    "CoordinatorClient",
    "CrossTxBundle",
    "decode_cross_tx",
    "encode_cross_tx",
    "send_cross_tx_request",
    "CancellationError",
    "ConfigError",
    "CoordinationError",
    "EncodingError",
    "NotObservedError",
    "RollupProbeError",
    "SigningError",
    "TransactionError",
    "TransactionFailedError",
    "configure_logging",
    "TransactionDetails",
    "TxReceipt",
    "ConfirmationOutcome",
    "ConfirmationPoller",
    "ConfirmationStatus",
    "get_transaction_details",
    "poll_legs",
    "Rollup",
    "generate_session_id",
    "SignedTransaction",
    "build_transaction",
    "send_transaction",
    "__version__",
]
