"""
Exceptions for the rollup-probe package.
"""
from typing import Optional


class RollupProbeError(Exception):
    """Base exception for rollup-probe errors."""
    pass


class ConfigError(RollupProbeError):
    """Raised when the configuration file is missing or invalid."""
    pass


class SigningError(RollupProbeError):
    """Raised when a transaction cannot be signed."""
    pass


class EncodingError(RollupProbeError):
    """Raised when a transaction or a cross-tx bundle cannot be (de)serialized."""
    pass


class CoordinationError(RollupProbeError):
    """Raised when the coordinator rejects a bundle or cannot be reached."""

    def __init__(self, message: str, code: Optional[int] = None, rpc_url: Optional[str] = None):
        self.code = code
        self.rpc_url = rpc_url
        super().__init__(message)


class TransactionError(RollupProbeError):
    """Raised when a chain query or a standalone transaction fails."""

    def __init__(self, message: str, chain: Optional[str] = None, tx_hash: Optional[str] = None):
        self.chain = chain
        self.tx_hash = tx_hash
        super().__init__(message)


class TransactionFailedError(TransactionError):
    """Raised when a transaction was mined but its receipt reports failure."""
    pass


class NotObservedError(RollupProbeError):
    """Raised when a transaction never showed up on its chain."""

    def __init__(self, message: str, chain: Optional[str] = None,
                 tx_hash: Optional[str] = None, retries: int = 0):
        self.chain = chain
        self.tx_hash = tx_hash
        self.retries = retries
        super().__init__(message)


class CancellationError(RollupProbeError):
    """Raised when a wait is aborted through the caller's cancel event."""

    def __init__(self, message: str, chain: Optional[str] = None, tx_hash: Optional[str] = None):
        self.chain = chain
        self.tx_hash = tx_hash
        super().__init__(message)
