"""
Session/correlation id generation for cross-chain operations.
"""
import logging
import secrets

logger = logging.getLogger(__name__)

SESSION_ID_BOUND = 2 ** 63


def generate_session_id() -> int:
    """
    Draw a random session id in [0, 2^63) from the OS entropy source.

    Both legs of a cross-chain operation embed the same id in their call data,
    so a predictable fallback is never acceptable.

    Returns:
        Uniformly random non-negative integer below 2^63

    Raises:
        SystemExit: If the entropy source is unavailable
    """
    try:
        return secrets.randbelow(SESSION_ID_BOUND)
    except (OSError, NotImplementedError) as e:
        logger.critical(f"failed to generate random session ID: {e}")
        raise SystemExit(f"failed to generate random session ID: {e}")
