import time
import functools
import httpx
import logging

logger = logging.getLogger(__name__)

MAX_READ_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 0.5


def _is_transient(error: Exception) -> bool:
    return isinstance(error, httpx.TransportError) or "DECRYPTION_FAILED_OR_BAD_RECORD_MAC" in str(error)


def retry_on_transient_error(func):
    """
    Retry a store read when the connection drops or the intermittent SSL
    DECRYPTION_FAILED_OR_BAD_RECORD_MAC error shows up. Only for reads:
    anything that mutates state must not be wrapped.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        for attempt in range(MAX_READ_ATTEMPTS):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if _is_transient(e) and attempt < MAX_READ_ATTEMPTS - 1:
                    logger.warning(f"Transient error on {func.__name__}. Retrying in {RETRY_DELAY_SECONDS} seconds... (Attempt {attempt + 1}/{MAX_READ_ATTEMPTS})")
                    time.sleep(RETRY_DELAY_SECONDS)
                else:
                    raise
    return wrapper
