"""
Retry decorator for network operations
"""
import functools
import time
from .logging import log, warn
from .. import config as _cfg


def retried(fn=None, *, retry_on: tuple = (Exception,)):
    """
    Decorator: retry fn up to RETRY_MAX times with exponential back-off.

    Only exceptions matching *retry_on* are retried; anything else is raised
    immediately so that callers can classify it (e.g. bad credentials).
    Usable bare (``@retried``) or configured (``@retried(retry_on=(TimeoutError,))``).
    """
    if fn is None:
        return functools.partial(retried, retry_on=retry_on)

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        delay = _cfg.RETRY_BASE_DELAY
        attempts = max(1, _cfg.RETRY_MAX)
        for attempt in range(1, attempts + 1):
            try:
                return fn(*args, **kwargs)
            except retry_on as exc:
                if attempt == attempts:
                    raise
                warn(f"{fn.__name__} failed (attempt {attempt}/{attempts}): {exc}")
                log(f"  retrying in {delay:.0f}s …")
                time.sleep(delay)
                delay = min(delay * 2, 60)

    return wrapper
