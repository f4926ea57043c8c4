from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from loguru import logger

from src.domain.errors import CourierError

P = ParamSpec("P")
R = TypeVar("R")


def log_errors(func: Callable[P, R]) -> Callable[P, R]:
    """Catch, log, and re-raise any exception raised by the decorated method.

    The log line includes the fully-qualified function name, exception type,
    and message. Courier errors also carry the raw response detail so a failed
    booking can be diagnosed from the log alone.

    Usage::

        @log_errors
        def book_shipment(self, request: BookingRequest) -> BookingConfirmation: ...
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except CourierError as exc:
            logger.error(
                f"[{func.__qualname__}] {type(exc).__name__}: {exc} | detail: {exc.detail}"
            )
            raise
        except Exception as exc:
            logger.error(f"[{func.__qualname__}] {type(exc).__name__}: {exc}")
            raise

    return wrapper
