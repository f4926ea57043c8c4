import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from loguru import logger


def utc_now() -> datetime:
    return datetime.now(UTC)


class TokenCache:
    """Lazily refreshed auth token shared by all callers of one courier client.

    The expiry check and the refresh run under one lock, so concurrent callers
    that find the token missing or expired trigger a single fetch; the others
    wait and reuse its result.
    """

    def __init__(
        self,
        fetch: Callable[[], str],
        ttl: timedelta = timedelta(hours=23),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._fetch = fetch
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: datetime | None = None

    def get_valid(self) -> str:
        with self._lock:
            if self._token and self._expires_at and self._clock() < self._expires_at:
                return self._token

            logger.debug("[TokenCache] Token missing or expired, refreshing")
            token = self._fetch()
            self._token = token
            self._expires_at = self._clock() + self._ttl
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None
