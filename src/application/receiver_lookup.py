"""Receiver auto-fill: look up a past delivery address by phone number."""

import threading
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

from loguru import logger

from src.application.validator import PHONE_MIN_DIGITS, clean_phone
from src.domain.interfaces import IShipmentStore
from src.domain.shipment import Address

T = TypeVar("T")
R = TypeVar("R")


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def _thread_timer(delay: float, fn: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    return timer


class DebouncedLookup(Generic[T, R]):
    """Runs ``lookup`` only for the last value submitted within ``delay`` seconds.

    Every ``submit`` cancels the pending timer, so typing a phone number fires
    one lookup for the final value instead of one per keystroke. A timer that
    already started running when it was superseded delivers nothing: each fire
    carries the generation it was scheduled under and only the current one
    may clear ``_pending`` or reach ``on_result``.
    """

    def __init__(
        self,
        lookup: Callable[[T], R],
        on_result: Callable[[T, R], None],
        delay: float = 0.5,
        timer_factory: TimerFactory = _thread_timer,
    ) -> None:
        self._lookup = lookup
        self._on_result = on_result
        self._delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: Timer | None = None
        self._generation = 0

    def submit(self, value: T) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._generation += 1
            generation = self._generation
            self._pending = self._timer_factory(
                self._delay, lambda: self._fire(value, generation)
            )
            self._pending.start()

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    def _fire(self, value: T, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._pending = None
        result = self._lookup(value)
        with self._lock:
            # A submit or cancel may have landed while the lookup ran
            if generation != self._generation:
                logger.debug(f"[Lookup] Dropping stale result for {value}")
                return
        self._on_result(value, result)


def receiver_lookup(store: IShipmentStore, client_id: str) -> Callable[[str], Address | None]:
    """Lookup function for ``DebouncedLookup`` over a client's past shipments."""

    def lookup(phone: str) -> Address | None:
        if len(clean_phone(phone)) < PHONE_MIN_DIGITS:
            return None
        address = store.find_destination_by_phone(client_id, phone)
        if address is not None:
            logger.debug(f"[Lookup] Receiver found for {clean_phone(phone)}: {address.name}")
        return address

    return lookup
