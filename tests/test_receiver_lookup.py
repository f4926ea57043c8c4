"""Tests for the debounced receiver auto-fill."""

from unittest.mock import MagicMock

from src.application.receiver_lookup import DebouncedLookup, receiver_lookup
from src.domain.shipment import Address, Shipment
from src.infrastructure.shipment_store import InMemoryShipmentStore


class FakeTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, delay: float, fn) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fn()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, fn) -> FakeTimer:
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


def test_only_last_submitted_value_is_looked_up() -> None:
    """Each keystroke restarts the timer; only the final value fires."""
    timers = FakeTimerFactory()
    lookup = MagicMock(return_value="found")
    on_result = MagicMock()
    debounced = DebouncedLookup(lookup, on_result, delay=0.5, timer_factory=timers)

    for value in ("98765", "987654321", "9876543210"):
        debounced.submit(value)

    assert [t.cancelled for t in timers.timers] == [True, True, False]
    assert all(t.started and t.delay == 0.5 for t in timers.timers)

    for timer in timers.timers:
        timer.fire()

    lookup.assert_called_once_with("9876543210")
    on_result.assert_called_once_with("9876543210", "found")


def test_cancel_drops_pending_lookup() -> None:
    timers = FakeTimerFactory()
    lookup = MagicMock()
    debounced = DebouncedLookup(lookup, MagicMock(), timer_factory=timers)

    debounced.submit("9876543210")
    debounced.cancel()
    timers.timers[0].fire()

    lookup.assert_not_called()


def test_late_superseded_timer_does_not_orphan_the_pending_one() -> None:
    """A timer that runs after being replaced must not clear the newer timer."""
    timers = FakeTimerFactory()
    lookup = MagicMock(side_effect=lambda value: f"found {value}")
    on_result = MagicMock()
    debounced = DebouncedLookup(lookup, on_result, timer_factory=timers)

    debounced.submit("9876543210")
    debounced.submit("9876543211")
    # The first timer's thread was already running when it got cancelled
    timers.timers[0].fn()
    debounced.submit("9876543212")

    assert timers.timers[1].cancelled
    lookup.assert_not_called()
    on_result.assert_not_called()

    timers.timers[1].fire()
    timers.timers[2].fire()

    lookup.assert_called_once_with("9876543212")
    on_result.assert_called_once_with("9876543212", "found 9876543212")


def test_result_is_dropped_when_a_new_value_arrives_mid_lookup() -> None:
    timers = FakeTimerFactory()
    on_result = MagicMock()
    debounced: DebouncedLookup[str, str]

    def slow_lookup(value: str) -> str:
        if value == "9876543210":
            debounced.submit("9876543219")
        return f"found {value}"

    debounced = DebouncedLookup(slow_lookup, on_result, timer_factory=timers)
    debounced.submit("9876543210")
    timers.timers[0].fire()

    on_result.assert_not_called()

    timers.timers[1].fire()
    on_result.assert_called_once_with("9876543219", "found 9876543219")


# ---------------------------------------------------------------------------
# Store-backed lookup
# ---------------------------------------------------------------------------


def _ship_to(store: InMemoryShipmentStore, client_id: str, name: str, phone: str) -> None:
    store.create(
        Shipment(
            client_id=client_id,
            destination=Address(
                name=name, phone=phone, pincode="400001", address="12 Marine Drive", city="Mumbai"
            ),
            weight=0.5,
        )
    )


def test_receiver_lookup_matches_on_cleaned_phone() -> None:
    store = InMemoryShipmentStore()
    _ship_to(store, "client-1", "Asha Rao", "+91-98765 43210")

    address = receiver_lookup(store, "client-1")("919876543210")

    assert address is not None
    assert address.name == "Asha Rao"


def test_receiver_lookup_is_scoped_to_client() -> None:
    store = InMemoryShipmentStore()
    _ship_to(store, "client-2", "Asha Rao", "9876543210")

    assert receiver_lookup(store, "client-1")("9876543210") is None


def test_receiver_lookup_ignores_short_numbers() -> None:
    store = MagicMock()

    assert receiver_lookup(store, "client-1")("98765") is None
    store.find_destination_by_phone.assert_not_called()
