from typing import Protocol

from .order import Order
from .shipment import (
    Address,
    BookingConfirmation,
    BookingRequest,
    PincodeServiceability,
    Shipment,
    ShipmentFilters,
    ShipmentStatus,
    TrackingUpdate,
)


class ICourierAdapter(Protocol):
    def book_shipment(self, request: BookingRequest) -> BookingConfirmation:
        """Book with the courier. Raises ``CourierError`` on any failure."""
        ...

    def cancel_shipment(self, tracking_id: str) -> None:
        """Cancel a booked shipment. Raises ``CourierError`` on any failure."""
        ...

    def track_shipment(self, tracking_id: str) -> TrackingUpdate:
        """Current courier status of an AWB. Raises ``CourierError`` on any failure."""
        ...


class IPincodeChecker(Protocol):
    def check_pincode(self, pincode: str) -> PincodeServiceability: ...


class IShipmentStore(Protocol):
    def create(self, shipment: Shipment) -> str: ...

    def update(self, shipment_id: str, data: dict) -> None: ...

    def get_by_id(self, shipment_id: str) -> Shipment | None: ...

    def list(self, filters: ShipmentFilters | None = None) -> list[Shipment]: ...

    def update_status(self, shipment_id: str, status: ShipmentStatus) -> None: ...

    def find_destination_by_phone(self, client_id: str, phone: str) -> Address | None: ...


class IPickupAddressStore(Protocol):
    def get(self, client_id: str) -> Address | None: ...

    def save(self, client_id: str, address: Address) -> None: ...


class IFulfillmentNotifier(Protocol):
    def notify_fulfillment(self, shipment_id: str) -> None:
        """Ask for the order to be marked fulfilled on Shopify.

        Raises ``FulfillmentSyncError`` when the request runs inline. Background
        implementations report failures through their own channel instead.
        """
        ...


class IOrderRepository(Protocol):
    def fetch_orders(self, days: int = 14) -> list[Order]: ...
