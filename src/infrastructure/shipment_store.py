"""In-memory record stores.

Stand-ins for the document database the portal persists to. They honour the
same contract (``IShipmentStore`` / ``IPickupAddressStore``) and are what the
CLI and the test suite run against.
"""

import threading
from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger

from src.application.validator import clean_phone
from src.domain.shipment import Address, Shipment, ShipmentFilters, ShipmentStatus


class ShipmentNotFoundError(KeyError):
    """Raised when updating a shipment id that does not exist."""


class InMemoryShipmentStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._shipments: dict[str, Shipment] = {}

    def create(self, shipment: Shipment) -> str:
        shipment_id = uuid4().hex
        now = datetime.now(UTC)
        with self._lock:
            self._shipments[shipment_id] = shipment.model_copy(
                update={"id": shipment_id, "created_at": now, "updated_at": now}
            )
        logger.debug(f"[Store] Created shipment {shipment_id} ({shipment.status})")
        return shipment_id

    def update(self, shipment_id: str, data: dict) -> None:
        with self._lock:
            current = self._shipments.get(shipment_id)
            if current is None:
                raise ShipmentNotFoundError(shipment_id)
            merged = current.model_dump() | data | {"updated_at": datetime.now(UTC)}
            # Re-validate so partial updates cannot break the model's constraints
            self._shipments[shipment_id] = Shipment.model_validate(merged)

    def update_status(self, shipment_id: str, status: ShipmentStatus) -> None:
        self.update(shipment_id, {"status": status})

    def get_by_id(self, shipment_id: str) -> Shipment | None:
        with self._lock:
            return self._shipments.get(shipment_id)

    def list(self, filters: ShipmentFilters | None = None) -> list[Shipment]:
        filters = filters or ShipmentFilters()
        with self._lock:
            shipments = list(self._shipments.values())

        if filters.client_id:
            shipments = [s for s in shipments if s.client_id == filters.client_id]
        if filters.courier:
            shipments = [s for s in shipments if s.courier == filters.courier]
        if filters.status:
            shipments = [s for s in shipments if s.status == filters.status]
        if filters.start_date:
            shipments = [s for s in shipments if s.created_at and s.created_at >= filters.start_date]
        if filters.end_date:
            shipments = [s for s in shipments if s.created_at and s.created_at <= filters.end_date]
        if filters.search:
            needle = filters.search.lower()
            shipments = [
                s
                for s in shipments
                if needle in (s.id or "").lower()
                or needle in s.client_name.lower()
                or needle in (s.courier or "").lower()
                or needle in s.reference_no.lower()
                or needle in s.courier_tracking_id.lower()
            ]

        # Newest first
        return sorted(
            shipments,
            key=lambda s: s.created_at or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )

    def find_destination_by_phone(self, client_id: str, phone: str) -> Address | None:
        """Most recent receiver address this client shipped to ``phone``."""
        wanted = clean_phone(phone)
        if not wanted:
            return None
        for shipment in self.list(ShipmentFilters(client_id=client_id)):
            if clean_phone(shipment.destination.phone) == wanted:
                return shipment.destination
        return None


class InMemoryPickupAddressStore:
    def __init__(self, addresses: dict[str, Address] | None = None) -> None:
        self._addresses: dict[str, Address] = dict(addresses or {})

    def get(self, client_id: str) -> Address | None:
        return self._addresses.get(client_id)

    def save(self, client_id: str, address: Address) -> None:
        self._addresses[client_id] = address
        logger.info(f"[Store] Default pickup address saved for client {client_id}")
