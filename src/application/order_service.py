from loguru import logger

from src.application.order_mapper import map_order_to_shipment
from src.domain.interfaces import IOrderRepository, IShipmentStore
from src.domain.shipment import ShipmentFilters


class ShipmentImportService:
    """Imports Shopify orders as ``shopify_pending`` shipments."""

    def __init__(self, repository: IOrderRepository, store: IShipmentStore) -> None:
        self._repository = repository
        self._store = store

    def import_orders(self, client_id: str, client_name: str = "", days: int = 14) -> list[str]:
        """Create a record per new order; returns the ids of created shipments.

        Orders already imported for this client (same Shopify order id) are skipped.
        """
        orders = self._repository.fetch_orders(days)
        known = {
            s.shopify_order_id
            for s in self._store.list(ShipmentFilters(client_id=client_id))
            if s.shopify_order_id
        }

        created: list[str] = []
        for order in orders:
            shipment = map_order_to_shipment(order, client_id, client_name)
            if shipment.shopify_order_id in known:
                logger.debug(f"[Shopify] Order {order.name} already imported, skipping")
                continue
            created.append(self._store.create(shipment))
            known.add(shipment.shopify_order_id)

        logger.info(f"[Shopify] Imported {len(created)} of {len(orders)} order(s) for {client_id}")
        return created
