from loguru import logger

from src.application.booking_service import BookingOrchestrator, partition_results
from src.application.order_service import ShipmentImportService
from src.domain.shipment import BulkShipResult, Courier, ServiceOptions, StatusSyncResult


class Executor:
    """Imports pending Shopify orders, bulk-books the ones that validate and tracks open shipments."""

    def __init__(
        self,
        import_service: ShipmentImportService,
        orchestrator: BookingOrchestrator,
    ) -> None:
        self._import_service = import_service
        self._orchestrator = orchestrator

    def run(
        self,
        client_id: str,
        courier: Courier,
        options: ServiceOptions,
        client_name: str = "",
        days: int = 14,
    ) -> list[BulkShipResult]:
        logger.info(f"Importing paid, unfulfilled Shopify orders from the last {days} days…")
        shipment_ids = self._import_service.import_orders(client_id, client_name, days=days)
        if not shipment_ids:
            logger.info("No new orders to ship.")
            return []

        validations = self._orchestrator.validate_for_bulk_ship(shipment_ids, client_id)
        for result in validations:
            if not result.is_valid:
                logger.warning(
                    f"{result.reference} needs manual booking: {'; '.join(result.errors)}"
                )

        results = self._orchestrator.bulk_ship(
            shipment_ids,
            courier,
            options,
            client_id=client_id,
            on_progress=lambda done, total: logger.info(f"Progress: {done}/{total}"),
        )

        succeeded, failed = partition_results(results)
        for result in failed:
            logger.warning(f"{result.order_number} failed: {result.error}, ship manually")
        logger.info(
            f"Done. {len(succeeded)} booked, {len(failed)} failed, "
            f"{len(validations) - len(results)} held back by validation."
        )
        return results

    def sync_statuses(self, client_id: str) -> list[StatusSyncResult]:
        logger.info("Refreshing courier status of open shipments…")
        results = self._orchestrator.sync_open_shipments(client_id)
        for result in results:
            if result.error:
                logger.warning(f"{result.order_number} could not be tracked: {result.error}")
            elif result.changed:
                logger.info(f"{result.order_number} is now {result.status}")
        return results
