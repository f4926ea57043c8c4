"""Booking orchestration: single booking, bulk booking, cancellation and status sync.

Courier adapters are only ever called for shipments that passed ``validate``,
and a shipment is only marked booked or cancelled once the courier confirms.
"""

import time
from collections.abc import Callable, Iterator, Mapping

from loguru import logger

from src.application.billing import compute_weights
from src.application.request_builder import build_booking_request
from src.application.validator import (
    check_service_rules,
    validate,
    validate_form,
    validate_pickup,
)
from src.domain.courier_request import BLUEDART_SERVICES
from src.domain.errors import (
    BookingError,
    CancellationError,
    FulfillmentSyncError,
    ShipmentValidationError,
    TrackingError,
)
from src.domain.interfaces import (
    ICourierAdapter,
    IFulfillmentNotifier,
    IPincodeChecker,
    IPickupAddressStore,
    IShipmentStore,
)
from src.domain.shipment import (
    TERMINAL_STATUSES,
    Address,
    BookingConfirmation,
    BookingForm,
    BookingResult,
    BulkProgress,
    BulkShipResult,
    Courier,
    ServiceOptions,
    Shipment,
    ShipmentFilters,
    ShipmentStatus,
    StatusSyncResult,
    ValidationResult,
)


def default_reference_no() -> str:
    return f"ORDER {str(int(time.time() * 1000))[-6:]}"


def partition_results(
    results: list[BulkShipResult],
) -> tuple[list[BulkShipResult], list[BulkShipResult]]:
    """Split bulk results into (succeeded, failed)."""
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    return succeeded, failed


class BookingOrchestrator:
    """Validates, dispatches to a courier adapter and records the outcome."""

    compute_weights = staticmethod(compute_weights)

    def __init__(
        self,
        store: IShipmentStore,
        pickup_store: IPickupAddressStore,
        adapters: Mapping[Courier, ICourierAdapter],
        notifier: IFulfillmentNotifier | None = None,
        reference_factory: Callable[[], str] = default_reference_no,
        pincode_checker: IPincodeChecker | None = None,
    ) -> None:
        self._store = store
        self._pickup_store = pickup_store
        self._adapters = dict(adapters)
        self._notifier = notifier
        self._reference_factory = reference_factory
        # Consulted before Blue Dart bookings only
        self._pincode_checker = pincode_checker

    def _adapter_for(self, courier: Courier) -> ICourierAdapter:
        try:
            return self._adapters[courier]
        except KeyError:
            raise BookingError(f"No adapter configured for {courier}") from None

    def _unserviceable(self, courier: Courier, pincode: str) -> str | None:
        """Reason the courier cannot deliver to ``pincode``, if it says so.

        A failed lookup is logged and treated as serviceable; the booking call
        itself remains the authority.
        """
        if courier != Courier.bluedart or self._pincode_checker is None:
            return None
        try:
            result = self._pincode_checker.check_pincode(pincode)
        except Exception as exc:
            logger.warning(f"[Booking] Pincode check for {pincode} failed, booking anyway: {exc}")
            return None
        if result.serviceable:
            return None
        return f"{courier} does not service pincode {pincode}" + (
            f": {result.message}" if result.message else ""
        )

    # ------------------------------------------------------------------
    # Single booking
    # ------------------------------------------------------------------

    def book_shipment(self, form: BookingForm) -> BookingResult:
        """Book one shipment from the interactive form.

        Raises:
            ShipmentValidationError: the form or shipment failed a local check.
            BookingError: the courier refused or failed the booking.
        """
        if errors := validate_form(form):
            raise ShipmentValidationError(errors)
        courier = form.courier
        if courier is None:
            raise ShipmentValidationError("Please select a courier")

        existing = self._pending_shopify_shipment(form.shopify_shipment_id)
        shipment = self._shipment_from_form(form, existing)

        result = validate(shipment, form.pickup)
        if not result.is_valid:
            raise ShipmentValidationError(result.errors)
        if reason := self._unserviceable(courier, shipment.destination.pincode):
            raise ShipmentValidationError(reason)

        request = build_booking_request(shipment, form.pickup, courier, form.service)
        adapter = self._adapter_for(courier)
        try:
            confirmation = adapter.book_shipment(request)
        except ShipmentValidationError:
            raise
        except Exception as exc:
            logger.error(f"[Booking] {courier} booking failed for {shipment.reference_no}: {exc}")
            raise BookingError(f"{courier} Booking Failed: {exc}") from exc

        # Persist only after the courier confirmed
        booked = self._booked_fields(confirmation, courier, form.service)
        if form.shopify_shipment_id:
            shipment_id = form.shopify_shipment_id
            self._store.update(
                shipment_id,
                shipment.model_dump(exclude={"id", "created_at", "updated_at"}) | booked,
            )
        else:
            shipment_id = self._store.create(shipment.model_copy(update=booked))

        logger.info(
            f"[Booking] {shipment.reference_no} booked with {courier}, AWB {confirmation.tracking_id}"
        )

        warnings = self._notify(shipment_id) if shipment.shopify_order_id else []
        return BookingResult(
            shipment_id=shipment_id,
            tracking_id=confirmation.tracking_id,
            reference_no=shipment.reference_no,
            warnings=warnings,
        )

    def _pending_shopify_shipment(self, shipment_id: str | None) -> Shipment | None:
        if not shipment_id:
            return None
        existing = self._store.get_by_id(shipment_id)
        if existing is None:
            raise ShipmentValidationError(f"Shopify order {shipment_id} not found")
        if existing.status != ShipmentStatus.shopify_pending:
            raise ShipmentValidationError(
                f"Shopify order {existing.order_number} is already {existing.status}"
            )
        return existing

    def _shipment_from_form(self, form: BookingForm, existing: Shipment | None) -> Shipment:
        weights = compute_weights(form.dimensions, form.actual_weight)
        fields = dict(
            client_id=form.client_id,
            client_name=form.client_name,
            client_type=form.client_type,
            origin=form.pickup,
            destination=form.delivery,
            dimensions=form.dimensions,
            actual_weight=weights.actual,
            weight=weights.billable,
            products=form.products,
            declared_value=form.declared_value,
            commodity_description=form.commodity_description,
        )
        if existing is not None:
            return existing.model_copy(
                update=fields
                | {"reference_no": form.reference_no or existing.reference_no or self._reference_factory()}
            )
        return Shipment(
            **fields,
            reference_no=form.reference_no or self._reference_factory(),
            status=ShipmentStatus.pending,
        )

    @staticmethod
    def _booked_fields(
        confirmation: BookingConfirmation, courier: Courier, service: ServiceOptions
    ) -> dict:
        fields = {
            "status": ShipmentStatus.pending,
            "courier": courier,
            "courier_tracking_id": confirmation.tracking_id,
            "cod": service.cod,
            "cod_amount": service.cod_amount if service.cod else 0.0,
            "courier_chargeable_weight": confirmation.chargeable_weight,
            "courier_fields": confirmation.courier_fields,
            "last_booking_error": None,
        }
        if courier == Courier.bluedart:
            product = BLUEDART_SERVICES[service.service_type]
            fields |= {
                "service_type": product.name,
                "product_code": product.code,
                "pack_type": product.pack_type,
            }
        else:
            fields["service_type"] = service.dtdc_service_type_id
        return fields

    def _notify(self, shipment_id: str) -> list[str]:
        """Trigger Shopify fulfillment sync; failures become warnings."""
        if self._notifier is None:
            return []
        try:
            self._notifier.notify_fulfillment(shipment_id)
        except FulfillmentSyncError as exc:
            logger.warning(f"[Booking] Fulfillment sync failed for {shipment_id}: {exc}")
            return [f"Shopify fulfillment sync failed: {exc}"]
        except Exception as exc:  # the booking already stands
            logger.error(
                f"[Booking] Fulfillment sync crashed for {shipment_id}: {type(exc).__name__}: {exc}"
            )
            return [f"Shopify fulfillment sync failed: {exc}"]
        return []

    # ------------------------------------------------------------------
    # Bulk booking
    # ------------------------------------------------------------------

    def validate_for_bulk_ship(
        self, shipment_ids: list[str], client_id: str
    ) -> list[ValidationResult]:
        """Validate every selected order against the client's default pickup."""
        pickup = self._pickup_store.get(client_id)
        return self._validate_batch(shipment_ids, client_id, pickup)

    def _validate_batch(
        self, shipment_ids: list[str], client_id: str, pickup: Address | None
    ) -> list[ValidationResult]:
        pickup_errors = validate_pickup(pickup)
        if pickup_errors:
            logger.warning(
                f"[Booking] Default pickup address for client {client_id} is unusable: "
                f"{'; '.join(pickup_errors)}"
            )
        return [
            self._validate_selected(sid, client_id, pickup, pickup_errors)
            for sid in shipment_ids
        ]

    def _validate_selected(
        self,
        shipment_id: str,
        client_id: str,
        pickup: Address | None,
        pickup_errors: list[str],
    ) -> ValidationResult:
        shipment = self._store.get_by_id(shipment_id)
        if shipment is None:
            return ValidationResult(
                shipment_id=shipment_id, reference=shipment_id, errors=["Shipment not found"]
            )

        result = validate(shipment, pickup, pickup_errors)
        blockers: list[str] = []
        if shipment.client_id != client_id:
            blockers.append("Shipment belongs to another client")
        if shipment.status != ShipmentStatus.shopify_pending:
            blockers.append(f"Shipment is {shipment.status}, not awaiting booking")
        result.errors = blockers + result.errors
        return result

    def iter_bulk_ship(
        self,
        shipment_ids: list[str],
        courier: Courier,
        options: ServiceOptions | None = None,
        *,
        client_id: str,
    ) -> Iterator[BulkProgress]:
        """Book the valid orders one at a time, yielding after each.

        Orders that fail validation are never dispatched. A failure on one
        order is recorded in its result and the batch carries on. Stopping
        iteration stops dispatching further orders.
        """
        options = options or ServiceOptions()
        if errors := check_service_rules(courier, options):
            raise ShipmentValidationError(errors)
        adapter = self._adapter_for(courier)
        pickup = self._pickup_store.get(client_id)

        validations = self._validate_batch(shipment_ids, client_id, pickup)
        ready = [v.shipment_id for v in validations if v.is_valid and v.shipment_id]
        skipped = len(validations) - len(ready)
        if skipped:
            logger.info(f"[Booking] {skipped} order(s) failed validation and will not be shipped")
        if pickup is None or not ready:
            logger.info("[Booking] Nothing to ship")
            return

        total = len(ready)
        logger.info(f"[Booking] Bulk shipping {total} order(s) with {courier}")
        for completed, shipment_id in enumerate(ready, start=1):
            result = self._ship_one(shipment_id, adapter, courier, options, pickup)
            logger.info(
                f"[Booking] {completed}/{total} {result.order_number}: "
                f"{'AWB ' + (result.awb or '') if result.success else 'FAILED ' + (result.error or '')}"
            )
            yield BulkProgress(completed=completed, total=total, result=result)

    def bulk_ship(
        self,
        shipment_ids: list[str],
        courier: Courier,
        options: ServiceOptions | None = None,
        *,
        client_id: str,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[BulkShipResult]:
        results: list[BulkShipResult] = []
        for progress in self.iter_bulk_ship(shipment_ids, courier, options, client_id=client_id):
            results.append(progress.result)
            if on_progress is not None:
                on_progress(progress.completed, progress.total)

        succeeded, failed = partition_results(results)
        logger.info(f"[Booking] Bulk run done: {len(succeeded)} shipped, {len(failed)} failed")
        return results

    def _ship_one(
        self,
        shipment_id: str,
        adapter: ICourierAdapter,
        courier: Courier,
        options: ServiceOptions,
        pickup: Address,
    ) -> BulkShipResult:
        shipment = self._store.get_by_id(shipment_id)
        if shipment is None:
            return BulkShipResult(
                id=shipment_id, order_number=shipment_id, success=False, error="Shipment not found"
            )
        order_number = shipment.order_number

        if reason := self._unserviceable(courier, shipment.destination.pincode):
            self._record_failure(shipment_id, reason)
            return BulkShipResult(id=shipment_id, order_number=order_number, success=False, error=reason)

        try:
            request = build_booking_request(shipment, pickup, courier, options)
            confirmation = adapter.book_shipment(request)
        except Exception as exc:  # isolated to this order
            message = str(exc) or type(exc).__name__
            self._record_failure(shipment_id, message)
            return BulkShipResult(
                id=shipment_id, order_number=order_number, success=False, error=message
            )

        try:
            self._store.update(shipment_id, self._booked_fields(confirmation, courier, options))
        except Exception as exc:
            logger.error(
                f"[Booking] {order_number} booked as {confirmation.tracking_id} but could not be saved: {exc}"
            )
            return BulkShipResult(
                id=shipment_id,
                order_number=order_number,
                success=False,
                awb=confirmation.tracking_id,
                error=f"Booked as {confirmation.tracking_id} but could not be saved: {exc}",
            )

        if shipment.shopify_order_id:
            self._notify(shipment_id)
        return BulkShipResult(
            id=shipment_id, order_number=order_number, success=True, awb=confirmation.tracking_id
        )

    def _record_failure(self, shipment_id: str, message: str) -> None:
        """Keep the order in ``shopify_pending`` with the error for follow-up."""
        try:
            self._store.update(shipment_id, {"last_booking_error": message})
        except Exception as exc:
            logger.error(f"[Booking] Could not record failure on {shipment_id}: {exc}")

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_shipment(self, shipment_id: str) -> None:
        """Cancel with the courier, then mark the shipment cancelled.

        Raises:
            CancellationError: nothing to cancel, or the courier refused. The
                shipment status is left unchanged.
        """
        shipment = self._store.get_by_id(shipment_id)
        if shipment is None:
            raise CancellationError(f"Shipment {shipment_id} not found")
        if not shipment.courier_tracking_id or shipment.courier is None:
            raise CancellationError("Shipment has no courier tracking id to cancel")
        if shipment.status in TERMINAL_STATUSES:
            raise CancellationError(f"Shipment is already {shipment.status}")

        try:
            adapter = self._adapter_for(shipment.courier)
            adapter.cancel_shipment(shipment.courier_tracking_id)
        except Exception as exc:
            logger.error(f"[Booking] Cancellation of {shipment.courier_tracking_id} failed: {exc}")
            raise CancellationError(
                f"{shipment.courier} cancellation failed: {exc}",
                detail=getattr(exc, "detail", None),
            ) from exc

        self._store.update_status(shipment_id, ShipmentStatus.cancelled)
        logger.info(f"[Booking] Shipment {shipment_id} ({shipment.courier_tracking_id}) cancelled")

    # ------------------------------------------------------------------
    # Status sync
    # ------------------------------------------------------------------

    # Statuses only move forward along this order; cancelled/declined never come from tracking
    _STATUS_RANK = {
        ShipmentStatus.pending: 0,
        ShipmentStatus.transit: 1,
        ShipmentStatus.delivered: 2,
    }

    def sync_status(self, shipment_id: str) -> ShipmentStatus:
        """Ask the courier where the shipment is and record it.

        The courier's status text is always stored; the lifecycle status only
        advances (pending, then transit, then delivered) and terminal shipments
        are not tracked at all.

        Raises:
            TrackingError: nothing to track, or the courier call failed. The
                stored status is left unchanged.
        """
        shipment = self._store.get_by_id(shipment_id)
        if shipment is None:
            raise TrackingError(f"Shipment {shipment_id} not found")
        if not shipment.courier_tracking_id or shipment.courier is None:
            raise TrackingError("Shipment has no courier tracking id to track")
        if shipment.status in TERMINAL_STATUSES:
            return shipment.status

        try:
            adapter = self._adapter_for(shipment.courier)
            update = adapter.track_shipment(shipment.courier_tracking_id)
        except Exception as exc:
            logger.error(f"[Booking] Tracking of {shipment.courier_tracking_id} failed: {exc}")
            raise TrackingError(
                f"{shipment.courier} tracking failed: {exc}",
                detail=getattr(exc, "detail", None),
            ) from exc

        changes: dict = {"courier_status": update.raw_status}
        current_rank = self._STATUS_RANK.get(shipment.status, -1)
        if update.status is not None and self._STATUS_RANK.get(update.status, -1) > current_rank:
            changes["status"] = update.status
        self._store.update(shipment_id, changes)

        status = changes.get("status", shipment.status)
        logger.info(
            f"[Booking] {shipment.order_number} ({shipment.courier_tracking_id}): "
            f"{update.raw_status or 'no status'} -> {status}"
        )
        return status

    def sync_open_shipments(self, client_id: str) -> list[StatusSyncResult]:
        """Refresh every booked, non-terminal shipment of a client.

        A failure on one shipment is recorded in its result and the rest carry on.
        """
        open_shipments = [
            s
            for s in self._store.list(ShipmentFilters(client_id=client_id))
            if s.id
            and s.courier_tracking_id
            and s.courier is not None
            and s.status in (ShipmentStatus.pending, ShipmentStatus.transit)
        ]
        results: list[StatusSyncResult] = []
        for shipment in open_shipments:
            try:
                status = self.sync_status(shipment.id)
            except TrackingError as exc:
                results.append(
                    StatusSyncResult(id=shipment.id, order_number=shipment.order_number, error=str(exc))
                )
                continue
            results.append(
                StatusSyncResult(
                    id=shipment.id,
                    order_number=shipment.order_number,
                    status=status,
                    changed=status != shipment.status,
                )
            )

        changed = sum(r.changed for r in results)
        logger.info(f"[Booking] Status sync: {len(results)} tracked, {changed} changed")
        return results
