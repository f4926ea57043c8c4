from collections.abc import Callable
from enum import IntEnum

from loguru import logger

from src.application.booking_service import BookingOrchestrator
from src.application.validator import (
    validate_addresses_step,
    validate_courier_step,
    validate_package_step,
    validate_products_step,
)
from src.domain.errors import BookingError, ShipmentValidationError
from src.domain.shipment import (
    Address,
    BookingForm,
    BookingResult,
    ClientType,
    Shipment,
)


class BookingStep(IntEnum):
    ADDRESSES = 1
    PACKAGE = 2
    PRODUCTS = 3
    COURIER_SELECTION = 4
    BOOKED = 5


_GATES: dict[BookingStep, Callable[[BookingForm], list[str]]] = {
    BookingStep.ADDRESSES: validate_addresses_step,
    BookingStep.PACKAGE: validate_package_step,
    BookingStep.PRODUCTS: validate_products_step,
    BookingStep.COURIER_SELECTION: validate_courier_step,
}


class BookingWizard:
    """Single-shipment booking, one step at a time.

    ``Addresses -> Package -> Products -> CourierSelection -> Booked``. Each
    ``advance`` runs the gate of the current step and refuses to move while it
    reports errors. A failed booking leaves the wizard on courier selection
    with ``error`` set; nothing is persisted.
    """

    def __init__(self, orchestrator: BookingOrchestrator, form: BookingForm) -> None:
        self._orchestrator = orchestrator
        self.form = form
        self.step = BookingStep.ADDRESSES
        self.errors: list[str] = []
        self.error: str | None = None
        self.result: BookingResult | None = None

    @classmethod
    def from_shipment(
        cls,
        orchestrator: BookingOrchestrator,
        shipment: Shipment,
        pickup: Address | None,
    ) -> "BookingWizard":
        """Pre-fill from an imported Shopify order ("ship manually")."""
        form = BookingForm(
            client_id=shipment.client_id,
            client_name=shipment.client_name,
            client_type=ClientType.shopify,
            pickup=pickup or Address(),
            delivery=shipment.destination,
            dimensions=shipment.dimensions,
            actual_weight=shipment.actual_weight,
            products=shipment.products,
            commodity_description=shipment.commodity_description,
            declared_value=shipment.declared_value,
            reference_no=shipment.reference_no or None,
            courier=shipment.courier,
            shopify_shipment_id=shipment.id,
        )
        return cls(orchestrator, form)

    def advance(self) -> bool:
        """Run the current step's gate and move forward if it passes."""
        if self.step >= BookingStep.COURIER_SELECTION:
            return False
        self.errors = _GATES[self.step](self.form)
        if self.errors:
            logger.debug(f"[Wizard] Blocked at {self.step.name}: {self.errors}")
            return False
        self.step = BookingStep(self.step + 1)
        return True

    def back(self) -> None:
        if BookingStep.ADDRESSES < self.step < BookingStep.BOOKED:
            self.step = BookingStep(self.step - 1)
            self.errors = []

    def book(self) -> BookingResult | None:
        """Book from the courier-selection step. Returns None on failure."""
        if self.step != BookingStep.COURIER_SELECTION:
            raise RuntimeError(f"Cannot book from step {self.step.name}")

        self.errors = _GATES[BookingStep.COURIER_SELECTION](self.form)
        if self.errors:
            return None

        self.error = None
        try:
            self.result = self._orchestrator.book_shipment(self.form)
        except ShipmentValidationError as exc:
            self.errors = exc.errors
            self.error = str(exc)
            return None
        except BookingError as exc:
            self.error = str(exc)
            return None

        self.step = BookingStep.BOOKED
        return self.result
