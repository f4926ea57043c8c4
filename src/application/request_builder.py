from src.application.validator import clean_phone
from src.domain.shipment import (
    Address,
    BookingRequest,
    Courier,
    ServiceOptions,
    Shipment,
)


def _normalize_address(addr: Address) -> Address:
    """Digits-only phone and pincode, as every courier expects."""
    return addr.model_copy(
        update={"phone": clean_phone(addr.phone), "pincode": clean_phone(addr.pincode)}
    )


def build_booking_request(
    shipment: Shipment,
    pickup: Address,
    courier: Courier,
    service: ServiceOptions,
) -> BookingRequest:
    """Build the courier-agnostic request for a validated shipment."""
    return BookingRequest(
        courier=courier,
        consignee=_normalize_address(shipment.destination),
        shipper=_normalize_address(pickup),
        service=service,
        weight=shipment.weight,
        actual_weight=shipment.actual_weight,
        dimensions=shipment.dimensions,
        declared_value=shipment.declared_value,
        reference_no=shipment.reference_no or shipment.order_number,
        commodity_description=shipment.commodity_description
        or ", ".join(p.name for p in shipment.products if p.name),
    )
