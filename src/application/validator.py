"""Pre-dispatch validation.

``validate`` is the shared gate used by single and bulk booking: no courier
adapter is ever called for a shipment it rejects. The ``validate_*_step``
functions are the stricter per-step gates of the interactive booking form.
All checks accumulate every failure instead of stopping at the first.
"""

import re

from src.application.billing import compute_weights
from src.domain.courier_request import bluedart_cod_allowed
from src.domain.shipment import (
    Address,
    BookingForm,
    Courier,
    ServiceOptions,
    Shipment,
    ValidationResult,
)

_NON_DIGITS = re.compile(r"\D")
_PINCODE = re.compile(r"^\d{6}$")

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15


def clean_phone(phone: str | None) -> str:
    """Strip every non-digit character: ``"+91-98765 43210"`` -> ``"919876543210"``."""
    return _NON_DIGITS.sub("", phone or "")


def is_valid_phone(phone: str | None) -> bool:
    return PHONE_MIN_DIGITS <= len(clean_phone(phone)) <= PHONE_MAX_DIGITS


def is_valid_pincode(pincode: str | None) -> bool:
    return bool(_PINCODE.match(pincode or ""))


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


def validate_pickup(pickup_address: Address | None) -> list[str]:
    """Checks on the shared pickup address; every shipment booked from it inherits them."""
    if pickup_address is None:
        return ["Default pickup address is not set"]
    errors: list[str] = []
    if _missing_address_fields(pickup_address):
        errors.append("Default pickup address is incomplete")
    if not is_valid_phone(pickup_address.phone):
        errors.append("Pickup phone must be 10-15 digits")
    if not is_valid_pincode(clean_phone(pickup_address.pincode)):
        errors.append("Pickup pincode must be exactly 6 digits")
    return errors


def validate(
    shipment: Shipment,
    pickup_address: Address | None,
    pickup_errors: list[str] | None = None,
) -> ValidationResult:
    """Check a shipment against courier preconditions before booking.

    ``pickup_errors`` lets a batch check its shared pickup address once and
    reuse the outcome for every item.
    """
    errors: list[str] = []
    dest = shipment.destination
    dest_phone_digits = len(clean_phone(dest.phone))

    if _blank(dest.name):
        errors.append("Receiver name is required")
    if dest_phone_digits < PHONE_MIN_DIGITS:
        errors.append("Receiver phone must have at least 10 digits")
    elif dest_phone_digits > PHONE_MAX_DIGITS:
        errors.append("Receiver phone must have at most 15 digits")
    if len(clean_phone(dest.pincode)) != 6:
        errors.append("Receiver pincode must be exactly 6 digits")
    if _blank(dest.address):
        errors.append("Receiver address is required")
    if _blank(dest.city):
        errors.append("Receiver city is required")
    if not (shipment.weight > 0 or shipment.actual_weight > 0):
        errors.append("Package weight must be greater than 0")
    errors.extend(validate_pickup(pickup_address) if pickup_errors is None else pickup_errors)

    return ValidationResult(
        shipment_id=shipment.id, reference=shipment.order_number, errors=errors
    )


def check_service_rules(courier: Courier | None, service: ServiceOptions) -> list[str]:
    """Courier/service combinations the couriers are known to refuse."""
    errors: list[str] = []
    if service.cod and service.cod_amount <= 0:
        errors.append("COD amount must be greater than 0")
    if courier == Courier.bluedart and not bluedart_cod_allowed(service):
        errors.append("COD is not available with Blue Dart Domestic Priority")
    return errors


# --- Interactive form step gates --------------------------------------------


def _missing_address_fields(addr: Address) -> bool:
    return any(_blank(v) for v in (addr.name, addr.phone, addr.pincode, addr.address))


def validate_addresses_step(form: BookingForm) -> list[str]:
    errors: list[str] = []
    if _missing_address_fields(form.pickup):
        errors.append("Please fill all pickup address fields")
    if _missing_address_fields(form.delivery):
        errors.append("Please fill all delivery address fields")
    if not is_valid_pincode(form.pickup.pincode):
        errors.append("Pickup pincode must be 6 digits")
    if not is_valid_pincode(form.delivery.pincode):
        errors.append("Delivery pincode must be 6 digits")
    if not is_valid_phone(form.pickup.phone):
        errors.append("Sender phone must be 10-15 digits")
    if not is_valid_phone(form.delivery.phone):
        errors.append("Receiver phone must be 10-15 digits")
    return errors


def validate_package_step(form: BookingForm) -> list[str]:
    weights = compute_weights(form.dimensions, form.actual_weight)
    if weights.billable <= 0:
        return ["Please enter valid weight"]
    return []


def validate_products_step(form: BookingForm) -> list[str]:
    errors: list[str] = []
    for product in form.products:
        if product.quantity < 1:
            errors.append(f"Quantity for {product.name or product.sku or 'product'} must be at least 1")
        if product.price < 0:
            errors.append(f"Price for {product.name or product.sku or 'product'} cannot be negative")
    if form.declared_value <= 0:
        errors.append("Please enter commodity value")
    return errors


def validate_courier_step(form: BookingForm) -> list[str]:
    if form.courier is None:
        return ["Please select a courier"]
    return check_service_rules(form.courier, form.service)


def validate_form(form: BookingForm) -> list[str]:
    """Every step gate at once, for callers that skip the step-by-step flow."""
    return [
        *validate_addresses_step(form),
        *validate_package_step(form),
        *validate_products_step(form),
        *validate_courier_step(form),
    ]
