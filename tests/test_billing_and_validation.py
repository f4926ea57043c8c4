"""Tests for weight/price calculation and pre-dispatch validation."""

import pytest

from src.application.billing import compute_price, compute_weights
from src.application.validator import (
    check_service_rules,
    clean_phone,
    is_valid_phone,
    is_valid_pincode,
    validate,
    validate_addresses_step,
    validate_package_step,
    validate_pickup,
    validate_products_step,
)
from src.domain.shipment import (
    Address,
    BlueDartServiceType,
    BookingForm,
    Courier,
    Dimensions,
    ProductLine,
    ServiceOptions,
    Shipment,
)

PICKUP = Address(
    name="Roast and Krunch Cafe",
    phone="9876543210",
    pincode="500081",
    address="Capital Park, Madhapur",
    city="Hyderabad",
    state="Telangana",
)
DELIVERY = Address(
    name="Asha Rao",
    phone="+91-98765 43210",
    pincode="400001",
    address="12 Marine Drive",
    city="Mumbai",
    state="Maharashtra",
)


def _make_shipment(**kwargs) -> Shipment:
    defaults = dict(
        id="ship-1",
        client_id="client-1",
        destination=DELIVERY,
        actual_weight=0.5,
        weight=0.5,
        reference_no="#1001",
    )
    return Shipment(**{**defaults, **kwargs})


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("dims", "actual", "volumetric", "billable"),
    [
        (Dimensions(length=10, width=10, height=10), 0.5, 0.2, 0.5),
        (Dimensions(length=30, width=30, height=30), 1, 5.4, 5.4),
        ({"length": "40", "width": "20", "height": "15"}, "2.5", 2.4, 2.5),
    ],
)
def test_compute_weights_billable_is_max_of_volumetric_and_actual(
    dims, actual, volumetric, billable
) -> None:
    """billable = max(round(l*w*h/5000, 2), actual)."""
    weights = compute_weights(dims, actual)
    assert weights.volumetric == volumetric
    assert weights.billable == billable


def test_compute_weights_non_numeric_dimension_gives_zero_volumetric() -> None:
    weights = compute_weights({"length": "abc", "width": "10", "height": "10"}, "1.2")
    assert weights.volumetric == 0
    assert weights.actual == 1.2
    assert weights.billable == 1.2


def test_compute_weights_unparseable_actual_defaults_to_zero() -> None:
    weights = compute_weights(Dimensions(), "heavy")
    assert weights.actual == 0
    assert weights.billable == 0


def test_compute_weights_is_idempotent() -> None:
    dims = Dimensions(length=25.5, width=12, height=8)
    assert compute_weights(dims, 0.75) == compute_weights(dims, 0.75)


def test_compute_price_uses_base_and_per_kg_rate() -> None:
    assert compute_price(0.5) == 65
    assert compute_price(5.4) == 212
    assert compute_price(0) == 50


# ---------------------------------------------------------------------------
# Phone / pincode helpers
# ---------------------------------------------------------------------------


def test_clean_phone_strips_non_digits() -> None:
    assert clean_phone("+91-98765 43210") == "919876543210"
    assert is_valid_phone("+91-98765 43210")


@pytest.mark.parametrize(("phone", "valid"), [("98765", False), ("9876543210", True), ("1" * 16, False)])
def test_phone_length_range(phone: str, valid: bool) -> None:
    assert is_valid_phone(phone) is valid


@pytest.mark.parametrize(("pincode", "valid"), [("400001", True), ("40001", False), ("abcdef", False)])
def test_pincode_requires_exactly_six_digits(pincode: str, valid: bool) -> None:
    assert is_valid_pincode(pincode) is valid


# ---------------------------------------------------------------------------
# Shared validator
# ---------------------------------------------------------------------------


def test_validate_accepts_complete_shipment() -> None:
    result = validate(_make_shipment(), PICKUP)
    assert result.is_valid
    assert result.shipment_id == "ship-1"
    assert result.reference == "#1001"


def test_validate_accumulates_every_failure_in_order() -> None:
    shipment = _make_shipment(
        destination=Address(phone="12345", pincode="4000"), weight=0, actual_weight=0
    )
    result = validate(shipment, None)

    assert not result.is_valid
    assert result.errors == [
        "Receiver name is required",
        "Receiver phone must have at least 10 digits",
        "Receiver pincode must be exactly 6 digits",
        "Receiver address is required",
        "Receiver city is required",
        "Package weight must be greater than 0",
        "Default pickup address is not set",
    ]


def test_validate_missing_pickup_is_a_validation_error() -> None:
    result = validate(_make_shipment(), None)
    assert result.errors == ["Default pickup address is not set"]



def test_validate_rejects_receiver_phone_over_fifteen_digits() -> None:
    shipment = _make_shipment(destination=DELIVERY.model_copy(update={"phone": "12345678901234567890"}))

    assert validate(shipment, PICKUP).errors == ["Receiver phone must have at most 15 digits"]


def test_validate_pickup_checks_phone_and_pincode() -> None:
    assert validate_pickup(PICKUP) == []
    assert validate_pickup(PICKUP.model_copy(update={"phone": "98765", "pincode": "5000"})) == [
        "Pickup phone must be 10-15 digits",
        "Pickup pincode must be exactly 6 digits",
    ]


def test_validate_reuses_precomputed_pickup_errors() -> None:
    result = validate(_make_shipment(), PICKUP, ["Pickup phone must be 10-15 digits"])

    assert result.errors == ["Pickup phone must be 10-15 digits"]

# ---------------------------------------------------------------------------
# Service rules
# ---------------------------------------------------------------------------


def test_cod_with_domestic_priority_rejected_for_non_b2c() -> None:
    service = ServiceOptions(
        service_type=BlueDartServiceType.PRIORITY, cod=True, cod_amount=500
    )
    assert check_service_rules(Courier.bluedart, service) == [
        "COD is not available with Blue Dart Domestic Priority"
    ]


def test_cod_with_domestic_priority_allowed_for_b2c() -> None:
    service = ServiceOptions(
        service_type=BlueDartServiceType.PRIORITY, cod=True, cod_amount=500, b2c_account=True
    )
    assert check_service_rules(Courier.bluedart, service) == []


def test_cod_requires_positive_amount() -> None:
    assert check_service_rules(Courier.dtdc, ServiceOptions(cod=True)) == [
        "COD amount must be greater than 0"
    ]


# ---------------------------------------------------------------------------
# Form step gates
# ---------------------------------------------------------------------------


def _make_form(**kwargs) -> BookingForm:
    defaults = dict(
        client_id="client-1",
        pickup=PICKUP,
        delivery=DELIVERY,
        products=[ProductLine(sku="CB-250", name="Coffee beans", quantity=1, price=250)],
        declared_value=250,
        courier=Courier.bluedart,
    )
    return BookingForm(**{**defaults, **kwargs})


def test_addresses_step_passes_for_complete_addresses() -> None:
    assert validate_addresses_step(_make_form()) == []


def test_addresses_step_reports_missing_fields_and_bad_formats() -> None:
    form = _make_form(
        pickup=PICKUP.model_copy(update={"address": ""}),
        delivery=DELIVERY.model_copy(update={"pincode": "40001", "phone": "98765"}),
    )
    assert validate_addresses_step(form) == [
        "Please fill all pickup address fields",
        "Delivery pincode must be 6 digits",
        "Receiver phone must be 10-15 digits",
    ]


def test_package_step_requires_positive_billable_weight() -> None:
    form = _make_form(dimensions=Dimensions(), actual_weight="0")
    assert validate_package_step(form) == ["Please enter valid weight"]


def test_products_step_requires_declared_value() -> None:
    form = _make_form(declared_value=0)
    assert validate_products_step(form) == ["Please enter commodity value"]
