from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ShipmentStatus(StrEnum):
    shopify_pending = "shopify_pending"
    pending = "pending"
    transit = "transit"
    delivered = "delivered"
    cancelled = "cancelled"
    declined = "declined"


TERMINAL_STATUSES = frozenset(
    {ShipmentStatus.delivered, ShipmentStatus.cancelled, ShipmentStatus.declined}
)


class ClientType(StrEnum):
    franchise = "franchise"
    shopify = "shopify"


class Courier(StrEnum):
    bluedart = "Blue Dart"
    dtdc = "DTDC"


class BlueDartServiceType(StrEnum):
    PRIORITY = "PRIORITY"
    APEX = "APEX"
    BHARAT_DART = "BHARAT_DART"
    SURFACE = "SURFACE"


class Address(BaseModel):
    """A pickup or delivery address as entered by the client."""

    name: str = ""
    phone: str = ""
    pincode: str = ""  # 6-digit Indian PIN
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = "India"


class Dimensions(BaseModel):
    length: float | None = None  # cm
    width: float | None = None
    height: float | None = None


class ProductLine(BaseModel):
    sku: str = ""
    name: str = ""
    quantity: int = 1
    price: float = 0.0


class WeightBreakdown(BaseModel):
    volumetric: float
    actual: float
    billable: float


class ServiceOptions(BaseModel):
    """Courier service selection for a booking."""

    service_type: BlueDartServiceType = BlueDartServiceType.APEX
    dtdc_service_type_id: str = "B2C SMART EXPRESS"
    cod: bool = False
    cod_amount: float = 0.0
    b2c_account: bool = False


class Shipment(BaseModel):
    """Domain model for a shipment and its courier lifecycle."""

    id: str | None = None  # assigned by the store on create
    client_id: str
    client_name: str = ""
    client_type: ClientType = ClientType.franchise

    origin: Address | None = None
    destination: Address

    dimensions: Dimensions = Field(default_factory=Dimensions)
    actual_weight: float = 0.0  # kg
    weight: float = 0.0  # billable kg

    products: list[ProductLine] = Field(default_factory=list)
    declared_value: float = Field(default=0.0, ge=0)
    reference_no: str = ""
    commodity_description: str = ""

    shopify_order_id: str | None = None
    shopify_order_number: str | None = None
    shopify_line_items: list[dict] = Field(default_factory=list)
    shopify_fulfillment_status: str | None = None

    courier: Courier | None = None
    courier_tracking_id: str = ""  # AWB / reference number
    service_type: str | None = None
    product_code: str | None = None
    pack_type: str | None = None
    cod: bool = False
    cod_amount: float = 0.0
    # Courier-computed weight (DTDC); informational, never reconciled with ``weight``
    courier_chargeable_weight: float | None = None
    courier_fields: dict = Field(default_factory=dict)
    last_booking_error: str | None = None
    # Last status text the courier reported when tracked
    courier_status: str | None = None

    status: ShipmentStatus = ShipmentStatus.pending
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def order_number(self) -> str:
        return self.shopify_order_number or self.reference_no or (self.id or "")


class BookingRequest(BaseModel):
    """Courier-agnostic booking request built right before dispatch."""

    courier: Courier
    consignee: Address
    shipper: Address
    service: ServiceOptions = Field(default_factory=ServiceOptions)
    weight: float
    actual_weight: float
    dimensions: Dimensions
    declared_value: float
    reference_no: str
    commodity_description: str = ""
    piece_count: int = 1


class BookingConfirmation(BaseModel):
    """Normalized courier response for a successful booking."""

    tracking_id: str
    raw_status: str = ""
    chargeable_weight: float | None = None
    courier_fields: dict = Field(default_factory=dict)


class TrackingUpdate(BaseModel):
    """Normalized courier tracking response."""

    tracking_id: str
    raw_status: str = ""
    # None when the courier status has no lifecycle equivalent (e.g. RTO)
    status: ShipmentStatus | None = None
    location: str = ""
    status_at: str = ""


class PincodeServiceability(BaseModel):
    pincode: str
    serviceable: bool
    area_code: str = ""
    description: str = ""
    message: str = ""


class StatusSyncResult(BaseModel):
    id: str
    order_number: str
    status: ShipmentStatus | None = None
    changed: bool = False
    error: str | None = None


class ValidationResult(BaseModel):
    shipment_id: str | None = None
    reference: str = ""
    errors: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class BulkShipResult(BaseModel):
    id: str
    order_number: str
    success: bool
    awb: str | None = None
    error: str | None = None


class BulkProgress(BaseModel):
    completed: int
    total: int
    result: BulkShipResult


class BookingResult(BaseModel):
    shipment_id: str
    tracking_id: str
    reference_no: str
    warnings: list[str] = Field(default_factory=list)


class BookingForm(BaseModel):
    """Everything the interactive single-booking flow collects."""

    client_id: str
    client_name: str = ""
    client_type: ClientType = ClientType.franchise
    pickup: Address = Field(default_factory=Address)
    delivery: Address = Field(default_factory=Address)
    dimensions: Dimensions = Field(
        default_factory=lambda: Dimensions(length=10, width=10, height=10)
    )
    actual_weight: float | str = 0.5
    products: list[ProductLine] = Field(default_factory=list)
    commodity_description: str = ""
    declared_value: float = 0.0
    reference_no: str | None = None
    courier: Courier | None = None
    service: ServiceOptions = Field(default_factory=ServiceOptions)
    # Set when booking an imported Shopify order that already has a record
    shopify_shipment_id: str | None = None


class ShipmentFilters(BaseModel):
    client_id: str | None = None
    courier: Courier | None = None
    status: ShipmentStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
