"""Wire DTOs for the courier booking APIs.

Field names match each courier's JSON schema exactly. ``courier`` is the union
tag and is excluded from the serialized payload.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from .shipment import BlueDartServiceType, ServiceOptions

# --- Blue Dart --------------------------------------------------------------


class BlueDartConsignee(BaseModel):
    ConsigneeName: str
    ConsigneeAddress1: str
    ConsigneeAddress2: str = ""
    ConsigneeAddress3: str = ""
    ConsigneePincode: str
    ConsigneeMobile: str
    ConsigneeTelephone: str = ""
    ConsigneeAttention: str = ""


class BlueDartShipper(BaseModel):
    CustomerName: str
    CustomerCode: str
    CustomerAddress1: str
    CustomerAddress2: str = ""
    CustomerAddress3: str = ""
    CustomerPincode: str
    CustomerMobile: str
    CustomerTelephone: str = ""
    OriginArea: str
    Sender: str
    IsToPayCustomer: bool = False


class BlueDartDimension(BaseModel):
    Length: float
    Breadth: float
    Height: float
    Count: str = "1"


class BlueDartCommodity(BaseModel):
    CommodityDetail1: str = ""


class BlueDartServices(BaseModel):
    ProductCode: str
    SubProductCode: str | None = None  # "C" for COD, omitted otherwise
    ProductType: int = 0
    PieceCount: str = "1"
    PackType: str = ""
    ActualWeight: str
    Dimensions: list[BlueDartDimension] = Field(default_factory=list)
    CollectableAmount: float = 0
    DeclaredValue: float
    CreditReferenceNo: str
    PickupDate: str  # "/Date(<epoch ms>)/"
    PickupTime: str = "1600"
    PDFOutputNotRequired: bool = False
    Commodity: BlueDartCommodity = Field(default_factory=BlueDartCommodity)


class BlueDartWaybill(BaseModel):
    Consignee: BlueDartConsignee
    Shipper: BlueDartShipper
    Services: BlueDartServices


class BlueDartProfile(BaseModel):
    LoginID: str
    LicenceKey: str
    Api_type: str = "S"
    Version: str = "1.10"


class BlueDartRequest(BaseModel):
    courier: Literal["Blue Dart"] = Field(default="Blue Dart", exclude=True)
    Request: BlueDartWaybill
    Profile: BlueDartProfile


# --- DTDC (Shipsy) ----------------------------------------------------------


class DTDCAddressDetails(BaseModel):
    name: str
    phone: str
    alternate_phone: str = ""
    address_line_1: str
    address_line_2: str = ""
    pincode: str
    city: str
    state: str


class DTDCRequest(BaseModel):
    courier: Literal["DTDC"] = Field(default="DTDC", exclude=True)
    customer_code: str
    service_type_id: str
    load_type: str = "NON-DOCUMENT"
    description: str = ""
    dimension_unit: str = "cm"
    length: str
    width: str
    height: str
    weight_unit: str = "kg"
    weight: str
    declared_value: str
    num_pieces: str = "1"
    origin_details: DTDCAddressDetails
    destination_details: DTDCAddressDetails
    customer_reference_number: str
    cod_collection_mode: str = ""
    cod_amount: str = ""
    commodity_id: str = "1"
    is_risk_surcharge_applicable: str = "false"
    reference_number: str = ""


CourierRequest = Annotated[BlueDartRequest | DTDCRequest, Field(discriminator="courier")]


# --- Blue Dart service catalogue --------------------------------------------


class BlueDartProduct(BaseModel):
    code: str
    name: str
    pack_type: str = ""
    b2b_only: bool = False


BLUEDART_SERVICES: dict[BlueDartServiceType, BlueDartProduct] = {
    BlueDartServiceType.PRIORITY: BlueDartProduct(
        code="D", name="Domestic Priority", b2b_only=True
    ),
    BlueDartServiceType.APEX: BlueDartProduct(code="A", name="Dart Apex"),
    BlueDartServiceType.BHARAT_DART: BlueDartProduct(
        code="A", name="Bharat Dart", pack_type="L"
    ),
    BlueDartServiceType.SURFACE: BlueDartProduct(
        code="E", name="Dart Surfaceline", b2b_only=True
    ),
}

COD_SUB_PRODUCT_CODE = "C"


def bluedart_cod_allowed(service: ServiceOptions) -> bool:
    """Domestic Priority refuses COD unless the account is B2C."""
    if not service.cod:
        return True
    return service.service_type != BlueDartServiceType.PRIORITY or service.b2c_account
