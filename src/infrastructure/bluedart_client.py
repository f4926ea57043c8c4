from collections.abc import Callable
from datetime import datetime, timedelta

import httpx
from loguru import logger
from pydantic import BaseModel

from src.domain.courier_request import (
    BLUEDART_SERVICES,
    COD_SUB_PRODUCT_CODE,
    BlueDartCommodity,
    BlueDartConsignee,
    BlueDartDimension,
    BlueDartProfile,
    BlueDartRequest,
    BlueDartServices,
    BlueDartShipper,
    BlueDartWaybill,
    bluedart_cod_allowed,
)
from src.domain.errors import (
    CourierAuthError,
    CourierBookingError,
    CourierError,
    CourierTrackingError,
    ShipmentValidationError,
)
from src.domain.shipment import (
    BookingConfirmation,
    BookingRequest,
    PincodeServiceability,
    ShipmentStatus,
    TrackingUpdate,
)
from src.infrastructure.token_cache import TokenCache, utc_now
from src.shared.decorators import log_errors
from src.shared.http import detail_text, error_detail

BLUEDART_SANDBOX_URL = "https://apigateway-sandbox.bluedart.com/in/transportation"
BLUEDART_PRODUCTION_URL = "https://apigateway.bluedart.com/in/transportation"

# Blue Dart address fields are fixed-width
ADDRESS_LINE_WIDTH = 30


class BlueDartAccount(BaseModel):
    """Account-level values Blue Dart expects on every waybill."""

    login_id: str
    licence_key: str
    customer_code: str
    billing_area: str = "HYD"
    shipper_name: str | None = None  # overrides the pickup contact name
    pickup_time: str = "1600"


def to_bluedart_date(moment: datetime) -> str:
    """Encode as Blue Dart's ``/Date(<epoch ms>)/`` format."""
    return f"/Date({int(moment.timestamp() * 1000)})/"


def _split_address(address: str) -> tuple[str, str]:
    return address[:ADDRESS_LINE_WIDTH], address[ADDRESS_LINE_WIDTH : ADDRESS_LINE_WIDTH * 2]


def build_bluedart_request(
    request: BookingRequest, account: BlueDartAccount, now: datetime
) -> BlueDartRequest:
    """Translate a canonical request into a GenerateWayBill payload.

    Raises:
        ShipmentValidationError: COD requested on a product that refuses it.
    """
    service = request.service
    if not bluedart_cod_allowed(service):
        raise ShipmentValidationError(
            "COD is not available with Blue Dart Domestic Priority"
        )

    product = BLUEDART_SERVICES[service.service_type]
    consignee, shipper = request.consignee, request.shipper
    consignee_1, consignee_2 = _split_address(consignee.address)
    shipper_1, shipper_2 = _split_address(shipper.address)
    dims = request.dimensions

    return BlueDartRequest(
        Request=BlueDartWaybill(
            Consignee=BlueDartConsignee(
                ConsigneeName=consignee.name,
                ConsigneeAddress1=consignee_1,
                ConsigneeAddress2=consignee_2,
                ConsigneeAddress3=consignee.city,
                ConsigneePincode=consignee.pincode,
                ConsigneeMobile=consignee.phone,
                ConsigneeTelephone=consignee.phone,
                ConsigneeAttention=consignee.name,
            ),
            Shipper=BlueDartShipper(
                CustomerName=account.shipper_name or shipper.name,
                CustomerCode=account.customer_code,
                CustomerAddress1=shipper_1,
                CustomerAddress2=shipper_2,
                CustomerAddress3=shipper.city,
                CustomerPincode=shipper.pincode,
                CustomerMobile=shipper.phone,
                CustomerTelephone=shipper.phone,
                OriginArea=account.billing_area,
                Sender=shipper.name,
            ),
            Services=BlueDartServices(
                ProductCode=product.code,
                SubProductCode=COD_SUB_PRODUCT_CODE if service.cod else None,
                PieceCount=str(request.piece_count),
                PackType=product.pack_type,
                ActualWeight=str(request.actual_weight),
                Dimensions=[
                    BlueDartDimension(
                        Length=dims.length or 0,
                        Breadth=dims.width or 0,
                        Height=dims.height or 0,
                        Count=str(request.piece_count),
                    )
                ],
                CollectableAmount=service.cod_amount if service.cod else 0,
                DeclaredValue=request.declared_value,
                CreditReferenceNo=request.reference_no,
                PickupDate=to_bluedart_date(now + timedelta(hours=24)),
                PickupTime=account.pickup_time,
                Commodity=BlueDartCommodity(CommodityDetail1=request.commodity_description),
            ),
        ),
        Profile=BlueDartProfile(LoginID=account.login_id, LicenceKey=account.licence_key),
    )


def _status_message(data: dict) -> str:
    statuses = data.get("Status") or []
    if statuses and isinstance(statuses[0], dict):
        if message := statuses[0].get("StatusInformation"):
            return message
    return "Unknown Blue Dart Error"


def parse_bluedart_result(raw: dict) -> BookingConfirmation:
    """Decide whether a GenerateWayBill response is a booking.

    Only an explicit ``IsError: false`` with an ``AWBNo`` counts as success.
    """
    data = raw.get("GenerateWayBillResult") or raw
    if data.get("IsError") is False and data.get("AWBNo"):
        return BookingConfirmation(
            tracking_id=str(data["AWBNo"]),
            raw_status="Generated",
            courier_fields={
                "destinationArea": data.get("DestinationArea") or "",
                "destinationLocation": data.get("DestinationLocation") or "",
                "tokenNumber": data.get("TokenNumber") or "",
            },
        )
    raise CourierBookingError(f"Blue Dart Error: {_status_message(data)}", detail=raw)


def parse_bluedart_cancel_result(raw: dict) -> None:
    data = raw.get("CancelWaybillResult") or raw
    if data.get("IsError") is False:
        return
    raise CourierBookingError(f"Blue Dart Error: {_status_message(data)}", detail=raw)


# Scan status types from the tracking API; anything else (RT, NF, ...) is left unmapped
_BLUEDART_STATUS = {
    "PU": ShipmentStatus.transit,
    "IT": ShipmentStatus.transit,
    "UD": ShipmentStatus.transit,
    "DL": ShipmentStatus.delivered,
}


def parse_bluedart_tracking(raw: dict, tracking_id: str) -> TrackingUpdate:
    """Read the first shipment of a tracking response.

    Raises:
        CourierTrackingError: the AWB is unknown or the response has no shipment.
    """
    data = raw.get("ShipmentData") or raw
    shipments = data.get("Shipment") or []
    if isinstance(shipments, dict):
        shipments = [shipments]
    if not shipments:
        message = data.get("Error") or data.get("ErrorMessage") or "No tracking data for AWB"
        raise CourierTrackingError(f"Blue Dart Error: {message}", detail=raw)

    shipment = shipments[0]
    status_type = str(shipment.get("StatusType") or "").upper()
    return TrackingUpdate(
        tracking_id=str(shipment.get("WaybillNo") or tracking_id),
        raw_status=shipment.get("Status") or status_type,
        status=_BLUEDART_STATUS.get(status_type),
        location=shipment.get("StatusLocation") or "",
        status_at=" ".join(
            part for part in (shipment.get("StatusDate"), shipment.get("StatusTime")) if part
        ),
    )


def parse_bluedart_pincode(raw: dict, pincode: str) -> PincodeServiceability:
    """Only an explicit ``IsError: false`` means Blue Dart serves the pincode."""
    data = raw.get("GetServicesforPincodeResult") or raw
    return PincodeServiceability(
        pincode=pincode,
        serviceable=data.get("IsError") is False,
        area_code=data.get("AreaCode") or "",
        description=data.get("PincodeDescription") or "",
        message=data.get("ErrorMessage") or "",
    )


class BlueDartClient:
    """Blue Dart waybill, tracking and pincode finder APIs."""

    TOKEN_PATH = "/token/v1/login"
    WAYBILL_PATH = "/waybill/v1/GenerateWayBill"
    CANCEL_PATH = "/waybill/v1/CancelWaybill"
    TRACK_PATH = "/tracking/v1/shipment"
    PINCODE_PATH = "/finder/v1/pincode"

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        client_id: str,
        client_secret: str,
        account: BlueDartAccount,
        token_cache: TokenCache | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._account = account
        self._clock = clock
        self._tokens = token_cache or TokenCache(self._fetch_token, clock=clock)

    def _fetch_token(self) -> str:
        if not self._client_id or not self._client_secret:
            raise CourierAuthError("Blue Dart credentials not configured")

        logger.info("[BlueDart] Authenticating...")
        try:
            response = self._client.get(
                self._base_url + self.TOKEN_PATH,
                params={"clientID": self._client_id, "clientSecret": self._client_secret},
            )
            response.raise_for_status()
            body: dict = response.json()
        except httpx.HTTPError as exc:
            raise CourierAuthError(
                "Failed to authenticate with Blue Dart", detail=error_detail(exc)
            ) from exc
        except ValueError as exc:
            raise CourierAuthError(
                "Failed to authenticate with Blue Dart", detail=response.text
            ) from exc

        token = body.get("JWTToken") or body.get("token")
        if not token:
            raise CourierAuthError("No token received from Blue Dart", detail=body)
        return token

    def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[CourierError] = CourierBookingError,
        bearer: bool = False,
        **kwargs,
    ) -> dict:
        token = self._tokens.get_valid()
        # Waybill and tracking APIs take a JWTToken header; the finder API a bearer
        auth = {"Authorization": f"Bearer {token}"} if bearer else {"JWTToken": token}
        try:
            response = self._client.request(
                method,
                self._base_url + path,
                headers=auth | {"Content-Type": "application/json"},
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                self._tokens.invalidate()
            detail = error_detail(exc)
            raise error_cls(f"Blue Dart request failed: {detail_text(detail)}", detail=detail) from exc
        except httpx.HTTPError as exc:
            detail = error_detail(exc)
            raise error_cls(f"Blue Dart request failed: {detail_text(detail)}", detail=detail) from exc
        except ValueError as exc:
            raise error_cls("Blue Dart returned a non-JSON response", detail=response.text) from exc

    def _post(self, path: str, payload: dict) -> dict:
        return self._request("POST", path, json=payload)

    @log_errors
    def book_shipment(self, request: BookingRequest) -> BookingConfirmation:
        payload = build_bluedart_request(request, self._account, self._clock())
        logger.info(f"[BlueDart] Generating waybill for {request.reference_no}...")
        raw = self._post(self.WAYBILL_PATH, payload.model_dump(mode="json", exclude_none=True))
        confirmation = parse_bluedart_result(raw)
        logger.info(f"[BlueDart] Waybill generated: {confirmation.tracking_id}")
        return confirmation

    @log_errors
    def cancel_shipment(self, tracking_id: str) -> None:
        logger.info(f"[BlueDart] Cancelling waybill {tracking_id}...")
        payload = {
            "Request": {"AWBNo": tracking_id},
            "Profile": BlueDartProfile(
                LoginID=self._account.login_id, LicenceKey=self._account.licence_key
            ).model_dump(),
        }
        parse_bluedart_cancel_result(self._post(self.CANCEL_PATH, payload))
        logger.info(f"[BlueDart] Waybill {tracking_id} cancelled")

    @log_errors
    def track_shipment(self, tracking_id: str) -> TrackingUpdate:
        logger.info(f"[BlueDart] Tracking waybill {tracking_id}...")
        raw = self._request(
            "GET",
            self.TRACK_PATH,
            error_cls=CourierTrackingError,
            params={
                "handler": "tnt",
                "action": "custawbquery",
                "loginid": self._account.login_id,
                "lickey": self._account.licence_key,
                "awb": "awb",
                "numbers": tracking_id,
                "format": "json",
                "scan": 1,
                "verno": 1,
            },
        )
        update = parse_bluedart_tracking(raw, tracking_id)
        logger.info(f"[BlueDart] Waybill {tracking_id}: {update.raw_status}")
        return update

    @log_errors
    def check_pincode(self, pincode: str) -> PincodeServiceability:
        """Ask the pincode finder whether Blue Dart serves ``pincode``.

        Raises:
            ShipmentValidationError: ``pincode`` is not 6 digits; no call is made.
            CourierError: the finder API call failed.
        """
        pincode = pincode.strip()
        if not (len(pincode) == 6 and pincode.isdigit()):
            raise ShipmentValidationError("Pincode must be exactly 6 digits")
        raw = self._request("GET", self.PINCODE_PATH, bearer=True, params={"pincode": pincode})
        result = parse_bluedart_pincode(raw, pincode)
        logger.info(f"[BlueDart] Pincode {pincode} serviceable: {result.serviceable}")
        return result
