from collections.abc import Callable
from datetime import datetime

import httpx
from loguru import logger
from pydantic import BaseModel

from src.domain.courier_request import DTDCAddressDetails, DTDCRequest
from src.domain.errors import CourierAuthError, CourierBookingError, CourierTrackingError
from src.domain.shipment import (
    Address,
    BookingConfirmation,
    BookingRequest,
    ShipmentStatus,
    TrackingUpdate,
)
from src.infrastructure.token_cache import TokenCache, utc_now
from src.shared.decorators import log_errors
from src.shared.http import detail_text, error_detail

DTDC_STAGING_URL = "https://alphademodashboardapi.shipsy.io"
DTDC_PRODUCTION_URL = "https://dtdcapi.shipsy.io"
# Tracking lives on a separate service with its own credentials
DTDC_TRACKING_URL = "https://blktracksvc.dtdc.com/dtdc-api"


class DTDCAccount(BaseModel):
    customer_code: str
    load_type: str = "NON-DOCUMENT"
    commodity_id: str = "1"


class DTDCTrackingAccount(BaseModel):
    username: str
    password: str


def _address_details(addr: Address) -> DTDCAddressDetails:
    return DTDCAddressDetails(
        name=addr.name,
        phone=addr.phone,
        address_line_1=addr.address,
        pincode=addr.pincode,
        city=addr.city,
        state=addr.state,
    )


def _number(value: float | None) -> str:
    return f"{value or 0:g}"


def build_dtdc_request(request: BookingRequest, account: DTDCAccount) -> DTDCRequest:
    service = request.service
    dims = request.dimensions
    return DTDCRequest(
        customer_code=account.customer_code,
        service_type_id=service.dtdc_service_type_id,
        load_type=account.load_type,
        description=request.commodity_description,
        length=_number(dims.length),
        width=_number(dims.width),
        height=_number(dims.height),
        weight=_number(request.weight),
        declared_value=_number(request.declared_value),
        num_pieces=str(request.piece_count),
        origin_details=_address_details(request.shipper),
        destination_details=_address_details(request.consignee),
        customer_reference_number=request.reference_no,
        cod_collection_mode="cash" if service.cod else "",
        cod_amount=_number(service.cod_amount) if service.cod else "",
        commodity_id=account.commodity_id,
    )


def _first_item(raw: dict) -> dict:
    data = raw.get("data") or []
    return data[0] if data and isinstance(data[0], dict) else {}


def parse_dtdc_result(raw: dict) -> BookingConfirmation:
    """A booking needs both ``status == "OK"`` and ``data[0].success is True``.

    A top-level OK with a failed item is still a failure.
    """
    item = _first_item(raw)
    if raw.get("status") == "OK" and item.get("success") is True and item.get("reference_number"):
        chargeable = item.get("chargeable_weight")
        return BookingConfirmation(
            tracking_id=str(item["reference_number"]),
            raw_status=str(raw["status"]),
            chargeable_weight=float(chargeable) if chargeable is not None else None,
            courier_fields={"dtdcReferenceNumber": str(item["reference_number"])},
        )
    message = item.get("message") or raw.get("message") or "Unknown DTDC Error"
    raise CourierBookingError(f"DTDC Error: {message}", detail=raw)


def parse_dtdc_cancel_result(raw: dict) -> None:
    data = raw.get("data") or []
    failed = [d for d in data if isinstance(d, dict) and d.get("success") is False]
    if raw.get("status") == "OK" and not failed:
        return
    message = (failed[0].get("message") if failed else None) or raw.get("message") or "Unknown DTDC Error"
    raise CourierBookingError(f"DTDC Error: {message}", detail=raw)


# Matched against the lowercased ``strStatus``; unmatched statuses (RTO, ...) stay unmapped
_DTDC_STATUS = (
    ("delivered", ShipmentStatus.delivered),
    ("in transit", ShipmentStatus.transit),
    ("picked up", ShipmentStatus.transit),
    ("out for delivery", ShipmentStatus.transit),
    ("reached at destination", ShipmentStatus.transit),
    ("booked", ShipmentStatus.pending),
)


def dtdc_tracking_status(raw_status: str) -> ShipmentStatus | None:
    text = raw_status.strip().lower()
    if "undelivered" in text or "not delivered" in text:
        return None
    for needle, status in _DTDC_STATUS:
        if needle in text:
            return status
    return None


def parse_dtdc_tracking(raw: dict, tracking_id: str) -> TrackingUpdate:
    header = raw.get("trackHeader")
    if raw.get("statusFlag") is False or not isinstance(header, dict):
        errors = raw.get("errorDetails") or []
        message = None
        if errors and isinstance(errors[0], dict):
            message = errors[0].get("value") or errors[0].get("name")
        raise CourierTrackingError(
            f"DTDC Error: {message or 'Unknown DTDC tracking error'}", detail=raw
        )

    raw_status = header.get("strStatus") or ""
    return TrackingUpdate(
        tracking_id=str(header.get("strShipmentNo") or tracking_id),
        raw_status=raw_status,
        status=dtdc_tracking_status(raw_status),
        location=header.get("strStatusRelName") or header.get("strDestination") or "",
        status_at=" ".join(
            part
            for part in (header.get("strStatusTransOn"), header.get("strStatusTransTime"))
            if part
        ),
    )


class DTDCClient:
    """DTDC consignment API (Shipsy platform) plus DTDC's own tracking service."""

    CREATE_ORDER_PATH = "/api/customer/integration/consignment/softdata"
    CANCEL_PATH = "/api/customer/integration/consignment/cancel"
    TRACKING_AUTH_PATH = "/api/dtdc/authenticate"
    TRACK_PATH = "/rest/JSONCnTrk/getTrackDetails"

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        api_key: str,
        account: DTDCAccount,
        tracking_account: DTDCTrackingAccount | None = None,
        tracking_base_url: str = DTDC_TRACKING_URL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._account = account
        self._tracking_account = tracking_account
        self._tracking_base_url = tracking_base_url.rstrip("/")
        self._tracking_tokens = TokenCache(self._fetch_tracking_token, clock=clock)

    def _fetch_tracking_token(self) -> str:
        account = self._tracking_account
        if account is None or not account.username or not account.password:
            raise CourierAuthError("DTDC tracking credentials not configured")

        logger.info("[DTDC] Authenticating with tracking service...")
        try:
            response = self._client.get(
                self._tracking_base_url + self.TRACKING_AUTH_PATH,
                params={"username": account.username, "password": account.password},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CourierAuthError(
                "Failed to authenticate with DTDC tracking", detail=error_detail(exc)
            ) from exc

        # The token comes back as the bare response body
        token = response.text.strip().strip('"')
        if not token:
            raise CourierAuthError("No token received from DTDC tracking", detail=response.text)
        return token

    def _post(self, path: str, payload: dict) -> dict:
        if not self._api_key:
            raise CourierAuthError("DTDC API key not configured")
        try:
            response = self._client.post(
                self._base_url + path,
                headers={"api-key": self._api_key, "Content-Type": "application/json"},
                json=payload,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            detail = error_detail(exc)
            raise CourierBookingError(
                f"DTDC request failed: {detail_text(detail)}", detail=detail
            ) from exc
        except ValueError as exc:
            raise CourierBookingError(
                "DTDC returned a non-JSON response", detail=response.text
            ) from exc

    @log_errors
    def book_shipment(self, request: BookingRequest) -> BookingConfirmation:
        consignment = build_dtdc_request(request, self._account)
        logger.info(f"[DTDC] Creating order {request.reference_no}...")
        raw = self._post(
            self.CREATE_ORDER_PATH,
            {"consignments": [consignment.model_dump(mode="json")]},
        )
        confirmation = parse_dtdc_result(raw)
        logger.info(
            f"[DTDC] Order created: {confirmation.tracking_id} "
            f"(chargeable weight {confirmation.chargeable_weight})"
        )
        return confirmation

    @log_errors
    def cancel_shipment(self, tracking_id: str) -> None:
        logger.info(f"[DTDC] Cancelling shipment {tracking_id}...")
        raw = self._post(
            self.CANCEL_PATH,
            {"AWBNo": [tracking_id], "customerCode": self._account.customer_code},
        )
        parse_dtdc_cancel_result(raw)
        logger.info(f"[DTDC] Shipment {tracking_id} cancelled")

    @log_errors
    def track_shipment(self, tracking_id: str) -> TrackingUpdate:
        token = self._tracking_tokens.get_valid()
        logger.info(f"[DTDC] Tracking shipment {tracking_id}...")
        try:
            response = self._client.post(
                self._tracking_base_url + self.TRACK_PATH,
                headers={"X-Access-Token": token},
                data={"trkType": "cnno", "strcnno": tracking_id, "addtnlDtl": "Y"},
            )
            response.raise_for_status()
            raw = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                self._tracking_tokens.invalidate()
            detail = error_detail(exc)
            raise CourierTrackingError(
                f"DTDC tracking failed: {detail_text(detail)}", detail=detail
            ) from exc
        except httpx.HTTPError as exc:
            detail = error_detail(exc)
            raise CourierTrackingError(
                f"DTDC tracking failed: {detail_text(detail)}", detail=detail
            ) from exc
        except ValueError as exc:
            raise CourierTrackingError(
                "DTDC tracking returned a non-JSON response", detail=response.text
            ) from exc

        update = parse_dtdc_tracking(raw, tracking_id)
        logger.info(f"[DTDC] Shipment {tracking_id}: {update.raw_status}")
        return update
