import itertools
from concurrent.futures import ThreadPoolExecutor

import httpx
from loguru import logger

from src.application.booking_service import BookingOrchestrator
from src.application.order_service import ShipmentImportService
from src.domain.shipment import Address, BlueDartServiceType, Courier, ServiceOptions
from src.entrypoints.executor import Executor
from src.entrypoints.settings import Config, config
from src.infrastructure.bluedart_client import (
    BLUEDART_PRODUCTION_URL,
    BLUEDART_SANDBOX_URL,
    BlueDartAccount,
    BlueDartClient,
)
from src.infrastructure.dtdc_client import (
    DTDC_PRODUCTION_URL,
    DTDC_STAGING_URL,
    DTDCAccount,
    DTDCClient,
    DTDCTrackingAccount,
)
from src.infrastructure.fulfillment_notifier import ShopifyFulfillmentNotifier
from src.infrastructure.order_repository import ShopifyOrderRepository
from src.infrastructure.shipment_store import InMemoryPickupAddressStore, InMemoryShipmentStore
from src.infrastructure.shopify_client import ShopifyGraphQLClient

_mock_awb = itertools.count(50000000001)


def _mock_courier_handler(request: httpx.Request) -> httpx.Response:
    """Mock transport handler: logs what would be sent and answers like the courier."""
    logger.info(f"[Courier] MOCK {request.method} {request.url}")
    path = request.url.path
    if path.endswith("/token/v1/login"):
        return httpx.Response(200, json={"JWTToken": "mock-token"})
    if path.endswith("/GenerateWayBill"):
        return httpx.Response(200, json={"GenerateWayBillResult": {"IsError": False, "AWBNo": str(next(_mock_awb))}})
    if path.endswith("/consignment/softdata"):
        return httpx.Response(
            200,
            json={"status": "OK", "data": [{"success": True, "reference_number": f"D{next(_mock_awb)}"}]},
        )
    if path.endswith("/finder/v1/pincode"):
        return httpx.Response(
            200, json={"GetServicesforPincodeResult": {"IsError": False, "AreaCode": "BOM"}}
        )
    if path.endswith("/tracking/v1/shipment"):
        return httpx.Response(
            200, json={"ShipmentData": {"Shipment": [{"Status": "In Transit", "StatusType": "IT"}]}}
        )
    if path.endswith("/dtdc/authenticate"):
        return httpx.Response(200, text="mock-tracking-token")
    if path.endswith("/getTrackDetails"):
        return httpx.Response(
            200, json={"statusFlag": True, "trackHeader": {"strStatus": "In Transit"}}
        )
    return httpx.Response(200, json={"status": "OK", "IsError": False})


def _pickup_from(cfg: Config) -> Address | None:
    if not cfg.PICKUP_ADDRESS:
        return None
    return Address(
        name=cfg.PICKUP_NAME,
        phone=cfg.PICKUP_PHONE,
        pincode=cfg.PICKUP_PINCODE,
        address=cfg.PICKUP_ADDRESS,
        city=cfg.PICKUP_CITY,
        state=cfg.PICKUP_STATE,
    )


def main() -> None:
    # --- Storage ---
    store = InMemoryShipmentStore()
    pickup_store = InMemoryPickupAddressStore()
    if pickup := _pickup_from(config):
        pickup_store.save(config.CLIENT_ID, pickup)

    # --- Courier layer ---
    # To go live: set COURIER_MOCK=false (plain httpx.Client, no transport arg).
    courier_http = (
        httpx.Client(transport=httpx.MockTransport(_mock_courier_handler))
        if config.COURIER_MOCK
        else httpx.Client(timeout=30.0)
    )
    bluedart = BlueDartClient(
        client=courier_http,
        base_url=BLUEDART_PRODUCTION_URL if config.bluedart_is_production else BLUEDART_SANDBOX_URL,
        client_id=config.BLUEDART_CLIENT_ID or "mock",
        client_secret=config.BLUEDART_CLIENT_SECRET or "mock",
        account=BlueDartAccount(
            login_id=config.BLUEDART_LOGIN_ID,
            licence_key=config.BLUEDART_LICENSE_KEY,
            customer_code=config.BLUEDART_CUSTOMER_CODE,
            billing_area=config.BLUEDART_AREA,
            shipper_name=config.BLUEDART_SHIPPER_NAME,
        ),
    )
    dtdc = DTDCClient(
        client=courier_http,
        base_url=DTDC_PRODUCTION_URL if config.dtdc_is_production else DTDC_STAGING_URL,
        api_key=config.DTDC_API_KEY or "mock",
        account=DTDCAccount(customer_code=config.DTDC_CUSTOMER_CODE),
        tracking_account=DTDCTrackingAccount(
            username=config.DTDC_TRACKING_USERNAME or "mock",
            password=config.DTDC_TRACKING_PASSWORD or "mock",
        ),
    )

    # --- Shopify layer ---
    shopify_client = ShopifyGraphQLClient(
        shop_name=config.SHOPIFY_SHOP_NAME,
        access_token=config.SHOPIFY_ACCESS_TOKEN,
        api_version=config.SHOPIFY_API_VERSION,
    )
    import_service = ShipmentImportService(ShopifyOrderRepository(shopify_client), store)

    unsynced: list[str] = []
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="fulfillment") as pool:
        notifier = ShopifyFulfillmentNotifier(
            client=httpx.Client(timeout=15.0),
            base_url=config.APP_BASE_URL,
            auth_token=config.APP_AUTH_TOKEN,
            executor=pool,
            on_failure=lambda shipment_id, exc: unsynced.append(shipment_id),
        )
        orchestrator = BookingOrchestrator(
            store=store,
            pickup_store=pickup_store,
            adapters={Courier.bluedart: bluedart, Courier.dtdc: dtdc},
            notifier=notifier,
            pincode_checker=bluedart if config.BLUEDART_CHECK_PINCODE else None,
        )

        # --- Run pipeline ---
        executor = Executor(import_service=import_service, orchestrator=orchestrator)
        executor.run(
            client_id=config.CLIENT_ID,
            client_name=config.CLIENT_NAME,
            courier=Courier(config.DEFAULT_COURIER),
            options=ServiceOptions(
                service_type=BlueDartServiceType(config.BLUEDART_SERVICE_TYPE),
                dtdc_service_type_id=config.DTDC_SERVICE_TYPE_ID,
                b2c_account=config.BLUEDART_B2C_ACCOUNT,
            ),
            days=config.FETCH_DAYS,
        )
        executor.sync_statuses(config.CLIENT_ID)

    # The pool has drained, so every background fulfillment has reported by now
    if unsynced:
        logger.warning(
            f"Shopify fulfillment sync failed for {len(unsynced)} shipment(s): "
            f"{', '.join(unsynced)}. Retry from the portal."
        )


if __name__ == "__main__":
    main()
