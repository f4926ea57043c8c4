"""Tests for the Shopify side: order fetching, mapping, import and fulfillment sync."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import httpx
import pytest

from src.application.order_mapper import map_order_to_shipment
from src.application.order_service import ShipmentImportService
from src.domain.errors import FulfillmentSyncError
from src.domain.order import Order, OrderLineItem, OrderShippingAddress
from src.domain.shipment import ClientType, ShipmentStatus
from src.infrastructure.fulfillment_notifier import ShopifyFulfillmentNotifier
from src.infrastructure.order_repository import ShopifyOrderRepository
from src.infrastructure.shipment_store import InMemoryShipmentStore
from src.infrastructure.shopify_client import ShopifyGraphQLClient, ShopifyGraphQLError


def _make_line_item_node(
    item_id: str = "gid://shopify/LineItem/1",
    sku: str = "CB-250",
    quantity: int = 2,
    unfulfilled: int | None = None,
    price: str = "250.00",
) -> dict:
    """Helper: build a GraphQL line item node."""
    return {
        "id": item_id,
        "title": "Coffee beans 250g",
        "quantity": quantity,
        "unfulfilledQuantity": quantity if unfulfilled is None else unfulfilled,
        "sku": sku,
        "originalUnitPriceSet": {"shopMoney": {"amount": price, "currencyCode": "INR"}},
    }


def _make_node(order_id: str = "gid://shopify/Order/1", name: str = "#1001") -> dict:
    """Helper: build a minimal GraphQL order node with one open line item."""
    return {
        "id": order_id,
        "name": name,
        "createdAt": "2025-02-01T10:00:00Z",
        "displayFinancialStatus": "PAID",
        "displayFulfillmentStatus": "UNFULFILLED",
        "tags": [],
        "email": "customer@example.com",
        "phone": None,
        "shippingAddress": {
            "firstName": "Asha",
            "lastName": "Rao",
            "address1": "12 Marine Drive",
            "address2": "Flat 3B",
            "city": "Mumbai",
            "province": "Maharashtra",
            "countryCode": "IN",
            "zip": "400 001",
            "phone": "+91 98765 43210",
        },
        "totalWeight": "1500",  # UnsignedInt64 arrives as a string
        "totalPriceSet": {"shopMoney": {"amount": "500.00", "currencyCode": "INR"}},
        "lineItems": {"edges": [{"node": _make_line_item_node()}]},
    }


def _single_page_response(nodes: list[dict]) -> dict:
    """Wrap nodes in a single-page orders GraphQL response."""
    return {
        "data": {
            "orders": {
                "pageInfo": {"hasNextPage": False, "endCursor": None},
                "edges": [{"node": n} for n in nodes],
            }
        }
    }


# ---------------------------------------------------------------------------
# Repository: happy path
# ---------------------------------------------------------------------------


def test_fetch_orders_returns_orders() -> None:
    """Two matching orders are returned and correctly mapped to domain objects."""
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response(
        [_make_node("gid://shopify/Order/1", "#1001"), _make_node("gid://shopify/Order/2", "#1002")]
    )

    orders = ShopifyOrderRepository(client).fetch_orders(days=14)

    assert len(orders) == 2
    assert all(isinstance(o, Order) for o in orders)
    assert [o.name for o in orders] == ["#1001", "#1002"]
    assert orders[0].financial_status == "PAID"
    assert orders[0].total_price == "500.00"
    assert orders[0].currency == "INR"
    assert orders[0].legacy_id == "1"


def test_fetch_orders_maps_shipping_address_and_line_items() -> None:
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response([_make_node()])

    (order,) = ShopifyOrderRepository(client).fetch_orders()

    address = order.shipping_address
    assert address.full_name == "Asha Rao"
    assert address.zip == "400 001"
    assert address.country_code == "IN"
    item = order.line_items[0]
    assert isinstance(item, OrderLineItem)
    assert item.sku == "CB-250"
    assert item.quantity == 2
    assert item.price == 250.0
    assert order.total_weight == 1500


# ---------------------------------------------------------------------------
# Repository: filtering
# ---------------------------------------------------------------------------


def test_fetch_orders_empty_response() -> None:
    """An empty edges list returns an empty list without error."""
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response([])

    orders = ShopifyOrderRepository(client).fetch_orders(days=14)

    assert orders == []
    client.execute.assert_called_once()


def test_fetch_orders_skips_blacklisted_tags() -> None:
    """Tags are matched case-insensitively against the blacklist."""
    held = _make_node("gid://shopify/Order/2", "#1002")
    held["tags"] = ["Hold"]
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response([_make_node(), held])

    orders = ShopifyOrderRepository(client).fetch_orders()

    assert [o.name for o in orders] == ["#1001"]


def test_fetch_orders_skips_orders_with_nothing_left_to_fulfill() -> None:
    shipped = _make_node("gid://shopify/Order/2", "#1002")
    shipped["lineItems"] = {"edges": [{"node": _make_line_item_node(unfulfilled=0)}]}
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response([_make_node(), shipped])

    orders = ShopifyOrderRepository(client).fetch_orders()

    assert [o.name for o in orders] == ["#1001"]


# ---------------------------------------------------------------------------
# Repository: query window, errors, pagination, throttling
# ---------------------------------------------------------------------------


def test_fetch_orders_days_zero_uses_todays_date() -> None:
    """days=0 computes a since-date of today and passes it in the query string."""
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = _single_page_response([])

    with patch("src.infrastructure.order_repository.datetime") as mock_dt:
        fixed_now = datetime(2025, 6, 15, 12, 0, 0, tzinfo=UTC)
        mock_dt.now.return_value = fixed_now

        ShopifyOrderRepository(client).fetch_orders(days=0)

    variables: dict = client.execute.call_args[0][1]
    assert "2025-06-15T12:00:00Z" in variables["query"]
    assert "financial_status:paid" in variables["query"]


def test_fetch_orders_raises_on_graphql_errors() -> None:
    """ShopifyGraphQLError from the client propagates out of the repository."""
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.side_effect = ShopifyGraphQLError([{"message": "Access denied"}])

    with pytest.raises(ShopifyGraphQLError):
        ShopifyOrderRepository(client).fetch_orders(days=14)


def test_fetch_orders_paginates_correctly() -> None:
    """Repository follows pagination cursors and merges results from both pages."""
    client = MagicMock(spec=ShopifyGraphQLClient)

    page1 = {
        "data": {"orders": {
            "pageInfo": {"hasNextPage": True, "endCursor": "cursor-abc"},
            "edges": [{"node": _make_node("gid://shopify/Order/1", "#1001")}],
        }}
    }
    page2 = {
        "data": {"orders": {
            "pageInfo": {"hasNextPage": False, "endCursor": None},
            "edges": [{"node": _make_node("gid://shopify/Order/2", "#1002")}],
        }}
    }
    client.execute.side_effect = [page1, page2]

    orders = ShopifyOrderRepository(client).fetch_orders(days=14)

    assert len(orders) == 2
    assert client.execute.call_count == 2
    # Second call must carry the cursor from page 1
    second_variables: dict = client.execute.call_args_list[1][0][1]
    assert second_variables["after"] == "cursor-abc"


def test_fetch_orders_waits_when_query_budget_is_low() -> None:
    response = _single_page_response([])
    response["extensions"] = {
        "cost": {
            "actualQueryCost": 100,
            "throttleStatus": {"currentlyAvailable": 100, "maximumAvailable": 1000, "restoreRate": 50},
        }
    }
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.execute.return_value = response

    with patch("src.infrastructure.order_repository.time.sleep") as sleep:
        ShopifyOrderRepository(client).fetch_orders()

    sleep.assert_called_once_with(1.0)


# ---------------------------------------------------------------------------
# GraphQL client
# ---------------------------------------------------------------------------


def test_graphql_client_posts_to_shop_endpoint() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_single_page_response([]))

    client = ShopifyGraphQLClient(
        shop_name="roast-and-krunch",
        access_token="shpat_test",
        api_version="2024-10",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    client.execute("query { shop { name } }", {"first": 1})

    (request,) = calls
    assert str(request.url) == "https://roast-and-krunch.myshopify.com/admin/api/2024-10/graphql.json"
    assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
    assert json.loads(request.content)["variables"] == {"first": 1}


def test_graphql_client_raises_on_errors_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

    client = ShopifyGraphQLClient(
        shop_name="roast-and-krunch.myshopify.com",
        access_token="shpat_test",
        api_version="2024-10",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(ShopifyGraphQLError):
        client.execute("query { shop { name } }")


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------


def _make_order(**kwargs) -> Order:
    """Build a minimal Order domain object for mapper tests."""
    defaults = dict(
        id="gid://shopify/Order/5001",
        name="#1001",
        created_at=datetime(2025, 2, 1, 10, 0, 0, tzinfo=UTC),
        financial_status="PAID",
        fulfillment_status="UNFULFILLED",
        total_price="500.00",
        currency="INR",
        shipping_address=OrderShippingAddress(
            first_name="Asha",
            last_name="Rao",
            country_code="IN",
            city="Mumbai",
            zip="400 001",
            address_1="12 Marine Drive",
            address_2="Flat 3B",
            phone="+91 98765 43210",
            province="Maharashtra",
        ),
        line_items=[
            OrderLineItem(
                id="gid://shopify/LineItem/1",
                title="Coffee beans 250g",
                quantity=2,
                sku="CB-250",
                price=250.0,
                currency="INR",
            )
        ],
    )
    return Order(**{**defaults, **kwargs})


def test_mapper_creates_shopify_pending_shipment() -> None:
    shipment = map_order_to_shipment(_make_order(), "client-1", "Roast and Krunch")

    assert shipment.status == ShipmentStatus.shopify_pending
    assert shipment.client_type == ClientType.shopify
    assert shipment.reference_no == "#1001"
    assert shipment.shopify_order_id == "5001"
    assert shipment.declared_value == 500.0
    assert shipment.weight == 0.5
    assert shipment.commodity_description == "Coffee beans 250g"
    assert shipment.products[0].quantity == 2


def test_mapper_uses_order_weight_in_kg() -> None:
    """Shopify weighs orders in grams; the shipment carries kilograms."""
    shipment = map_order_to_shipment(_make_order(total_weight=1500), "client-1")

    assert shipment.actual_weight == 1.5
    assert shipment.weight == 1.5


def test_mapper_falls_back_to_default_weight_when_order_has_none() -> None:
    for total_weight in (None, 0):
        shipment = map_order_to_shipment(_make_order(total_weight=total_weight), "client-1")
        assert shipment.actual_weight == 0.5


def test_mapper_destination_address() -> None:
    destination = map_order_to_shipment(_make_order(), "client-1").destination

    assert destination.name == "Asha Rao"
    assert destination.pincode == "400001"
    assert destination.address == "12 Marine Drive, Flat 3B"
    assert destination.country == "India"
    assert destination.phone == "+91 98765 43210"


def test_mapper_missing_shipping_address_falls_back_to_order_phone() -> None:
    """An order without an address still imports; validation flags it later."""
    shipment = map_order_to_shipment(
        _make_order(shipping_address=None, phone="9876543210"), "client-1"
    )

    assert shipment.destination.phone == "9876543210"
    assert shipment.destination.pincode == ""


# ---------------------------------------------------------------------------
# Import service
# ---------------------------------------------------------------------------


def test_import_orders_creates_each_order_once() -> None:
    """Re-running the import never duplicates an already imported order."""
    repository = MagicMock(spec=ShopifyOrderRepository)
    repository.fetch_orders.return_value = [
        _make_order(),
        _make_order(id="gid://shopify/Order/5002", name="#1002"),
    ]
    store = InMemoryShipmentStore()
    service = ShipmentImportService(repository, store)

    first = service.import_orders("client-1", days=7)
    second = service.import_orders("client-1", days=7)

    assert len(first) == 2
    assert second == []
    repository.fetch_orders.assert_called_with(7)
    assert {s.shopify_order_number for s in store.list()} == {"#1001", "#1002"}


# ---------------------------------------------------------------------------
# Fulfillment notifier
# ---------------------------------------------------------------------------


def _notifier(handler, executor=None) -> ShopifyFulfillmentNotifier:
    return ShopifyFulfillmentNotifier(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        base_url="http://portal.test/",
        auth_token="portal-token",
        executor=executor,
    )


def test_notifier_posts_shipment_id() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"success": True})

    assert _notifier(handler).send("ship-1") == {"success": True}

    (request,) = calls
    assert str(request.url) == "http://portal.test/api/integrations/shopify/fulfill"
    assert request.headers["Authorization"] == "Bearer portal-token"
    assert json.loads(request.content) == {"shipmentId": "ship-1"}


def test_notifier_send_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="Shopify unavailable")

    with pytest.raises(FulfillmentSyncError, match="500"):
        _notifier(handler).send("ship-1")


def test_notify_fulfillment_inline_raises_sync_failures() -> None:
    """Without an executor the caller is waiting, so the failure reaches it."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    with pytest.raises(FulfillmentSyncError, match="connection refused"):
        _notifier(handler).notify_fulfillment("ship-1")


def test_notify_fulfillment_background_failure_goes_to_callback() -> None:
    """On an executor a failed sync is logged and handed to ``on_failure``, never raised."""
    failures: list[tuple[str, Exception]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with ThreadPoolExecutor(max_workers=1) as pool:
        notifier = ShopifyFulfillmentNotifier(
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            base_url="http://portal.test/",
            executor=pool,
            on_failure=lambda sid, exc: failures.append((sid, exc)),
        )
        notifier.notify_fulfillment("ship-1")

    (failure,) = failures
    assert failure[0] == "ship-1"
    assert isinstance(failure[1], FulfillmentSyncError)
    assert "502" in str(failure[1])


def test_notify_fulfillment_runs_on_executor() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with ThreadPoolExecutor(max_workers=1) as pool:
        _notifier(handler, executor=pool).notify_fulfillment("ship-1")

    assert len(calls) == 1
