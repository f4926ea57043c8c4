from datetime import UTC, datetime, timedelta
from loguru import logger
from src.domain.order import Order, OrderLineItem, OrderShippingAddress
from src.infrastructure.shopify_client import ShopifyGraphQLClient
import time


class ShopifyOrderRepository:
    """Fetches orders awaiting shipment from the Shopify Admin GraphQL API."""

    # Fetch 50 orders per page (Shopify max is 250, 50 is a safe default)
    PAGE_SIZE = 50

    # Tags that keep an order out of the import (e.g. self-shipped or on hold)
    BLACKLIST: set[str] = {"no-ship", "hold"}

    COST_BUFFER = 50

    ORDERS_QUERY = """
      query FetchOrders($query: String!, $first: Int!, $after: String) {
        orders(query: $query, first: $first, after: $after) {
          pageInfo {
            hasNextPage
            endCursor
          }
          edges {
            node {
              id
              name
              createdAt
              displayFinancialStatus
              displayFulfillmentStatus
              tags
              email
              phone
              shippingAddress {
                firstName
                lastName
                address1
                address2
                city
                province
                countryCode
                zip
                phone
              }
              totalWeight
              totalPriceSet {
                shopMoney {
                  amount
                  currencyCode
                }
              }
              lineItems(first: 50) {
                edges {
                  node {
                    id
                    title
                    quantity
                    unfulfilledQuantity
                    sku
                    originalUnitPriceSet {
                      shopMoney { amount currencyCode }
                    }
                  }
                }
              }
            }
          }
        }
      }
    """

    def __init__(self, client: ShopifyGraphQLClient) -> None:
        self._client = client

    def fetch_orders(self, days: int = 14) -> list[Order]:
        """Return paid, not-yet-fully-fulfilled orders created in the last ``days`` days.

        Filters applied via Shopify query string:
        - financial_status:paid
        - fulfillment_status:unshipped OR fulfillment_status:partial
        - created_at >= <days ago>
        """
        since: datetime = datetime.now(UTC) - timedelta(days=days)
        since_iso: str = since.strftime("%Y-%m-%dT%H:%M:%SZ")

        query_string = (
            f"financial_status:paid "
            f"fulfillment_status:unshipped OR fulfillment_status:partial "
            f"created_at:>={since_iso}"
        )

        orders: list[Order] = []
        cursor: str | None = None

        # Paginate until all matching orders are fetched
        while True:
            variables: dict = {
                "query": query_string,
                "first": self.PAGE_SIZE,
                "after": cursor,
            }
            data = self._client.execute(self.ORDERS_QUERY, variables)
            self._respect_throttle(data)

            page = data["data"]["orders"]

            for edge in page["edges"]:
                node = edge["node"]
                order_tags = [tag.lower() for tag in node.get("tags", [])]

                if matched := [tag for tag in order_tags if tag in self.BLACKLIST]:
                    logger.info(f"Order {node['name']} excluded — blacklist tag: {matched}")
                    continue

                order = self._map(node)
                if not order.line_items:
                    logger.info(f"Order {order.name} skipped — nothing left to fulfill")
                    continue
                orders.append(order)

            page_info = page["pageInfo"]
            if not page_info["hasNextPage"]:
                break
            cursor = page_info["endCursor"]

        return orders

    def _respect_throttle(self, data: dict) -> None:
        """Sleep when the remaining query budget would not cover the next page."""
        cost = data.get("extensions", {}).get("cost", {})
        throttle = cost.get("throttleStatus", {})
        actual_cost = cost.get("actualQueryCost", 0)
        currently_available = throttle.get("currentlyAvailable", 1000)
        restore_rate = throttle.get("restoreRate", 50)
        logger.debug(
            f"Query cost: {actual_cost} | "
            f"Available: {currently_available} / {throttle.get('maximumAvailable')}"
        )

        if currently_available < actual_cost + self.COST_BUFFER:
            points_needed = (actual_cost + self.COST_BUFFER) - currently_available
            wait_seconds = points_needed / restore_rate
            logger.warning(
                f"Budget low — available: {currently_available}, "
                f"next query needs: {actual_cost + self.COST_BUFFER} — waiting {wait_seconds:.1f}s"
            )
            time.sleep(wait_seconds)

    @staticmethod
    def _map(node: dict) -> Order:
        """Map a raw GraphQL node to an ``Order`` domain object."""
        money = node["totalPriceSet"]["shopMoney"]

        shipping_address: OrderShippingAddress | None = None
        if raw := node.get("shippingAddress"):
            shipping_address = OrderShippingAddress(
                first_name=raw.get("firstName"),
                last_name=raw.get("lastName"),
                country_code=raw.get("countryCode"),
                city=raw.get("city"),
                zip=raw.get("zip"),
                address_1=raw.get("address1"),
                address_2=raw.get("address2"),
                phone=raw.get("phone"),
                province=raw.get("province"),
            )

        line_items = [
            OrderLineItem(
                id=item["node"]["id"],
                title=item["node"]["title"],
                quantity=item["node"]["unfulfilledQuantity"],
                sku=item["node"].get("sku"),
                price=float(item["node"]["originalUnitPriceSet"]["shopMoney"]["amount"]),
                currency=item["node"]["originalUnitPriceSet"]["shopMoney"]["currencyCode"],
            )
            for item in node["lineItems"]["edges"]
            if item["node"]["unfulfilledQuantity"] > 0
        ]

        return Order(
            id=node["id"],
            name=node["name"],
            created_at=node["createdAt"],
            financial_status=node["displayFinancialStatus"],
            fulfillment_status=node.get("displayFulfillmentStatus"),
            total_price=money["amount"],
            currency=money["currencyCode"],
            tags=node.get("tags", []),
            email=node.get("email"),
            phone=node.get("phone"),
            total_weight=int(node["totalWeight"]) if node.get("totalWeight") is not None else None,
            shipping_address=shipping_address,
            line_items=line_items,
        )
