from src.application.billing import compute_weights
from src.domain.order import Order, OrderLineItem, OrderShippingAddress
from src.domain.shipment import (
    Address,
    ClientType,
    Dimensions,
    ProductLine,
    Shipment,
    ShipmentStatus,
)

# Package defaults until the merchant corrects them before booking
DEFAULT_DIMENSIONS = Dimensions(length=10, width=10, height=10)
DEFAULT_ACTUAL_WEIGHT = 0.5

_COUNTRY_NAMES = {"IN": "India"}


def _map_destination(addr: OrderShippingAddress | None, order: Order) -> Address:
    if addr is None:
        # Shopify returned no shipping address; validation will flag it
        return Address(phone=order.phone or "")
    street = ", ".join(p for p in (addr.address_1, addr.address_2) if p)
    return Address(
        name=addr.full_name,
        phone=addr.phone or order.phone or "",
        pincode=(addr.zip or "").replace(" ", ""),
        address=street,
        city=addr.city or "",
        state=addr.province or "",
        country=_COUNTRY_NAMES.get(addr.country_code or "IN", addr.country_code or ""),
    )


def _map_products(items: list[OrderLineItem]) -> list[ProductLine]:
    return [
        ProductLine(sku=item.sku or "", name=item.title, quantity=item.quantity, price=item.price)
        for item in items
    ]


def map_order_to_shipment(order: Order, client_id: str, client_name: str = "") -> Shipment:
    """Convert a Shopify ``Order`` into a ``shopify_pending`` shipment."""
    # Shopify reports the order weight in grams
    actual_weight = order.total_weight / 1000 if order.total_weight else DEFAULT_ACTUAL_WEIGHT
    weights = compute_weights(DEFAULT_DIMENSIONS, actual_weight)
    try:
        declared_value = max(float(order.total_price), 0.0)
    except ValueError:
        declared_value = 0.0

    return Shipment(
        client_id=client_id,
        client_name=client_name,
        client_type=ClientType.shopify,
        destination=_map_destination(order.shipping_address, order),
        dimensions=DEFAULT_DIMENSIONS,
        actual_weight=weights.actual,
        weight=weights.billable,
        products=_map_products(order.line_items),
        declared_value=declared_value,
        reference_no=order.name,
        commodity_description=", ".join(item.title for item in order.line_items),
        shopify_order_id=order.legacy_id,
        shopify_order_number=order.name,
        shopify_line_items=[item.model_dump() for item in order.line_items],
        shopify_fulfillment_status=order.fulfillment_status,
        status=ShipmentStatus.shopify_pending,
    )
