from datetime import datetime
from typing import List
from pydantic import BaseModel, Field


class OrderShippingAddress(BaseModel):
    """Shipping address as returned by the Shopify Admin GraphQL API."""

    first_name: str | None = None
    last_name: str | None = None
    country_code: str | None = None
    city: str | None = None
    zip: str | None = None
    address_1: str | None = None
    address_2: str | None = None
    phone: str | None = None
    province: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class OrderLineItem(BaseModel):
    id: str
    title: str
    quantity: int  # unfulfilled quantity
    sku: str | None = None
    price: float
    currency: str


class Order(BaseModel):
    """Domain model representing a Shopify order awaiting shipment."""

    id: str  # Shopify GID, e.g. "gid://shopify/Order/123"
    name: str  # Human-readable order number, e.g. "#1001"
    created_at: datetime
    financial_status: str  # e.g. "PAID"
    fulfillment_status: str | None  # e.g. "UNFULFILLED", "PARTIAL", None
    total_price: str
    currency: str
    total_weight: int | None = None  # grams
    tags: list[str] = Field(default_factory=list)
    email: str | None = None
    phone: str | None = None
    shipping_address: OrderShippingAddress | None = None
    line_items: List[OrderLineItem] = Field(default_factory=list)

    @property
    def legacy_id(self) -> str:
        """Numeric order id, as used by the fulfillment endpoint."""
        return self.id.rsplit("/", 1)[-1]
