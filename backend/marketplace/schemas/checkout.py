from pydantic import BaseModel
from typing import Optional, List
from decimal import Decimal
from marketplace.core.config import settings
from marketplace.services.domain import CartItem, ShippingContext


class CartLineIn(BaseModel):
    product_id: int
    store_id: int
    quantity: int
    unit_price: Optional[Decimal] = None  # Цена, которую видел клиент

    def to_cart_item(self) -> CartItem:
        return CartItem(
            product_id=self.product_id,
            store_id=self.store_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class CheckoutRequest(BaseModel):
    items: List[CartLineIn]

    shipping_zone: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_province: Optional[str] = None

    def cart_items(self) -> List[CartItem]:
        return [item.to_cart_item() for item in self.items]

    def shipping_context(self) -> ShippingContext:
        return ShippingContext(
            zone=self.shipping_zone or settings.DEFAULT_SHIPPING_ZONE,
            method=self.shipping_method or settings.DEFAULT_SHIPPING_METHOD,
            province=self.shipping_province,
        )


class BreakdownLine(BaseModel):
    product_id: int
    store_id: int
    quantity: int
    unit_price: str
    discounted_unit_price: str
    total: str
    applied_promotion_ids: List[int] = []


class StoreBreakdown(BaseModel):
    store_id: int
    subtotal: str
    taxes: str
    shipping: str
    carrier: str
    free_shipping: bool = False


class PriceBreakdownResponse(BaseModel):
    subtotal: str
    discount: str
    taxes: str
    shipping: str
    total: str
    carrier: str
    stores: List[StoreBreakdown] = []
    lines: List[BreakdownLine] = []
    warnings: List[str] = []
