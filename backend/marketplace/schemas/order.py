from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from marketplace.models.order import OrderStatus, PaymentMethod, TransactionStatus
from marketplace.schemas.checkout import CheckoutRequest


class OrderCreate(CheckoutRequest):
    payment_method: PaymentMethod = PaymentMethod.COD
    shipping_address: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    store_id: int
    quantity: int
    unit_price: Decimal
    price: Decimal
    total: Decimal
    applied_promotion_ids: List[int] = []


class TransactionResponse(BaseModel):
    id: int
    store_id: int
    amount: Decimal
    commission: Decimal
    vendor_earnings: Decimal
    status: TransactionStatus

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    buyer_id: int

    shipping_zone: str
    shipping_method: str
    shipping_province: Optional[str] = None
    shipping_address: Optional[str] = None
    carrier: Optional[str] = None

    payment_method: PaymentMethod

    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total: Decimal

    status: OrderStatus
    created_at: datetime

    items: List[OrderItemResponse] = []
    transactions: List[TransactionResponse] = []

    class Config:
        from_attributes = True
