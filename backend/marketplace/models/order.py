from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from enum import Enum

if TYPE_CHECKING:
    from .user import User


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True)

    buyer_id: int = Field(foreign_key="users.id", index=True)

    # Доставка
    shipping_zone: str
    shipping_method: str
    shipping_province: Optional[str] = None
    shipping_address: Optional[str] = None
    carrier: Optional[str] = None

    payment_method: PaymentMethod

    # Суммы
    subtotal: Decimal = Field(max_digits=10, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    shipping_cost: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    total: Decimal = Field(max_digits=10, decimal_places=2)

    status: OrderStatus = Field(default=OrderStatus.PENDING)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    buyer: Optional["User"] = Relationship(back_populates="orders")
    items: List["OrderItem"] = Relationship(back_populates="order")
    transactions: List["Transaction"] = Relationship(back_populates="order")


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: int = Field(foreign_key="products.id")
    store_id: int = Field(foreign_key="stores.id", index=True)

    quantity: int
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)  # Цена каталога
    price: Decimal = Field(max_digits=10, decimal_places=2)  # Цена со скидками
    total: Decimal = Field(max_digits=10, decimal_places=2)

    applied_promotion_ids: Optional[str] = None  # JSON array

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="items")


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    store_id: int = Field(foreign_key="stores.id", index=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2)
    commission: Decimal = Field(max_digits=10, decimal_places=2)
    vendor_earnings: Decimal = Field(max_digits=10, decimal_places=2)

    status: TransactionStatus = Field(default=TransactionStatus.PENDING)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="transactions")
