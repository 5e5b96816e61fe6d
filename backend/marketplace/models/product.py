from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal

if TYPE_CHECKING:
    from .store import Store


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    store_id: int = Field(foreign_key="stores.id", index=True)
    name: str = Field(index=True)

    price: Decimal = Field(max_digits=10, decimal_places=2)
    category: str = Field(default="general", index=True)

    # Габариты для расчёта доставки
    weight_kg: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=3)
    length_cm: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    width_cm: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    height_cm: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    tax_exempt: bool = Field(default=False)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    store: Optional["Store"] = Relationship(back_populates="products")
