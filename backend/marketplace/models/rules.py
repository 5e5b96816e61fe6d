from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class PlatformSettings(SQLModel, table=True):
    __tablename__ = "platform_settings"

    id: str = Field(default="default", primary_key=True)
    tax_enabled: bool = Field(default=True)
    shipping_enabled: bool = Field(default=True)

    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TaxRule(SQLModel, table=True):
    __tablename__ = "tax_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    enabled: bool = Field(default=True)

    # None = подходит для любой категории/провинции
    category: Optional[str] = None
    province: Optional[str] = None

    rate: Decimal = Field(max_digits=5, decimal_places=2)  # 5.00 = 5%
    exempt: bool = Field(default=False)
    priority: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class ShippingRateRule(SQLModel, table=True):
    __tablename__ = "shipping_rate_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    enabled: bool = Field(default=True)

    carrier: str = Field(default="internal")
    method: str = Field(default="standard")
    zone: str = Field(default="PK")

    min_weight_kg: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=3)
    max_weight_kg: Decimal = Field(default=Decimal("999"), max_digits=10, decimal_places=3)

    base_rate: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    per_kg_rate: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    dimensional_factor: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=3)
    surcharge: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)

    priority: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
