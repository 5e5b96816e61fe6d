from sqlmodel import SQLModel, Field, UniqueConstraint
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PromotionType(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class PromotionScope(str, Enum):
    ALL = "all"
    PRODUCTS = "products"
    CATEGORIES = "categories"


class PromotionStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class RuleType(str, Enum):
    MIN_ORDER_VALUE = "min_order_value"
    MIN_QUANTITY = "min_quantity"
    SPECIFIC_PRODUCT = "specific_product"
    CUSTOMER_GROUP = "customer_group"
    FIRST_TIME_ORDER = "first_time_order"


class RuleOperator(str, Enum):
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"


class ActionType(str, Enum):
    PERCENTAGE_DISCOUNT = "percentage_discount"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"
    FREE_GIFT = "free_gift"


class ActionTarget(str, Enum):
    ORDER_TOTAL = "order_total"
    SHIPPING = "shipping"
    LINE_ITEM = "line_item"
    CHEAPEST_ITEM = "cheapest_item"


class Promotion(SQLModel, table=True):
    __tablename__ = "promotions"

    id: Optional[int] = Field(default=None, primary_key=True)
    store_id: int = Field(foreign_key="stores.id", index=True)
    name: str
    description: Optional[str] = None

    # Старая схема скидки: тип + значение (используется, если нет actions)
    type: PromotionType = Field(default=PromotionType.PERCENT)
    value: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    min_quantity: Optional[int] = None

    scope: PromotionScope = Field(default=PromotionScope.ALL)
    # Привязка к товарам/категориям (JSON array)
    target_ids: Optional[str] = None

    priority: int = Field(default=0)  # Выше = важнее
    stackable: bool = Field(default=False)

    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: PromotionStatus = Field(default=PromotionStatus.DRAFT)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class PromotionRule(SQLModel, table=True):
    __tablename__ = "promotion_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    promotion_id: int = Field(foreign_key="promotions.id", index=True)

    type: RuleType
    operator: RuleOperator = Field(default=RuleOperator.EQ)
    value: str  # JSON: 1000, "vip", [1, 2], true


class PromotionAction(SQLModel, table=True):
    __tablename__ = "promotion_actions"

    id: Optional[int] = Field(default=None, primary_key=True)
    promotion_id: int = Field(foreign_key="promotions.id", index=True)

    type: ActionType
    value: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    target: ActionTarget = Field(default=ActionTarget.LINE_ITEM)


class PromotionProductOverride(SQLModel, table=True):
    __tablename__ = "promotion_product_overrides"
    __table_args__ = (UniqueConstraint("promotion_id", "product_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    promotion_id: int = Field(foreign_key="promotions.id", index=True)
    product_id: int = Field(foreign_key="products.id")

    override_price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    max_quantity: Optional[int] = None  # Сколько единиц получают скидку
    min_quantity: Optional[int] = None


class PromotionUsage(SQLModel, table=True):
    """Счётчик использований акции: общий (buyer_key="") и по покупателю"""
    __tablename__ = "promotion_usage"
    __table_args__ = (UniqueConstraint("promotion_id", "buyer_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    promotion_id: int = Field(foreign_key="promotions.id", index=True)
    buyer_key: str = Field(default="")
    count: int = Field(default=0)

    updated_at: datetime = Field(default_factory=datetime.utcnow)
