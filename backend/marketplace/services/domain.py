"""
Типы движка цен.

Строятся один раз на границе репозиториев из строк БД, дальше
резолверы работают только с ними и не ходят в базу.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from marketplace.models.promotion import (
    ActionTarget,
    ActionType,
    PromotionStatus,
    PromotionType,
    RuleOperator,
    RuleType,
)
from marketplace.models.store import StoreStatus
from marketplace.services.money import ZERO


# === Вход ===

@dataclass(frozen=True)
class CartItem:
    """Строка корзины как её прислал клиент"""
    product_id: int
    store_id: int
    quantity: int
    unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class CartLine:
    """Строка корзины после проверки по каталогу"""
    product_id: int
    store_id: int
    quantity: int
    unit_price: Decimal
    category: str = "general"
    weight_kg: Decimal = ZERO  # на единицу
    volume_cm3: Decimal = ZERO  # на единицу
    tax_exempt: bool = False

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def total_weight_kg(self) -> Decimal:
        return self.weight_kg * self.quantity

    @property
    def total_volume_cm3(self) -> Decimal:
        return self.volume_cm3 * self.quantity


@dataclass(frozen=True)
class BuyerContext:
    buyer_id: Optional[int] = None
    has_prior_orders: bool = False
    customer_group: Optional[str] = None
    tax_exempt: bool = False

    @property
    def buyer_key(self) -> Optional[str]:
        return str(self.buyer_id) if self.buyer_id is not None else None


@dataclass(frozen=True)
class ShippingContext:
    zone: str
    method: str
    province: Optional[str] = None


@dataclass(frozen=True)
class StoreInfo:
    id: int
    vendor_id: int
    status: StoreStatus
    commission_rate: Decimal

    @property
    def accepts_orders(self) -> bool:
        return self.status == StoreStatus.APPROVED


# === Scope акции ===

@dataclass(frozen=True)
class AllItems:
    def matches(self, line: CartLine) -> bool:
        return True


@dataclass(frozen=True)
class ProductScope:
    product_ids: FrozenSet[int]

    def matches(self, line: CartLine) -> bool:
        return line.product_id in self.product_ids


@dataclass(frozen=True)
class CategoryScope:
    categories: FrozenSet[str]  # в нижнем регистре

    def matches(self, line: CartLine) -> bool:
        return line.category.lower() in self.categories


Scope = Union[AllItems, ProductScope, CategoryScope]


# === Акция ===

@dataclass(frozen=True)
class RuleSpec:
    type: RuleType
    operator: RuleOperator
    value: Any


@dataclass(frozen=True)
class ActionSpec:
    type: ActionType
    value: Decimal = ZERO
    target: ActionTarget = ActionTarget.LINE_ITEM


@dataclass(frozen=True)
class OverrideSpec:
    override_price: Optional[Decimal] = None
    max_quantity: Optional[int] = None
    min_quantity: Optional[int] = None


@dataclass(frozen=True)
class PromotionSpec:
    id: int
    store_id: int
    name: str
    scope: Scope
    priority: int = 0
    stackable: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    status: PromotionStatus = PromotionStatus.ACTIVE
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    # Старая скидка (type + value), если actions пустые
    legacy_type: PromotionType = PromotionType.PERCENT
    legacy_value: Decimal = ZERO
    min_quantity: Optional[int] = None
    rules: Tuple[RuleSpec, ...] = ()
    actions: Tuple[ActionSpec, ...] = ()
    overrides: Dict[int, OverrideSpec] = field(default_factory=dict, hash=False, compare=False)

    def is_live(self, now: datetime) -> bool:
        if self.status != PromotionStatus.ACTIVE:
            return False
        if self.starts_at is not None and self.starts_at > now:
            return False
        if self.ends_at is not None and self.ends_at < now:
            return False
        return True

    @property
    def sort_key(self) -> Tuple[int, datetime, int]:
        # priority desc, затем более ранняя акция
        return (-self.priority, self.created_at, self.id)


@dataclass(frozen=True)
class UsageSnapshot:
    """Счётчики использований на момент расчёта"""
    global_counts: Dict[int, int] = field(default_factory=dict)
    buyer_counts: Dict[int, int] = field(default_factory=dict)

    def exhausted(self, promo: PromotionSpec, buyer_id: Optional[int]) -> bool:
        if promo.usage_limit is not None:
            if self.global_counts.get(promo.id, 0) >= promo.usage_limit:
                return True
        if buyer_id is not None and promo.usage_limit_per_user is not None:
            if self.buyer_counts.get(promo.id, 0) >= promo.usage_limit_per_user:
                return True
        return False


# === Результат ===

@dataclass(frozen=True)
class LineResolution:
    discounted_unit_price: Decimal
    applied: Tuple[PromotionSpec, ...] = ()
    free_shipping: bool = False
    # Скидка на строку целиком (доля скидки на заказ, cheapest_item), в копейках
    line_discount: Decimal = ZERO

    def line_total(self, line: CartLine) -> Decimal:
        return max(self.discounted_unit_price * line.quantity - self.line_discount, ZERO)

    @property
    def applied_ids(self) -> List[int]:
        return [p.id for p in self.applied]


@dataclass(frozen=True)
class LineQuote:
    line: CartLine
    resolution: LineResolution
    tax: Decimal = ZERO

    @property
    def discounted_unit_price(self) -> Decimal:
        return self.resolution.discounted_unit_price

    @property
    def total(self) -> Decimal:
        return self.resolution.line_total(self.line)

    @property
    def discount(self) -> Decimal:
        return self.line.total - self.total


@dataclass(frozen=True)
class StoreQuote:
    store: StoreInfo
    lines: Tuple[LineQuote, ...]
    taxes: Decimal
    shipping: Decimal
    carrier: str
    free_shipping: bool = False

    @property
    def store_id(self) -> int:
        return self.store.id

    @property
    def subtotal(self) -> Decimal:
        return sum((lq.total for lq in self.lines), ZERO)

    @property
    def discount(self) -> Decimal:
        return sum((lq.discount for lq in self.lines), ZERO)

    @property
    def amount(self) -> Decimal:
        """Доля магазина в заказе: товары + налог + доставка"""
        return self.subtotal + self.taxes + self.shipping


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    taxes: Decimal
    shipping: Decimal
    total: Decimal
    carrier: str
    stores: Tuple[StoreQuote, ...]
    lines: Tuple[LineQuote, ...]
    warnings: Tuple[str, ...] = ()
