import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from marketplace.models.promotion import ActionTarget, ActionType, PromotionType, RuleOperator, RuleType
from marketplace.services.domain import (
    ActionSpec,
    BuyerContext,
    CartLine,
    LineResolution,
    PromotionSpec,
    RuleSpec,
    Scope,
    UsageSnapshot,
)
from marketplace.services.money import ZERO, allocate, non_negative, percent_of, round2

logger = logging.getLogger(__name__)


def actions_for(promo: PromotionSpec) -> Tuple[ActionSpec, ...]:
    """
    Действия акции. Для старых акций без actions собираем одно действие
    из полей type/value, чтобы резолвер работал только с actions.
    """
    if promo.actions:
        return promo.actions

    if promo.legacy_type == PromotionType.FIXED:
        return (ActionSpec(ActionType.FIXED_AMOUNT, promo.legacy_value, ActionTarget.LINE_ITEM),)
    return (ActionSpec(ActionType.PERCENTAGE_DISCOUNT, promo.legacy_value, ActionTarget.LINE_ITEM),)


def _to_decimal(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def compare(actual: Any, operator: RuleOperator, target: Any) -> bool:
    """Сравнение значения контекста с порогом правила"""
    if operator == RuleOperator.IN:
        values = target if isinstance(target, list) else [target]
        return any(_to_decimal(v) == actual for v in values)

    expected = _to_decimal(target)
    if expected is None:
        return False

    if operator == RuleOperator.EQ:
        return actual == expected
    if operator == RuleOperator.GT:
        return actual > expected
    if operator == RuleOperator.GTE:
        return actual >= expected
    if operator == RuleOperator.LT:
        return actual < expected
    if operator == RuleOperator.LTE:
        return actual <= expected
    return False




class StoreGroup:
    """Строки одного магазина + агрегаты для правил"""

    def __init__(self, lines: Sequence[CartLine]):
        self.lines = list(lines)
        # Сумма до скидок, от неё считаются правила min_order_value
        self.subtotal = sum((line.total for line in self.lines), ZERO)
        self.quantity = sum(line.quantity for line in self.lines)

    def cheapest_index(self, scope: Scope) -> Optional[int]:
        best = None
        for index, line in enumerate(self.lines):
            if not scope.matches(line):
                continue
            if best is None or line.unit_price < self.lines[best].unit_price:
                best = index
        return best


def _order_amount(promo: PromotionSpec) -> Decimal:
    """Фиксированная скидка акции на весь заказ"""
    return sum(
        (
            action.value for action in actions_for(promo)
            if action.type == ActionType.FIXED_AMOUNT and action.target == ActionTarget.ORDER_TOTAL
        ),
        ZERO,
    )


class PromotionResolver:
    """
    Подбор акций для строк корзины.

    Порядок: активность и даты → scope → правила (AND) → лимиты →
    priority desc / created_at asc → первая акция; стекуемые
    применяются последовательно к уже сниженной цене.
    Сначала для каждой строки выбирается цепочка акций, затем
    фиксированные скидки на заказ делятся между строками этих цепочек.
    Счётчики использований здесь только читаются.
    """

    def __init__(
        self,
        promotions: Iterable[PromotionSpec],
        usage: UsageSnapshot,
        buyer: BuyerContext,
        now: Optional[datetime] = None,
    ):
        self.now = now or datetime.utcnow()
        self.buyer = buyer
        self.usage = usage
        live = [p for p in promotions if p.is_live(self.now)]
        self.promotions = sorted(live, key=lambda p: p.sort_key)

    def resolve(self, lines: Sequence[CartLine]) -> List[LineResolution]:
        """Цены строк одного магазина"""
        group = StoreGroup(lines)
        store_ids = {line.store_id for line in lines}
        eligible = [
            p for p in self.promotions
            if p.store_id in store_ids and not self.usage.exhausted(p, self.buyer.buyer_id)
        ]

        chains = []
        for index, line in enumerate(group.lines):
            candidates = [
                p for p in eligible
                if p.store_id == line.store_id and self._qualifies(p, line, index, group)
            ]
            chains.append(self.select_chain(candidates))
        return self.price_chains(group, chains)

    def reprice(
        self,
        lines: Sequence[CartLine],
        resolutions: Sequence[LineResolution],
        revoked: Iterable[int],
    ) -> List[LineResolution]:
        """Пересчёт строк без отозванных акций; замену не подбираем"""
        revoked = set(revoked)
        chains = [
            tuple(p for p in resolution.applied if p.id not in revoked)
            for resolution in resolutions
        ]
        return self.price_chains(StoreGroup(lines), chains)

    @staticmethod
    def select_chain(candidates: Sequence[PromotionSpec]) -> Tuple[PromotionSpec, ...]:
        """Победитель + стекуемые за ним, до первой нестекуемой"""
        if not candidates:
            return ()

        ordered = sorted(candidates, key=lambda p: p.sort_key)
        winner = ordered[0]
        if not winner.stackable:
            return (winner,)

        chain = [winner]
        for promo in ordered[1:]:
            if not promo.stackable:
                break
            chain.append(promo)
        return tuple(chain)

    def price_chains(
        self,
        group: StoreGroup,
        chains: Sequence[Tuple[PromotionSpec, ...]],
    ) -> List[LineResolution]:
        shares = self.order_shares(group, chains)
        return [
            self.apply_chain(line, chain, shares.get(index))
            for index, (line, chain) in enumerate(zip(group.lines, chains))
        ]

    @staticmethod
    def order_shares(
        group: StoreGroup,
        chains: Sequence[Tuple[PromotionSpec, ...]],
    ) -> Dict[int, Dict[int, Decimal]]:
        """
        Доли фиксированных скидок на заказ: индекс строки → id акции → сумма.
        Делим только между строками, к которым акция реально применена,
        пропорционально их сумме до скидок.
        """
        promotions: Dict[int, PromotionSpec] = {}
        for chain in chains:
            for promo in chain:
                promotions.setdefault(promo.id, promo)

        shares: Dict[int, Dict[int, Decimal]] = defaultdict(dict)
        for promo in promotions.values():
            amount = _order_amount(promo)
            if amount <= ZERO:
                continue
            indexes = [i for i, chain in enumerate(chains) if any(p.id == promo.id for p in chain)]
            weights = [group.lines[i].total for i in indexes]
            for index, share in zip(indexes, allocate(amount, weights)):
                shares[index][promo.id] = share
        return shares

    def apply_chain(
        self,
        line: CartLine,
        chain: Sequence[PromotionSpec],
        order_shares: Optional[Dict[int, Decimal]] = None,
    ) -> LineResolution:
        order_shares = order_shares or {}
        price = line.unit_price
        line_discount = ZERO
        free_shipping = False
        for promo in chain:
            price, line_cut, ships_free = self._apply(promo, line, price)
            line_discount += line_cut + order_shares.get(promo.id, ZERO)
            free_shipping = free_shipping or ships_free

        price = round2(non_negative(price))
        return LineResolution(
            discounted_unit_price=price,
            applied=tuple(chain),
            free_shipping=free_shipping,
            line_discount=min(round2(line_discount), price * line.quantity),
        )

    # === Проверки ===

    def _qualifies(self, promo: PromotionSpec, line: CartLine, index: int, group: StoreGroup) -> bool:
        if not promo.scope.matches(line):
            return False

        targets = {action.target for action in actions_for(promo)}
        if ActionTarget.CHEAPEST_ITEM in targets and group.cheapest_index(promo.scope) != index:
            return False

        if promo.min_quantity and line.quantity < promo.min_quantity:
            return False

        override = promo.overrides.get(line.product_id)
        if override and override.min_quantity and line.quantity < override.min_quantity:
            return False

        return all(self.evaluate_rule(rule, line, group) for rule in promo.rules)

    def evaluate_rule(self, rule: RuleSpec, line: CartLine, group: StoreGroup) -> bool:
        if rule.type == RuleType.MIN_ORDER_VALUE:
            return compare(group.subtotal, rule.operator, rule.value)

        if rule.type == RuleType.MIN_QUANTITY:
            return compare(Decimal(group.quantity), rule.operator, rule.value)

        if rule.type == RuleType.SPECIFIC_PRODUCT:
            # Условие на корзину: в ней есть хотя бы один из товаров
            values = rule.value if isinstance(rule.value, list) else [rule.value]
            wanted = {str(v) for v in values}
            return any(str(item.product_id) in wanted for item in group.lines)

        if rule.type == RuleType.CUSTOMER_GROUP:
            if not self.buyer.customer_group:
                return False
            values = rule.value if isinstance(rule.value, list) else [rule.value]
            return self.buyer.customer_group.lower() in {str(v).lower() for v in values}

        if rule.type == RuleType.FIRST_TIME_ORDER:
            expected = rule.value if isinstance(rule.value, bool) else str(rule.value).lower() == "true"
            return (not self.buyer.has_prior_orders) == expected

        logger.debug("Unknown promotion rule type %s", rule.type)
        return False

    # === Скидка ===

    @staticmethod
    def _unit_cut(action: ActionSpec, price: Decimal) -> Decimal:
        if action.type == ActionType.PERCENTAGE_DISCOUNT:
            return percent_of(price, action.value)
        if action.type == ActionType.FIXED_AMOUNT:
            return min(action.value, price)
        return ZERO

    def _apply(
        self,
        promo: PromotionSpec,
        line: CartLine,
        price: Decimal,
    ) -> Tuple[Decimal, Decimal, bool]:
        """Цена единицы после одной акции + скидка на строку целиком"""
        discounted = price
        line_cut = ZERO
        free_shipping = False

        for action in actions_for(promo):
            if action.type == ActionType.FREE_SHIPPING:
                free_shipping = True
            elif action.target == ActionTarget.SHIPPING:
                continue
            elif action.target == ActionTarget.ORDER_TOTAL and action.type == ActionType.FIXED_AMOUNT:
                # Делится между строками в order_shares
                continue
            elif action.target == ActionTarget.CHEAPEST_ITEM:
                # Скидка только на одну единицу самого дешёвого товара
                line_cut += self._unit_cut(action, discounted)
            elif action.type == ActionType.PERCENTAGE_DISCOUNT:
                discounted -= percent_of(discounted, action.value)
            elif action.type == ActionType.FIXED_AMOUNT:
                discounted -= action.value
            # FREE_GIFT на цену не влияет
            discounted = non_negative(discounted)

        override = promo.overrides.get(line.product_id)
        if override:
            if override.override_price is not None:
                discounted = min(discounted, override.override_price)
            if override.max_quantity is not None and line.quantity > override.max_quantity:
                capped = max(override.max_quantity, 0)
                full_price_units = line.quantity - capped
                discounted = (discounted * capped + price * full_price_units) / line.quantity

        return discounted, line_cut, free_shipping
