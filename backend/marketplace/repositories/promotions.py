import json
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from sqlmodel import Session, select, col
from marketplace.models.promotion import (
    Promotion,
    PromotionAction,
    PromotionProductOverride,
    PromotionRule,
    PromotionScope,
    PromotionStatus,
)
from marketplace.services.domain import (
    ActionSpec,
    AllItems,
    CategoryScope,
    OverrideSpec,
    ProductScope,
    PromotionSpec,
    RuleSpec,
    Scope,
)

logger = logging.getLogger(__name__)


def get_active_promotions(
    db: Session,
    store_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> List[Promotion]:
    """Получить все активные акции (опционально только для магазинов)"""
    now = now or datetime.utcnow()

    stmt = select(Promotion).where(
        Promotion.status == PromotionStatus.ACTIVE,
        (Promotion.starts_at == None) | (Promotion.starts_at <= now),  # noqa: E711
        (Promotion.ends_at == None) | (Promotion.ends_at >= now),  # noqa: E711
    )
    if store_ids is not None:
        ids = sorted(set(store_ids))
        if not ids:
            return []
        stmt = stmt.where(col(Promotion.store_id).in_(ids))

    stmt = stmt.order_by(Promotion.priority.desc(), Promotion.created_at, Promotion.id)
    return list(db.exec(stmt).all())


def _parse_json(raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # Одиночное значение без кавычек: "vip"
        return raw


def resolve_scope(promo: Promotion) -> Scope:
    """scope + target_ids → AllItems | ProductScope | CategoryScope"""
    if promo.scope == PromotionScope.ALL:
        return AllItems()

    targets = _parse_json(promo.target_ids)
    if targets is None:
        targets = []
    elif not isinstance(targets, list):
        targets = [targets]

    if promo.scope == PromotionScope.PRODUCTS:
        product_ids = set()
        for value in targets:
            try:
                product_ids.add(int(value))
            except (TypeError, ValueError):
                logger.warning("Promotion %s has invalid product target %r", promo.id, value)
        return ProductScope(frozenset(product_ids))

    return CategoryScope(frozenset(str(value).strip().lower() for value in targets))


def to_spec(
    promo: Promotion,
    rules: Iterable[PromotionRule] = (),
    actions: Iterable[PromotionAction] = (),
    overrides: Iterable[PromotionProductOverride] = (),
) -> PromotionSpec:
    return PromotionSpec(
        id=promo.id,
        store_id=promo.store_id,
        name=promo.name,
        scope=resolve_scope(promo),
        priority=promo.priority,
        stackable=promo.stackable,
        created_at=promo.created_at,
        status=promo.status,
        starts_at=promo.starts_at,
        ends_at=promo.ends_at,
        usage_limit=promo.usage_limit,
        usage_limit_per_user=promo.usage_limit_per_user,
        legacy_type=promo.type,
        legacy_value=Decimal(str(promo.value)),
        min_quantity=promo.min_quantity,
        rules=tuple(
            RuleSpec(type=rule.type, operator=rule.operator, value=_parse_json(rule.value))
            for rule in rules
        ),
        actions=tuple(
            ActionSpec(type=action.type, value=Decimal(str(action.value)), target=action.target)
            for action in actions
        ),
        overrides={
            override.product_id: OverrideSpec(
                override_price=(
                    Decimal(str(override.override_price))
                    if override.override_price is not None else None
                ),
                max_quantity=override.max_quantity,
                min_quantity=override.min_quantity,
            )
            for override in overrides
        },
    )


def load_promotions(
    db: Session,
    store_ids: Iterable[int],
    now: Optional[datetime] = None,
) -> List[PromotionSpec]:
    """Активные акции магазинов вместе с правилами, действиями и override"""
    promotions = get_active_promotions(db, store_ids, now)
    if not promotions:
        return []

    ids = [promo.id for promo in promotions]
    rules: Dict[int, List[PromotionRule]] = defaultdict(list)
    actions: Dict[int, List[PromotionAction]] = defaultdict(list)
    overrides: Dict[int, List[PromotionProductOverride]] = defaultdict(list)

    stmt = select(PromotionRule).where(col(PromotionRule.promotion_id).in_(ids)).order_by(PromotionRule.id)
    for rule in db.exec(stmt).all():
        rules[rule.promotion_id].append(rule)

    stmt = select(PromotionAction).where(col(PromotionAction.promotion_id).in_(ids)).order_by(PromotionAction.id)
    for action in db.exec(stmt).all():
        actions[action.promotion_id].append(action)

    stmt = select(PromotionProductOverride).where(col(PromotionProductOverride.promotion_id).in_(ids))
    for override in db.exec(stmt).all():
        overrides[override.promotion_id].append(override)

    return [
        to_spec(promo, rules[promo.id], actions[promo.id], overrides[promo.id])
        for promo in promotions
    ]
