import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from marketplace.models.rules import ShippingRateRule
from marketplace.services.domain import CartLine
from marketplace.services.money import ZERO, round2

logger = logging.getLogger(__name__)

DEFAULT_CARRIER = "internal"


@dataclass(frozen=True)
class ShippingQuote:
    cost: Decimal
    carrier: str = DEFAULT_CARRIER
    billable_weight_kg: Decimal = ZERO
    rule_id: Optional[int] = None
    free_shipping: bool = False


def _dec(value, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    return Decimal(str(value))


class ShippingResolver:
    """Стоимость доставки одной посылки (строки одного магазина)"""

    def __init__(self, rules: Iterable[ShippingRateRule], enabled: bool = True):
        self.enabled = enabled
        self.rules = sorted(
            (rule for rule in rules if rule.enabled),
            key=lambda r: (-r.priority, r.created_at, r.id or 0),
        )

    @staticmethod
    def billable_weight(rule: ShippingRateRule, weight_kg: Decimal, volume_cm3: Decimal) -> Decimal:
        """max(фактический вес, объёмный вес), если у правила есть делитель"""
        factor = _dec(rule.dimensional_factor)
        if factor > ZERO and volume_cm3 > ZERO:
            return max(weight_kg, volume_cm3 / factor)
        return weight_kg

    def quote(
        self,
        weight_kg: Decimal,
        volume_cm3: Decimal,
        zone: str,
        method: str,
        free_shipping: bool = False,
    ) -> ShippingQuote:
        if not self.enabled:
            return ShippingQuote(cost=ZERO, billable_weight_kg=weight_kg)

        zone = (zone or "").strip().upper()
        method = (method or "").strip().lower()

        for rule in self.rules:
            if (rule.zone or "").strip().upper() != zone:
                continue
            if (rule.method or "").strip().lower() != method:
                continue

            billable = self.billable_weight(rule, weight_kg, volume_cm3)
            if not (_dec(rule.min_weight_kg) <= billable <= _dec(rule.max_weight_kg)):
                continue

            cost = _dec(rule.base_rate) + _dec(rule.per_kg_rate) * billable + _dec(rule.surcharge)
            return ShippingQuote(
                # free_shipping применяется после расчёта
                cost=ZERO if free_shipping else round2(cost),
                carrier=rule.carrier or DEFAULT_CARRIER,
                billable_weight_kg=billable,
                rule_id=rule.id,
                free_shipping=free_shipping,
            )

        logger.debug("No shipping rule for zone=%s method=%s weight=%s", zone, method, weight_kg)
        return ShippingQuote(cost=ZERO, billable_weight_kg=weight_kg, free_shipping=free_shipping)

    def quote_lines(
        self,
        lines: Sequence[CartLine],
        zone: str,
        method: str,
        free_shipping: bool = False,
    ) -> ShippingQuote:
        weight = sum((line.total_weight_kg for line in lines), ZERO)
        volume = sum((line.total_volume_cm3 for line in lines), ZERO)
        return self.quote(weight, volume, zone, method, free_shipping=free_shipping)
