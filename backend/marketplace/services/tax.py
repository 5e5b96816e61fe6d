import logging
from decimal import Decimal
from typing import Iterable, Optional

from marketplace.models.rules import TaxRule
from marketplace.services.domain import CartLine
from marketplace.services.money import ZERO, percent_of, round2

logger = logging.getLogger(__name__)


def _matches(rule_value: Optional[str], value: Optional[str]) -> bool:
    # None в правиле подходит всем
    if rule_value is None or rule_value == "":
        return True
    if value is None:
        return False
    return rule_value.strip().lower() == value.strip().lower()


def _specificity(rule: TaxRule) -> int:
    return int(bool(rule.category)) + int(bool(rule.province))


class TaxResolver:
    """Выбор ставки налога для строки заказа"""

    def __init__(self, rules: Iterable[TaxRule], enabled: bool = True):
        self.enabled = enabled
        self.rules = [rule for rule in rules if rule.enabled]

    def rate_for(self, category: Optional[str], province: Optional[str]) -> Decimal:
        if not self.enabled:
            return ZERO

        matches = [
            rule for rule in self.rules
            if _matches(rule.category, category) and _matches(rule.province, province)
        ]
        if not matches:
            logger.debug("No tax rule for category=%s province=%s", category, province)
            return ZERO

        # Освобождение на верхнем приоритете обнуляет налог
        top_priority = max(rule.priority for rule in matches)
        if any(rule.exempt for rule in matches if rule.priority == top_priority):
            return ZERO

        taxable = [rule for rule in matches if not rule.exempt]
        if not taxable:
            return ZERO

        taxable.sort(key=lambda r: (-r.priority, -_specificity(r), r.created_at, r.id or 0))
        return Decimal(str(taxable[0].rate))

    def tax_for(
        self,
        line: CartLine,
        amount: Decimal,
        province: Optional[str] = None,
        buyer_exempt: bool = False,
    ) -> Decimal:
        """Налог на строку: ставка × сумма строки после скидок"""
        if line.tax_exempt or buyer_exempt:
            return ZERO
        rate = self.rate_for(line.category, province)
        if rate <= ZERO or amount <= ZERO:
            return ZERO
        return round2(percent_of(amount, rate))
