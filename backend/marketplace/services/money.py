from decimal import Decimal, ROUND_HALF_UP
from typing import List, Sequence, Union

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str]


def round2(value: Number) -> Decimal:
    """Округление до копеек (half-up)"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def format_money(value: Number) -> str:
    """Денежное значение как строка с 2 знаками: "1095.00" """
    return str(round2(value))


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    return amount * rate / HUNDRED


def allocate(amount: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """
    Разнести сумму по весам в копейках: доли в сумме дают ровно amount.
    Остаток копеек уходит долям с наибольшим дробным хвостом.
    """
    cents = int(round2(amount) / CENT)
    total_weight = sum(weights, ZERO)
    if cents <= 0 or total_weight <= ZERO:
        return [ZERO for _ in weights]

    exact = [Decimal(cents) * weight / total_weight for weight in weights]
    shares = [int(value) for value in exact]
    leftover = cents - sum(shares)
    by_remainder = sorted(range(len(exact)), key=lambda i: (-(exact[i] - shares[i]), i))
    for index in by_remainder[:leftover]:
        shares[index] += 1
    return [Decimal(share) * CENT for share in shares]
