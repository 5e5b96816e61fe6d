"""
Журнал использований акций.

Один счётчик на (promotion_id, buyer_key): buyer_key="" означает общий,
иначе id покупателя. Увеличение только условным UPDATE ... WHERE count < limit,
без отдельного чтения перед записью.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional, Set, Tuple
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, col
from marketplace.models.promotion import PromotionUsage
from marketplace.services.domain import UsageSnapshot
from marketplace.services.errors import UsageLimitExceeded

logger = logging.getLogger(__name__)

GLOBAL_KEY = ""

CounterKey = Tuple[int, str]


def read_counts(db: Session, promotion_ids: Iterable[int], buyer_id: Optional[int] = None) -> UsageSnapshot:
    """Текущие счётчики для акций одним запросом"""
    ids = sorted(set(promotion_ids))
    if not ids:
        return UsageSnapshot()

    keys = [GLOBAL_KEY]
    if buyer_id is not None:
        keys.append(str(buyer_id))

    stmt = select(PromotionUsage.promotion_id, PromotionUsage.buyer_key, PromotionUsage.count).where(
        col(PromotionUsage.promotion_id).in_(ids),
        col(PromotionUsage.buyer_key).in_(keys),
    )

    global_counts = {}
    buyer_counts = {}
    for promotion_id, buyer_key, count in db.exec(stmt).all():
        if buyer_key == GLOBAL_KEY:
            global_counts[promotion_id] = count
        else:
            buyer_counts[promotion_id] = count

    return UsageSnapshot(global_counts=global_counts, buyer_counts=buyer_counts)


def _existing_keys(db: Session, keys: Set[CounterKey]) -> Set[CounterKey]:
    ids = sorted({promotion_id for promotion_id, _ in keys})
    stmt = select(PromotionUsage.promotion_id, PromotionUsage.buyer_key).where(
        col(PromotionUsage.promotion_id).in_(ids)
    )
    return {(promotion_id, buyer_key) for promotion_id, buyer_key in db.exec(stmt).all()}


def ensure_counters(db: Session, keys: Iterable[CounterKey]) -> None:
    """
    Создать недостающие счётчики с нулём (отдельной короткой транзакцией).
    Если параллельный запрос успел создать тот же счётчик, это не ошибка.
    """
    wanted = set(keys)
    if not wanted:
        return

    missing = sorted(wanted - _existing_keys(db, wanted))
    if not missing:
        return

    for promotion_id, buyer_key in missing:
        db.add(PromotionUsage(promotion_id=promotion_id, buyer_key=buyer_key, count=0))
    try:
        db.commit()
        return
    except IntegrityError:
        db.rollback()

    # Гонка на вставке: досоздаём по одному
    for promotion_id, buyer_key in sorted(wanted - _existing_keys(db, wanted)):
        db.add(PromotionUsage(promotion_id=promotion_id, buyer_key=buyer_key, count=0))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()


def try_consume(db: Session, promotion_id: int, buyer_key: str, limit: Optional[int]) -> bool:
    """Атомарно +1, только если count < limit. Без коммита."""
    stmt = update(PromotionUsage).where(
        PromotionUsage.promotion_id == promotion_id,
        PromotionUsage.buyer_key == buyer_key,
    )
    if limit is not None:
        stmt = stmt.where(PromotionUsage.count < limit)
    stmt = stmt.values(count=PromotionUsage.count + 1, updated_at=datetime.utcnow())

    result = db.exec(stmt, execution_options={"synchronize_session": False})
    return result.rowcount == 1


def consume(db: Session, promotion_id: int, buyer_key: str, limit: Optional[int]) -> None:
    if not try_consume(db, promotion_id, buyer_key, limit):
        raise UsageLimitExceeded(promotion_id, buyer_key)


def release(db: Session, promotion_id: int, buyer_key: str) -> None:
    """Откат одного использования внутри той же транзакции"""
    stmt = (
        update(PromotionUsage)
        .where(
            PromotionUsage.promotion_id == promotion_id,
            PromotionUsage.buyer_key == buyer_key,
            PromotionUsage.count > 0,
        )
        .values(count=PromotionUsage.count - 1, updated_at=datetime.utcnow())
    )
    db.exec(stmt, execution_options={"synchronize_session": False})
