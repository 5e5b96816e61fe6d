from decimal import Decimal
from typing import Dict, Iterable
from sqlmodel import Session, select, col
from marketplace.core.config import settings
from marketplace.models.product import Product
from marketplace.models.store import Store, Subscription, SubscriptionStatus
from marketplace.services.domain import StoreInfo


def get_products(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """Товары корзины одним запросом"""
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    stmt = select(Product).where(col(Product.id).in_(ids))
    return {product.id: product for product in db.exec(stmt).all()}


def get_stores(db: Session, store_ids: Iterable[int]) -> Dict[int, StoreInfo]:
    """Магазины + ставка комиссии из активной подписки вендора"""
    ids = sorted(set(store_ids))
    if not ids:
        return {}

    stores = db.exec(select(Store).where(col(Store.id).in_(ids))).all()
    vendor_ids = sorted({store.vendor_id for store in stores})

    rates: Dict[int, Decimal] = {}
    if vendor_ids:
        stmt = (
            select(Subscription)
            .where(
                col(Subscription.vendor_id).in_(vendor_ids),
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(Subscription.created_at.desc())
        )
        for subscription in db.exec(stmt).all():
            # Берём самую свежую активную подписку
            rates.setdefault(subscription.vendor_id, Decimal(str(subscription.commission_rate)))

    return {
        store.id: StoreInfo(
            id=store.id,
            vendor_id=store.vendor_id,
            status=store.status,
            commission_rate=rates.get(store.vendor_id, settings.DEFAULT_COMMISSION_RATE),
        )
        for store in stores
    }
