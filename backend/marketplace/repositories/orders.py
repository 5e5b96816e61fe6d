from typing import Iterable, List, Optional
from sqlmodel import Session, select
from marketplace.models.order import Order, OrderItem, Transaction


def buyer_has_orders(db: Session, buyer_id: int) -> bool:
    stmt = select(Order.id).where(Order.buyer_id == buyer_id).limit(1)
    return db.exec(stmt).first() is not None


def add_order(
    db: Session,
    order: Order,
    items: Iterable[OrderItem],
    transactions: Iterable[Transaction],
) -> Order:
    """Заказ, строки и транзакции в текущую транзакцию сессии (без коммита)"""
    db.add(order)
    db.flush()

    for item in items:
        item.order_id = order.id
        db.add(item)

    for transaction in transactions:
        transaction.order_id = order.id
        db.add(transaction)

    db.flush()
    return order


def list_buyer_orders(db: Session, buyer_id: int) -> List[Order]:
    stmt = select(Order).where(Order.buyer_id == buyer_id).order_by(Order.created_at.desc(), Order.id.desc())
    return list(db.exec(stmt).all())


def get_buyer_order(db: Session, buyer_id: int, order_id: int) -> Optional[Order]:
    order = db.get(Order, order_id)
    if not order or order.buyer_id != buyer_id:
        return None
    return order


def list_order_transactions(db: Session, order_id: int) -> List[Transaction]:
    stmt = select(Transaction).where(Transaction.order_id == order_id).order_by(Transaction.store_id)
    return list(db.exec(stmt).all())
