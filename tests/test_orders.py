import json
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from marketplace.models import Order, OrderItem, PaymentMethod, Transaction
from marketplace.repositories import orders as order_repo, usage as usage_repo
from marketplace.services.domain import BuyerContext, CartItem, ShippingContext, UsageSnapshot
from marketplace.services.errors import CartValidationError, PersistenceError
from marketplace.services.orders import OrderSplitter, commit_order, generate_order_number
from marketplace.services.pricing import PriceCalculator

SHIPPING = ShippingContext(zone="PK", method="standard")


@pytest.fixture(name="market")
def market_fixture(seed):
    first_store = seed.store(name="First", commission_rate="12.00")
    second_store = seed.store(name="Second")
    first = seed.product(first_store, price="1000.00")
    second = seed.product(second_store, price="200.00")
    promo = seed.promotion(first_store, value="10", usage_limit=5, usage_limit_per_user=1)
    seed.tax_rule("5.00")
    seed.shipping_rule(base_rate=100)
    items = [
        CartItem(product_id=first.id, store_id=first_store.id, quantity=1),
        CartItem(product_id=second.id, store_id=second_store.id, quantity=1),
    ]
    return {"stores": (first_store, second_store), "promo": promo, "items": items}


def place(session, buyer, items):
    return commit_order(session, items, SHIPPING, PaymentMethod.COD, BuyerContext(buyer_id=buyer.id))


def test_order_number_format():
    number = generate_order_number()

    prefix, date_part, random_part = number.split("-")
    assert prefix == "MK"
    assert len(date_part) == 6
    assert len(random_part) == 6


def test_order_splits_into_store_transactions(session, seed, market):
    buyer = seed.buyer()
    first_store, second_store = market["stores"]

    order = place(session, buyer, market["items"])

    # 900 + 45 + 100 и 200 + 10 + 100
    assert order.total == Decimal("1355.00")
    assert order.subtotal == Decimal("1100.00")
    assert order.discount == Decimal("100.00")
    assert order.tax_amount == Decimal("55.00")
    assert order.shipping_cost == Decimal("200.00")

    transactions = {t.store_id: t for t in order_repo.list_order_transactions(session, order.id)}
    assert transactions[first_store.id].amount == Decimal("1045.00")
    assert transactions[first_store.id].commission == Decimal("125.40")
    assert transactions[first_store.id].vendor_earnings == Decimal("919.60")
    assert transactions[second_store.id].amount == Decimal("310.00")
    assert transactions[second_store.id].commission == Decimal("31.00")
    assert sum(t.amount for t in transactions.values()) == order.total


def test_order_items_keep_prices_and_promotions(session, seed, market):
    buyer = seed.buyer()

    order = place(session, buyer, market["items"])

    first, second = sorted(order.items, key=lambda item: item.id)
    assert first.unit_price == Decimal("1000.00")
    assert first.price == Decimal("900.00")
    assert json.loads(first.applied_promotion_ids) == [market["promo"].id]
    assert second.price == Decimal("200.00")
    assert json.loads(second.applied_promotion_ids) == []


def test_order_increments_usage_counters(session, seed, market):
    buyer = seed.buyer()
    promo = market["promo"]

    place(session, buyer, market["items"])

    snapshot = usage_repo.read_counts(session, [promo.id], buyer_id=buyer.id)
    assert snapshot.global_counts == {promo.id: 1}
    assert snapshot.buyer_counts == {promo.id: 1}


def test_per_user_limit_applies_to_next_calculation(session, seed, market):
    buyer = seed.buyer()
    other = seed.buyer()
    place(session, buyer, market["items"])

    again = PriceCalculator(session).calculate(market["items"], SHIPPING, BuyerContext(buyer_id=buyer.id))
    someone_else = PriceCalculator(session).calculate(market["items"], SHIPPING, BuyerContext(buyer_id=other.id))

    assert again.discount == Decimal("0.00")
    assert someone_else.discount == Decimal("100.00")


def test_lost_usage_race_reprices_without_promotion(session, seed, market, monkeypatch):
    buyer = seed.buyer()
    promo = market["promo"]
    seed.usage(promo, 5)
    # Предпросмотр видит старые счётчики, лимит исчерпан к моменту записи
    monkeypatch.setattr(usage_repo, "read_counts", lambda *args, **kwargs: UsageSnapshot())

    order = place(session, buyer, market["items"])

    assert order.discount == Decimal("0.00")
    assert order.total == Decimal("1460.00")
    items = session.exec(select(OrderItem).where(OrderItem.order_id == order.id)).all()
    assert all(json.loads(item.applied_promotion_ids) == [] for item in items)

    monkeypatch.undo()
    snapshot = usage_repo.read_counts(session, [promo.id], buyer_id=buyer.id)
    assert snapshot.global_counts == {promo.id: 5}
    assert snapshot.buyer_counts == {promo.id: 0}


def test_failed_write_rolls_back_everything(session, seed, market, monkeypatch):
    buyer = seed.buyer()
    promo = market["promo"]

    def broken_add_order(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(order_repo, "add_order", broken_add_order)

    with pytest.raises(PersistenceError):
        place(session, buyer, market["items"])

    assert session.exec(select(Order)).all() == []
    assert session.exec(select(Transaction)).all() == []
    snapshot = usage_repo.read_counts(session, [promo.id], buyer_id=buyer.id)
    assert snapshot.global_counts.get(promo.id, 0) == 0
    assert snapshot.buyer_counts.get(promo.id, 0) == 0


def test_order_requires_buyer(session, market):
    with pytest.raises(CartValidationError):
        commit_order(session, market["items"], SHIPPING, PaymentMethod.COD, BuyerContext())


def test_order_requires_valid_lines(session, seed, market):
    buyer = seed.buyer()
    first_store, _ = market["stores"]

    with pytest.raises(CartValidationError):
        place(session, buyer, [CartItem(product_id=9999, store_id=first_store.id, quantity=1)])

    assert session.exec(select(Order)).all() == []


def test_splitter_uses_given_calculator(session, seed, market):
    buyer = seed.buyer()
    splitter = OrderSplitter(session, calculator=PriceCalculator(session))

    order = splitter.commit_order(
        market["items"], SHIPPING, PaymentMethod.CARD, BuyerContext(buyer_id=buyer.id),
        shipping_address="Multan, Bosan Road",
    )

    assert order.payment_method == PaymentMethod.CARD
    assert order.shipping_address == "Multan, Bosan Road"
    assert order.carrier == "internal"
    assert order_repo.buyer_has_orders(session, buyer.id)
