import json
import logging
import secrets
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from marketplace.core.config import settings
from marketplace.models.order import Order, OrderItem, OrderStatus, PaymentMethod, Transaction, TransactionStatus
from marketplace.repositories import orders as order_repo, usage as usage_repo
from marketplace.services.domain import BuyerContext, CartItem, PromotionSpec, ShippingContext
from marketplace.services.errors import CartValidationError, PersistenceError, UsageLimitExceeded
from marketplace.services.money import percent_of, round2
from marketplace.services.pricing import PriceCalculator, Quote

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    """Генерация уникального номера заказа"""
    timestamp = datetime.utcnow().strftime("%y%m%d")
    random_part = secrets.token_hex(3).upper()
    return f"{settings.ORDER_NUMBER_PREFIX}-{timestamp}-{random_part}"


class OrderSplitter:
    """
    Оформление заказа: Order + OrderItems + по одной Transaction на магазин
    + счётчики акций одной транзакцией БД.
    """

    def __init__(self, db: Session, calculator: Optional[PriceCalculator] = None):
        self.db = db
        self.calculator = calculator or PriceCalculator(db)

    def commit_order(
        self,
        items: Sequence[CartItem],
        shipping: ShippingContext,
        payment_method: PaymentMethod,
        buyer: BuyerContext,
        shipping_address: Optional[str] = None,
    ) -> Order:
        if buyer.buyer_id is None:
            raise CartValidationError("Buyer is required to place an order")

        quote = self.calculator.quote(items, shipping, buyer)
        if not quote.lines:
            raise CartValidationError("Order must contain at least one valid item")

        applied = list(quote.applied_promotions().values())

        try:
            usage_repo.ensure_counters(self.db, self._counter_keys(applied, buyer))

            revoked = self._consume_usage(applied, buyer)
            if revoked:
                logger.warning(
                    "Promotions %s lost usage race for buyer %s, repricing",
                    sorted(revoked), buyer.buyer_id,
                )
                quote = quote.without(revoked)

            order = self._build_order(quote, shipping, payment_method, buyer, shipping_address)
            order_repo.add_order(self.db, order, self._build_items(quote), self._build_transactions(quote))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Order commit failed for buyer %s", buyer.buyer_id)
            raise PersistenceError("Failed to save order, nothing was recorded") from exc

        self.db.refresh(order)
        logger.info(
            "Order %s committed: buyer=%s stores=%s total=%s",
            order.order_number, buyer.buyer_id, len(quote.stores), order.total,
        )
        return order

    # === Счётчики ===

    @staticmethod
    def _counter_keys(promotions: Iterable[PromotionSpec], buyer: BuyerContext):
        keys = set()
        for promo in promotions:
            keys.add((promo.id, usage_repo.GLOBAL_KEY))
            keys.add((promo.id, buyer.buyer_key))
        return keys

    def _consume_usage(self, promotions: Iterable[PromotionSpec], buyer: BuyerContext) -> Set[int]:
        """Списать по одному использованию; вернуть id акций, упёршихся в лимит"""
        revoked = set()
        # Одинаковый порядок блокировок для параллельных заказов
        for promo in sorted(promotions, key=lambda p: p.id):
            try:
                self._consume(promo, buyer)
            except UsageLimitExceeded as exc:
                logger.debug("%s", exc)
                revoked.add(promo.id)
        return revoked

    def _consume(self, promo: PromotionSpec, buyer: BuyerContext) -> None:
        usage_repo.consume(self.db, promo.id, buyer.buyer_key, promo.usage_limit_per_user)
        try:
            usage_repo.consume(self.db, promo.id, usage_repo.GLOBAL_KEY, promo.usage_limit)
        except UsageLimitExceeded:
            usage_repo.release(self.db, promo.id, buyer.buyer_key)
            raise

    # === Строки ===

    @staticmethod
    def _build_order(
        quote: Quote,
        shipping: ShippingContext,
        payment_method: PaymentMethod,
        buyer: BuyerContext,
        shipping_address: Optional[str],
    ) -> Order:
        return Order(
            order_number=generate_order_number(),
            buyer_id=buyer.buyer_id,
            shipping_zone=shipping.zone,
            shipping_method=shipping.method,
            shipping_province=shipping.province,
            shipping_address=shipping_address,
            carrier=quote.carrier,
            payment_method=payment_method,
            subtotal=round2(quote.subtotal),
            discount=round2(quote.discount),
            tax_amount=round2(quote.taxes),
            shipping_cost=round2(quote.shipping_total),
            total=quote.total,
            status=OrderStatus.PENDING,
        )

    @staticmethod
    def _build_items(quote: Quote) -> List[OrderItem]:
        return [
            OrderItem(
                product_id=lq.line.product_id,
                store_id=lq.line.store_id,
                quantity=lq.line.quantity,
                unit_price=lq.line.unit_price,
                price=lq.discounted_unit_price,
                total=round2(lq.total),
                applied_promotion_ids=json.dumps(lq.resolution.applied_ids),
            )
            for lq in quote.lines
        ]

    @staticmethod
    def _build_transactions(quote: Quote) -> List[Transaction]:
        """По одной транзакции на магазин: сумма, комиссия платформы, доход вендора"""
        transactions = []
        for store in quote.stores:
            amount = round2(store.amount)
            commission = round2(percent_of(amount, store.store.commission_rate))
            transactions.append(Transaction(
                store_id=store.store_id,
                amount=amount,
                commission=commission,
                vendor_earnings=amount - commission,
                status=TransactionStatus.PENDING,
            ))
        return transactions


def commit_order(
    db: Session,
    items: Sequence[CartItem],
    shipping: ShippingContext,
    payment_method: PaymentMethod,
    buyer: BuyerContext,
    shipping_address: Optional[str] = None,
) -> Order:
    """Оформить заказ (см. OrderSplitter)"""
    return OrderSplitter(db).commit_order(items, shipping, payment_method, buyer, shipping_address)
