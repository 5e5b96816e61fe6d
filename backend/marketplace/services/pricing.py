import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from sqlmodel import Session
from marketplace.models.product import Product
from marketplace.repositories import catalog, promotions as promotion_repo, rules as rules_repo, usage as usage_repo
from marketplace.services.domain import (
    BuyerContext,
    CartItem,
    CartLine,
    LineQuote,
    LineResolution,
    PriceBreakdown,
    PromotionSpec,
    ShippingContext,
    StoreInfo,
    StoreQuote,
)
from marketplace.services.errors import CartValidationError
from marketplace.services.money import ZERO, format_money, non_negative, round2
from marketplace.services.promotions import PromotionResolver
from marketplace.services.shipping import DEFAULT_CARRIER, ShippingResolver
from marketplace.services.tax import TaxResolver

logger = logging.getLogger(__name__)


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


def product_volume_cm3(product: Product) -> Decimal:
    if product.length_cm and product.width_cm and product.height_cm:
        return _dec(product.length_cm) * _dec(product.width_cm) * _dec(product.height_cm)
    return ZERO


def build_cart_line(item: CartItem, product: Optional[Product], store: Optional[StoreInfo]) -> CartLine:
    """Проверить строку корзины по каталогу"""
    if item.quantity is None or item.quantity <= 0:
        raise CartValidationError(f"Invalid quantity for product {item.product_id}", item.product_id)

    if not product or not product.is_active:
        raise CartValidationError(f"Product {item.product_id} is not available", item.product_id)

    if product.store_id != item.store_id:
        raise CartValidationError(
            f"Product {item.product_id} does not belong to store {item.store_id}", item.product_id
        )

    if not store or not store.accepts_orders:
        raise CartValidationError(f"Store {item.store_id} is not accepting orders", item.product_id)

    return CartLine(
        product_id=product.id,
        store_id=product.store_id,
        quantity=item.quantity,
        unit_price=round2(_dec(product.price)),
        category=product.category or "general",
        weight_kg=_dec(product.weight_kg),
        volume_cm3=product_volume_cm3(product),
        tax_exempt=product.tax_exempt,
    )


class Quote:
    """
    Внутренний результат расчёта: строки по магазинам с цепочками акций.
    Нужен оформлению заказа, чтобы пересчитать цены без проигравших акций.
    """

    def __init__(
        self,
        stores: Sequence[StoreQuote],
        warnings: Sequence[str],
        resolver: PromotionResolver,
        tax: TaxResolver,
        shipping: ShippingResolver,
        shipping_context: ShippingContext,
        buyer: BuyerContext,
    ):
        self.stores = list(stores)
        self.warnings = list(warnings)
        self.resolver = resolver
        self.tax = tax
        self.shipping = shipping
        self.shipping_context = shipping_context
        self.buyer = buyer

    @property
    def lines(self) -> List[LineQuote]:
        return [line for store in self.stores for line in store.lines]

    @property
    def subtotal(self) -> Decimal:
        return sum((store.subtotal for store in self.stores), ZERO)

    @property
    def discount(self) -> Decimal:
        return sum((store.discount for store in self.stores), ZERO)

    @property
    def taxes(self) -> Decimal:
        return sum((store.taxes for store in self.stores), ZERO)

    @property
    def shipping_total(self) -> Decimal:
        return sum((store.shipping for store in self.stores), ZERO)

    @property
    def total(self) -> Decimal:
        return round2(non_negative(self.subtotal + self.taxes + self.shipping_total))

    @property
    def carrier(self) -> str:
        carriers = {store.carrier for store in self.stores}
        if not carriers:
            return DEFAULT_CARRIER
        if len(carriers) == 1:
            return carriers.pop()
        return "mixed"

    def applied_promotions(self) -> Dict[int, PromotionSpec]:
        """Акции, реально применённые хотя бы к одной строке"""
        applied: Dict[int, PromotionSpec] = {}
        for line in self.lines:
            for promo in line.resolution.applied:
                applied.setdefault(promo.id, promo)
        return applied

    def without(self, promotion_ids: Iterable[int]) -> "Quote":
        """Тот же расчёт, но без указанных акций"""
        revoked = set(promotion_ids)
        if not revoked:
            return self

        stores = []
        for store in self.stores:
            lines = [lq.line for lq in store.lines]
            resolutions = self.resolver.reprice(lines, [lq.resolution for lq in store.lines], revoked)
            stores.append(price_store(store.store, lines, resolutions, self.tax, self.shipping,
                                      self.shipping_context, self.buyer))
        return Quote(stores, self.warnings, self.resolver, self.tax, self.shipping,
                     self.shipping_context, self.buyer)

    def breakdown(self) -> PriceBreakdown:
        return PriceBreakdown(
            subtotal=round2(self.subtotal),
            discount=round2(self.discount),
            taxes=round2(self.taxes),
            shipping=round2(self.shipping_total),
            total=self.total,
            carrier=self.carrier,
            stores=tuple(self.stores),
            lines=tuple(self.lines),
            warnings=tuple(self.warnings),
        )


def price_store(
    store: StoreInfo,
    lines: Sequence[CartLine],
    resolutions: Sequence[LineResolution],
    tax: TaxResolver,
    shipping: ShippingResolver,
    shipping_context: ShippingContext,
    buyer: BuyerContext,
) -> StoreQuote:
    """Налог по строкам и доставка одной посылкой магазина"""
    line_quotes = []
    for line, resolution in zip(lines, resolutions):
        amount = resolution.line_total(line)
        line_tax = tax.tax_for(line, amount, shipping_context.province, buyer.tax_exempt)
        line_quotes.append(LineQuote(line=line, resolution=resolution, tax=line_tax))

    free_shipping = any(resolution.free_shipping for resolution in resolutions)
    shipping_quote = shipping.quote_lines(lines, shipping_context.zone, shipping_context.method, free_shipping)

    return StoreQuote(
        store=store,
        lines=tuple(line_quotes),
        taxes=sum((lq.tax for lq in line_quotes), ZERO),
        shipping=shipping_quote.cost,
        carrier=shipping_quote.carrier,
        free_shipping=free_shipping,
    )


class PriceCalculator:
    """
    Предпросмотр заказа: акции по магазинам → налог по строкам →
    доставка по магазинам → итог.
    Ничего не пишет в БД, можно вызывать сколько угодно раз.
    """

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    def calculate(
        self,
        items: Sequence[CartItem],
        shipping_context: ShippingContext,
        buyer: BuyerContext,
    ) -> PriceBreakdown:
        return self.quote(items, shipping_context, buyer).breakdown()

    def quote(
        self,
        items: Sequence[CartItem],
        shipping_context: ShippingContext,
        buyer: BuyerContext,
    ) -> Quote:
        now = self.now or datetime.utcnow()
        warnings: List[str] = []

        products = catalog.get_products(self.db, [item.product_id for item in items])
        stores = catalog.get_stores(self.db, [item.store_id for item in items])

        # Группируем по магазину в порядке корзины
        groups: "OrderedDict[int, List[CartLine]]" = OrderedDict()
        for item in items:
            try:
                line = build_cart_line(item, products.get(item.product_id), stores.get(item.store_id))
            except CartValidationError as exc:
                logger.warning("Dropping cart line: %s", exc)
                warnings.append(str(exc))
                continue

            if item.unit_price is not None and round2(item.unit_price) != line.unit_price:
                warnings.append(
                    f"Price for product {line.product_id} changed to {format_money(line.unit_price)}"
                )
            groups.setdefault(line.store_id, []).append(line)

        store_ids = list(groups.keys())
        specs = promotion_repo.load_promotions(self.db, store_ids, now)
        usage = usage_repo.read_counts(self.db, [spec.id for spec in specs], buyer.buyer_id)
        platform = rules_repo.get_platform_settings(self.db)

        resolver = PromotionResolver(specs, usage, buyer, now)
        tax = TaxResolver(rules_repo.list_tax_rules(self.db), enabled=platform.tax_enabled)
        shipping = ShippingResolver(rules_repo.list_shipping_rules(self.db), enabled=platform.shipping_enabled)

        store_quotes = []
        for store_id, lines in groups.items():
            resolutions = resolver.resolve(lines)
            store_quotes.append(price_store(stores[store_id], lines, resolutions, tax, shipping,
                                            shipping_context, buyer))

        return Quote(store_quotes, warnings, resolver, tax, shipping, shipping_context, buyer)


def build_breakdown_response(breakdown: PriceBreakdown) -> dict:
    """Ответ предпросмотра: все деньги строками с 2 знаками"""
    return {
        "subtotal": format_money(breakdown.subtotal),
        "discount": format_money(breakdown.discount),
        "taxes": format_money(breakdown.taxes),
        "shipping": format_money(breakdown.shipping),
        "total": format_money(breakdown.total),
        "carrier": breakdown.carrier,
        "stores": [
            {
                "store_id": store.store_id,
                "subtotal": format_money(store.subtotal),
                "taxes": format_money(store.taxes),
                "shipping": format_money(store.shipping),
                "carrier": store.carrier,
                "free_shipping": store.free_shipping,
            }
            for store in breakdown.stores
        ],
        "lines": [
            {
                "product_id": lq.line.product_id,
                "store_id": lq.line.store_id,
                "quantity": lq.line.quantity,
                "unit_price": format_money(lq.line.unit_price),
                "discounted_unit_price": format_money(lq.discounted_unit_price),
                "total": format_money(lq.total),
                "applied_promotion_ids": lq.resolution.applied_ids,
            }
            for lq in breakdown.lines
        ],
        "warnings": list(breakdown.warnings),
    }
