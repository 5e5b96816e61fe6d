from .user import User, UserRole
from .store import Store, StoreStatus, Subscription, SubscriptionStatus
from .product import Product
from .promotion import (
    Promotion, PromotionType, PromotionScope, PromotionStatus,
    PromotionRule, RuleType, RuleOperator,
    PromotionAction, ActionType, ActionTarget,
    PromotionProductOverride, PromotionUsage,
)
from .rules import PlatformSettings, TaxRule, ShippingRateRule
from .order import Order, OrderItem, OrderStatus, PaymentMethod, Transaction, TransactionStatus

__all__ = [
    "User", "UserRole",
    "Store", "StoreStatus", "Subscription", "SubscriptionStatus",
    "Product",
    "Promotion", "PromotionType", "PromotionScope", "PromotionStatus",
    "PromotionRule", "RuleType", "RuleOperator",
    "PromotionAction", "ActionType", "ActionTarget",
    "PromotionProductOverride", "PromotionUsage",
    "PlatformSettings", "TaxRule", "ShippingRateRule",
    "Order", "OrderItem", "OrderStatus", "PaymentMethod", "Transaction", "TransactionStatus",
]
