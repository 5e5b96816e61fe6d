from .checkout import CartLineIn, CheckoutRequest, PriceBreakdownResponse
from .order import OrderCreate, OrderResponse, OrderItemResponse, TransactionResponse
from .promotion import PromotionResponse

__all__ = [
    "CartLineIn", "CheckoutRequest", "PriceBreakdownResponse",
    "OrderCreate", "OrderResponse", "OrderItemResponse", "TransactionResponse",
    "PromotionResponse",
]
