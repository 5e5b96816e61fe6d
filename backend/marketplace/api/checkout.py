from fastapi import APIRouter, Depends
from sqlmodel import Session
from marketplace.api.deps import get_db, get_current_user_optional, build_buyer_context
from marketplace.models.user import User
from marketplace.schemas.checkout import CheckoutRequest, PriceBreakdownResponse
from marketplace.services.pricing import PriceCalculator, build_breakdown_response

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/calculate", response_model=PriceBreakdownResponse)
def calculate_checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_current_user_optional)
):
    """Предпросмотр цены корзины (гость или авторизованный)"""
    buyer = build_buyer_context(db, current_user)
    breakdown = PriceCalculator(db).calculate(data.cart_items(), data.shipping_context(), buyer)
    return build_breakdown_response(breakdown)
