import json
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from typing import List
from marketplace.api.deps import get_db, get_current_user, build_buyer_context
from marketplace.models.user import User
from marketplace.models.order import Order
from marketplace.repositories import orders as order_repo
from marketplace.schemas.order import OrderCreate, OrderResponse, OrderItemResponse, TransactionResponse
from marketplace.services.errors import CartValidationError, PersistenceError
from marketplace.services.orders import commit_order

router = APIRouter(tags=["orders"])


# === Buyer: оформление заказа ===

@router.post("/api/orders", response_model=OrderResponse, status_code=201)
def create_new_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Оформить заказ"""
    if not data.items:
        raise HTTPException(status_code=400, detail="Order must contain at least one item")

    buyer = build_buyer_context(db, current_user)
    try:
        order = commit_order(
            db,
            data.cart_items(),
            data.shipping_context(),
            data.payment_method,
            buyer,
            shipping_address=data.shipping_address,
        )
    except CartValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=f"{exc}. Please retry")

    return build_order_response(order)


# === Buyer: мои заказы ===

@router.get("/api/me/orders", response_model=List[OrderResponse])
def get_my_orders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Список моих заказов"""
    orders = order_repo.list_buyer_orders(db, current_user.id)
    return [build_order_response(order) for order in orders]


@router.get("/api/me/orders/{order_id}", response_model=OrderResponse)
def get_my_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Детали моего заказа"""
    order = order_repo.get_buyer_order(db, current_user.id, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    return build_order_response(order)


def build_order_response(order: Order) -> OrderResponse:
    """Построить ответ заказа с акциями по строкам и транзакциями магазинов"""
    order_dict = order.model_dump()

    items = []
    for item in order.items:
        item_dict = item.model_dump()
        item_dict["applied_promotion_ids"] = json.loads(item.applied_promotion_ids or "[]")
        items.append(OrderItemResponse(**item_dict))

    order_dict["items"] = items
    order_dict["transactions"] = [
        TransactionResponse.model_validate(transaction) for transaction in order.transactions
    ]
    return OrderResponse(**order_dict)
