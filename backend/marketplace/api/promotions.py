from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from typing import List, Optional
from marketplace.api.deps import get_db
from marketplace.repositories.promotions import get_active_promotions
from marketplace.schemas.promotion import PromotionResponse

router = APIRouter(prefix="/api/promotions", tags=["promotions"])


@router.get("/active", response_model=List[PromotionResponse])
def list_active_promotions(
    store_id: Optional[int] = Query(None),
    db: Session = Depends(get_db)
):
    """Список активных акций (публичный), можно по магазину"""
    store_ids = [store_id] if store_id is not None else None
    return get_active_promotions(db, store_ids)
