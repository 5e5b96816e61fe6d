from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from marketplace.models.promotion import PromotionType, PromotionScope, PromotionStatus


class PromotionResponse(BaseModel):
    id: int
    store_id: int
    name: str
    description: Optional[str] = None
    type: PromotionType
    value: Decimal
    scope: PromotionScope
    target_ids: Optional[str] = None
    priority: int
    stackable: bool
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: PromotionStatus

    class Config:
        from_attributes = True
