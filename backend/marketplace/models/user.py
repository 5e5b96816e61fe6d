from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from enum import Enum

if TYPE_CHECKING:
    from .order import Order


class UserRole(str, Enum):
    BUYER = "buyer"
    VENDOR = "vendor"
    ADMIN = "admin"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: Optional[str] = Field(default=None, unique=True, index=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None

    role: UserRole = Field(default=UserRole.BUYER)

    # Группа покупателя для правил акций (wholesale, vip, ...)
    customer_group: Optional[str] = None
    tax_exempt: bool = Field(default=False)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    orders: List["Order"] = Relationship(back_populates="buyer")
