from fastapi import Depends, HTTPException, status
from fastapi_jwt import JwtAccessBearerCookie, JwtAuthorizationCredentials
from sqlmodel import Session
from marketplace.db.session import engine
from marketplace.models.user import User
from marketplace.core.config import settings
from marketplace.repositories.orders import buyer_has_orders
from marketplace.services.domain import BuyerContext

# JWT с HttpOnly cookie
access_security = JwtAccessBearerCookie(
    secret_key=settings.SECRET_KEY,
    auto_error=False
)


def get_db():
    with Session(engine) as session:
        yield session


async def get_current_user(
    credentials: JwtAuthorizationCredentials = Depends(access_security),
    db: Session = Depends(get_db)
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user_id = credentials.subject.get("id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    user = db.get(User, int(user_id))
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    return user


async def get_current_user_optional(
    credentials: JwtAuthorizationCredentials = Depends(access_security),
    db: Session = Depends(get_db)
) -> User | None:
    if credentials is None:
        return None

    user_id = credentials.subject.get("id")
    if not user_id:
        return None

    user = db.get(User, int(user_id))
    if not user or not user.is_active:
        return None
    return user


def build_buyer_context(db: Session, user: User | None) -> BuyerContext:
    """Контекст покупателя для правил акций и налогов"""
    if user is None:
        return BuyerContext()

    return BuyerContext(
        buyer_id=user.id,
        has_prior_orders=buyer_has_orders(db, user.id),
        customer_group=user.customer_group,
        tax_exempt=user.tax_exempt,
    )
