import itertools
import json
import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel, Session, create_engine  # noqa: E402
from sqlmodel.pool import StaticPool  # noqa: E402

import marketplace.models  # noqa: E402,F401
from marketplace.api.deps import get_current_user, get_current_user_optional, get_db  # noqa: E402
from marketplace.main import app  # noqa: E402
from marketplace.models import (  # noqa: E402
    PlatformSettings,
    Product,
    Promotion,
    PromotionAction,
    PromotionProductOverride,
    PromotionRule,
    PromotionStatus,
    PromotionUsage,
    ShippingRateRule,
    Store,
    StoreStatus,
    Subscription,
    TaxRule,
    User,
    UserRole,
)


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


class Seeder:
    """Быстрое наполнение БД для тестов"""

    def __init__(self, session: Session):
        self.session = session
        self._ids = itertools.count(1)

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def buyer(self, **kwargs) -> User:
        kwargs.setdefault("email", f"user{next(self._ids)}@example.com")
        return self._save(User(**kwargs))

    def store(self, vendor: User = None, commission_rate=None, **kwargs) -> Store:
        vendor = vendor or self.buyer(role=UserRole.VENDOR)
        kwargs.setdefault("name", "Store")
        kwargs.setdefault("district", "Multan")
        kwargs.setdefault("status", StoreStatus.APPROVED)
        store = self._save(Store(vendor_id=vendor.id, **kwargs))
        if commission_rate is not None:
            self._save(Subscription(vendor_id=vendor.id, commission_rate=Decimal(str(commission_rate))))
        return store

    def product(self, store: Store, price="500.00", **kwargs) -> Product:
        kwargs.setdefault("name", "Product")
        kwargs.setdefault("category", "general")
        return self._save(Product(store_id=store.id, price=Decimal(str(price)), **kwargs))

    def promotion(self, store: Store, rules=(), actions=(), overrides=(), targets=None, **kwargs) -> Promotion:
        kwargs.setdefault("name", "Promo")
        kwargs.setdefault("status", PromotionStatus.ACTIVE)
        kwargs.setdefault("starts_at", datetime.utcnow() - timedelta(days=1))
        kwargs.setdefault("ends_at", datetime.utcnow() + timedelta(days=1))
        if "value" in kwargs:
            kwargs["value"] = Decimal(str(kwargs["value"]))
        if targets is not None:
            kwargs["target_ids"] = json.dumps(list(targets))

        promo = self._save(Promotion(store_id=store.id, **kwargs))
        for rule in rules:
            rule = dict(rule)
            rule["value"] = json.dumps(rule["value"])
            self._save(PromotionRule(promotion_id=promo.id, **rule))
        for action in actions:
            action = dict(action)
            action["value"] = Decimal(str(action.get("value", "0")))
            self._save(PromotionAction(promotion_id=promo.id, **action))
        for override in overrides:
            self._save(PromotionProductOverride(promotion_id=promo.id, **override))
        return promo

    def tax_rule(self, rate="5.00", **kwargs) -> TaxRule:
        return self._save(TaxRule(rate=Decimal(str(rate)), **kwargs))

    def shipping_rule(self, **kwargs) -> ShippingRateRule:
        for key in ("min_weight_kg", "max_weight_kg", "base_rate", "per_kg_rate", "dimensional_factor", "surcharge"):
            if kwargs.get(key) is not None:
                kwargs[key] = Decimal(str(kwargs[key]))
        return self._save(ShippingRateRule(**kwargs))

    def platform(self, **kwargs) -> PlatformSettings:
        return self._save(PlatformSettings(id="default", **kwargs))

    def usage(self, promotion: Promotion, count: int, buyer: User = None) -> PromotionUsage:
        buyer_key = str(buyer.id) if buyer else ""
        return self._save(PromotionUsage(promotion_id=promotion.id, buyer_key=buyer_key, count=count))


@pytest.fixture(name="seed")
def seed_fixture(session):
    return Seeder(session)


@pytest.fixture(name="client")
def client_fixture(session):
    app.dependency_overrides[get_db] = lambda: session
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="login")
def login_fixture(client):
    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_current_user_optional] = lambda: user
    return _login
