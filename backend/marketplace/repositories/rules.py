from typing import List
from sqlmodel import Session, select
from marketplace.models.rules import PlatformSettings, TaxRule, ShippingRateRule

SETTINGS_ID = "default"


def get_platform_settings(db: Session) -> PlatformSettings:
    """Настройки платформы; без строки в БД налог и доставка включены"""
    row = db.get(PlatformSettings, SETTINGS_ID)
    return row or PlatformSettings(id=SETTINGS_ID)


def list_tax_rules(db: Session) -> List[TaxRule]:
    stmt = select(TaxRule).where(TaxRule.enabled == True)  # noqa: E712
    return list(db.exec(stmt).all())


def list_shipping_rules(db: Session) -> List[ShippingRateRule]:
    stmt = select(ShippingRateRule).where(ShippingRateRule.enabled == True)  # noqa: E712
    return list(db.exec(stmt).all())
