from pydantic_settings import BaseSettings
from typing import List
from decimal import Decimal


class Settings(BaseSettings):
    ENV: str = "development"
    SECRET_KEY: str = "change-me-in-production"
    DATABASE_URL: str = "sqlite:////data/marketplace.db"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5000"

    # Доставка по умолчанию (если клиент не передал зону/метод)
    DEFAULT_SHIPPING_ZONE: str = "PK"
    DEFAULT_SHIPPING_METHOD: str = "standard"

    # Комиссия платформы, если у вендора нет активной подписки
    DEFAULT_COMMISSION_RATE: Decimal = Decimal("10.00")

    ORDER_NUMBER_PREFIX: str = "MK"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"


settings = Settings()
