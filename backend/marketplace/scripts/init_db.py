"""
Init-скрипт: таблицы + настройки платформы по умолчанию
Запуск: python -m marketplace.scripts.init_db
"""
import logging
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session
from marketplace.db.session import engine as default_engine
from marketplace.core.logging import setup_logging
from marketplace.models import PlatformSettings
from marketplace.repositories.rules import SETTINGS_ID

logger = logging.getLogger(__name__)


def create_tables(engine: Engine = default_engine):
    """Создание всех таблиц"""
    SQLModel.metadata.create_all(engine)


def seed_platform_settings(engine: Engine = default_engine) -> PlatformSettings:
    """Строка настроек платформы, если её ещё нет"""
    with Session(engine) as session:
        existing = session.get(PlatformSettings, SETTINGS_ID)
        if existing:
            logger.info("Platform settings already exist")
            return existing

        row = PlatformSettings(id=SETTINGS_ID, tax_enabled=True, shipping_enabled=True)
        session.add(row)
        session.commit()
        session.refresh(row)
        logger.info("Platform settings created")
        return row


def main():
    setup_logging()
    logger.info("Creating tables...")
    create_tables()
    logger.info("Seeding platform settings...")
    seed_platform_settings()
    logger.info("Done!")


if __name__ == "__main__":
    main()
