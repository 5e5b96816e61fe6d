import logging

from marketplace.core.config import settings


def setup_logging() -> None:
    """Базовая настройка логов приложения"""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Шумные библиотеки
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
