from sqlmodel import create_engine
from marketplace.core.config import settings


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # FastAPI выполняет sync-эндпоинты в пуле потоков
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
