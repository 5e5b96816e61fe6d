from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from marketplace.core.config import settings
from marketplace.core.logging import setup_logging

setup_logging()

app = FastAPI(
    title="Marketplace Pricing API",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import routers after app creation to avoid circular imports
from marketplace.api import (  # noqa: E402
    checkout,
    orders,
    promotions,
)

# Routers - all already have /api prefix
app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(promotions.router)


@app.get("/")
def root():
    return {"status": "ok", "service": "marketplace-api"}


@app.get("/api/health")
def health_check():
    return {
        "status": "healthy",
        "env": settings.ENV
    }
