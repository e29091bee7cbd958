import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fabricpos.config import settings
from fabricpos.database import engine
from fabricpos.exceptions import register_exception_handlers
from fabricpos.logger import setup_logging
from fabricpos.middleware import RateLimitMiddleware, RequestContextMiddleware
from fabricpos.models import Base
from fabricpos.routers import (
    auth, users, workspaces, categories, products,
    customers, inventory, bills, barcodes, settings as settings_router, reports,
)
from fabricpos.utils.mailer import email_service

setup_logging()
logger = logging.getLogger(__name__)

# 1. Tables are created on startup
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if email_service.configured and not email_service.verify_connection():
        logger.warning("SMTP server is unreachable; emails will not be delivered")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Point of sale, inventory and tailoring orders for clothing shops",
    version=settings.VERSION,
    lifespan=lifespan,
)

# 2. Middlewares (the last one added runs first)
if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)

# 3. Error handlers
register_exception_handlers(app)

# 4. API routers
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(workspaces.router, prefix="/api/workspaces", tags=["Workspaces"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(customers.router, prefix="/api/customers", tags=["Customers"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(bills.router, prefix="/api/bills", tags=["Bills"])
app.include_router(barcodes.router, prefix="/api/barcodes", tags=["Barcodes"])
app.include_router(settings_router.router, prefix="/api/settings", tags=["Settings"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])

if settings.is_production and settings.uses_default_secrets:
    logger.warning("SECRET_KEY / REFRESH_SECRET_KEY still use the default values; set them in the environment")
logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started ({settings.ENVIRONMENT})")


@app.get("/health", tags=["Health"])
def health_check():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.VERSION,
    }
