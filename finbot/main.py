import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from dotenv import load_dotenv

# Load env from finbot/.env
finbot_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(finbot_dir, ".env"))

from finbot.core.config import settings, validate_config
from finbot.core.database import create_all_tables, get_database_url
from finbot.core.logging import configure_logging
from finbot.core.middleware.request_id import RequestIdMiddleware
from finbot.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from finbot.api import cron, health, payments, webhooks_admin

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("finbot")
    logger.info("Starting finbot integration service...")
    app.state.startup_time = time.time()
    if get_database_url():
        try:
            create_all_tables()
        except Exception as e:
            logger.error(f"[startup] schema creation failed: {e}")
    try:
        yield
    finally:
        logging.getLogger("finbot").info("Stopping finbot integration service...")


app = FastAPI(title="finbot - integrations", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(payments.router, prefix="/api", tags=["payments"])
app.include_router(cron.router, prefix="/api", tags=["cron"])
app.include_router(webhooks_admin.router, tags=["admin-webhooks"])
app.include_router(health.root_router, tags=["health"])
