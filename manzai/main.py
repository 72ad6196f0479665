import logging
import os
import random
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from manzai.api import credit, generate, health
from manzai.core.config import Settings, build_pipeline_config, settings, validate_config
from manzai.core.database import init_engine
from manzai.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from manzai.core.logging import configure_logging
from manzai.core.middleware.request_id import RequestIdMiddleware
from manzai.core.validation import validate_env
from manzai.features.credits.service import CreditLedger
from manzai.features.credits.store import SqlUsageStore, UsageStore
from manzai.features.script.generator import TextGenerator, build_text_generator


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("manzai")
    logger.info("Starting manzai service...")
    try:
        yield
    finally:
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            engine.dispose()
        logger.info("Stopping manzai service...")


def _cors_origins(raw: str):
    origins = [origin.strip() for origin in (raw or "").split(",") if origin.strip()]
    return origins or ["*"]


def create_app(
    settings_obj: Optional[Settings] = None,
    generator: Optional[TextGenerator] = None,
    store: Optional[UsageStore] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the app. Tests pass a fake generator and an in-memory store."""
    cfg = settings_obj or settings

    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    app = FastAPI(title="Manzai script generator", lifespan=lifespan)

    app.state.settings = cfg
    app.state.pipeline_config = build_pipeline_config(cfg)
    app.state.generator = generator if generator is not None else build_text_generator(cfg)
    app.state.engine = None
    if store is None and cfg.DATABASE_URL:
        app.state.engine = init_engine(cfg.DATABASE_URL)
        store = SqlUsageStore(app.state.engine)
    app.state.ledger = CreditLedger.from_config(store, app.state.pipeline_config)
    app.state.rng = rng

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(cfg.CORS_ORIGINS),
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(generate.router)
    app.include_router(credit.router)
    app.include_router(health.router)
    return app


app = create_app()
