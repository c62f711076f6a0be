import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voiceflow.api.routes import health, payments, payments_webhook, usage
from voiceflow.core import config
from voiceflow.core.logging_config import setup_logging
from voiceflow.db.init_db import init_db
from voiceflow.db.migrate import run_migrations
from voiceflow.db.session import build_engine, build_session_factory
from voiceflow.services.gateway import build_gateway

logger = logging.getLogger(__name__)


# ============================================
# STARTUP / SHUTDOWN
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)

    if config.RUN_MIGRATIONS:
        run_migrations(config.DATABASE_URL)

    engine = build_engine(config.DATABASE_URL)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.gateway = build_gateway()

    db = app.state.session_factory()
    try:
        init_db(engine, db, create_tables=config.AUTO_CREATE_TABLES and not config.RUN_MIGRATIONS)
    finally:
        db.close()

    logger.info("Voiceflow API started")
    yield

    engine.dispose()
    logger.info("Voiceflow API stopped")


# ============================================
# FASTAPI APP INIT
# ============================================

def create_app() -> FastAPI:
    app = FastAPI(title="Voiceflow API", lifespan=lifespan)

    # Only the web frontend calls the API from a browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            config.FRONTEND_URL,
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(payments.router)
    app.include_router(payments_webhook.router)
    app.include_router(usage.router)
    app.include_router(health.router)

    @app.get("/")
    def root():
        return {"status": "Voiceflow API running"}

    return app


app = create_app()
