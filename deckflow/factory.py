"""
FastAPI application factory.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.container import Services, build_services
from .core.database import close_db, get_session_factory, init_db
from .core.errors import DeckflowError
from .core.flags import get_flags
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the app. Pass `services` to run against a prebuilt container
    (tests do); otherwise one is built on startup from settings.
    """
    settings = get_settings()

    app = FastAPI(
        title="Deckflow",
        description="Deck generation and quality-gate pipeline",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Errors ───────────────────────────────────────────────────
    @app.exception_handler(DeckflowError)
    async def deckflow_error(request: Request, exc: DeckflowError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    if services is not None:
        app.state.services = services

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting Deckflow (env=%s)", settings.env)

        flags = get_flags()
        if getattr(app.state, "services", None) is None:
            await init_db()
            app.state.services = build_services(settings, flags, get_session_factory())
        app.state.services.start()

        logger.info(
            "Flags: redis=%s llm=%s fts=%s content_review=%s quality=%s fact_check=%s codify=%s",
            flags.use_redis, flags.llm_provider, flags.use_full_text_search,
            flags.enable_content_review, flags.enable_quality_review,
            flags.enable_fact_check, flags.enable_rule_codification,
        )
        logger.info("Deckflow is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        services_ = getattr(app.state, "services", None)
        if services_ is not None:
            await services_.close()
        await close_client()
        await close_db()
        await close_redis()
        logger.info("Deckflow shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
