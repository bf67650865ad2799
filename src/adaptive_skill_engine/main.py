"""Diagnostics server entry point."""

import logging
import os

import structlog
import uvicorn
from fastapi import FastAPI

from adaptive_skill_engine.api.routes import router
from adaptive_skill_engine.config import Settings, get_settings
from adaptive_skill_engine.delivery.bank import load_question_bank
from adaptive_skill_engine.delivery.bias import BiasAuditor
from adaptive_skill_engine.delivery.pool import QuestionPool
from adaptive_skill_engine.engine import AdaptiveEngine

logger = structlog.get_logger()


def configure_logging() -> None:
    """Configure structlog based on environment."""
    is_production = os.getenv("ENV", "development").lower() == "production"

    if is_production:
        # Production: JSON format for machine parsing
        renderer = structlog.processors.JSONRenderer()
        level = logging.INFO
    else:
        # Development: console format for human readability
        renderer = structlog.dev.ConsoleRenderer()
        level = logging.DEBUG

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_engine(settings: Settings) -> AdaptiveEngine:
    """Build an engine with the configured question bank (empty if none)."""
    bank_path = settings.resolved_question_bank_path
    questions = load_question_bank(bank_path) if bank_path is not None else []
    auditor = BiasAuditor(settings)
    pool = QuestionPool(questions, settings=settings, auditor=auditor)
    return AdaptiveEngine(pool, settings=settings, auditor=auditor)


def create_app(engine: AdaptiveEngine | None = None) -> FastAPI:
    """Create the diagnostics app around an engine."""
    app = FastAPI(title="Adaptive Skill Engine Diagnostics", version="0.1.0")
    app.state.engine = engine or build_engine(get_settings())
    app.include_router(router)
    return app


def main() -> None:
    """Run the diagnostics server."""
    configure_logging()
    settings = get_settings()
    app = create_app(build_engine(settings))
    logger.info("diagnostics_server_starting", host=settings.host, port=settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
