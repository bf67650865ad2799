"""Read-only diagnostics routes."""

import structlog
from fastapi import APIRouter, HTTPException, Request

from adaptive_skill_engine.engine import AdaptiveEngine
from adaptive_skill_engine.rating.tiers import progress_to_next_tier

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


def get_engine(request: Request) -> AdaptiveEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialised")
    return engine


def validate_category(engine: AdaptiveEngine, category: str) -> str:
    if category not in engine.settings.categories:
        raise HTTPException(status_code=404, detail="Unknown category")
    return category


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/diagnostics/bias")
async def get_bias_audit(request: Request) -> dict:
    """Current answer-slot bias audit."""
    report = get_engine(request).bias_report()
    return {**report.model_dump(mode="json"), "frequencies": report.frequencies}


@router.get("/diagnostics/length-bias")
async def get_length_bias(request: Request) -> dict:
    """Whether correct answers in the bank stand out by length."""
    return get_engine(request).length_bias_report().model_dump()


@router.get("/diagnostics/pool")
async def get_pool_stats(request: Request) -> list[dict]:
    """Per category/difficulty pool sizes and rotation state."""
    return get_engine(request).pool.stats()


@router.get("/players/{user_id}/ratings")
async def get_player_ratings(user_id: str, request: Request) -> dict:
    """All category ratings for a user plus the overall aggregate."""
    engine = get_engine(request)
    ratings = engine.ratings.ratings(user_id)
    return {
        "user_id": user_id,
        "overall": engine.ratings.overall(user_id).model_dump(),
        "stats": engine.ratings.stats(user_id).model_dump(),
        "categories": {
            category: {
                **rating.model_dump(mode="json"),
                **progress_to_next_tier(rating.value),
            }
            for category, rating in ratings.items()
        },
    }


@router.get("/players/{user_id}/{category}/flow")
async def get_player_flow(user_id: str, category: str, request: Request) -> dict:
    """Re-derived flow and difficulty for display polling."""
    engine = get_engine(request)
    category = validate_category(engine, category)
    return engine.snapshot(user_id, category).model_dump(mode="json")


@router.get("/players/{user_id}/history")
async def get_player_history(
    user_id: str,
    request: Request,
    category: str | None = None,
) -> list[dict]:
    """Rating log, oldest first, optionally for one category."""
    engine = get_engine(request)
    if category is not None:
        category = validate_category(engine, category)
    return [entry.model_dump(mode="json") for entry in engine.history(user_id, category)]
