"""REST API routes for the practice functions."""

import structlog
from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse

from cbse_practice.config import get_settings
from cbse_practice.errors import PracticeError, Unauthorized
from cbse_practice.models.requests import GamesQuery, ProgressUpdate, ResultSubmission
from cbse_practice.progress.games import ProgressTracker, list_games
from cbse_practice.progress.performance import PerformanceTracker
from cbse_practice.stats.aggregator import StatsAggregator
from cbse_practice.storage.supabase import SupabaseStore

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise Unauthorized()
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized()
    return token


def open_store(access_token: str) -> SupabaseStore:
    return SupabaseStore.from_settings(get_settings(), access_token)


def error_response(function: str, error: PracticeError) -> JSONResponse:
    """Log a failure and render it as ``{"error": message}``."""
    if isinstance(error, Unauthorized):
        logger.warning("request_unauthorized", function=function)
    else:
        logger.exception("request_failed", function=function, error=str(error))
    return JSONResponse({"error": str(error)}, status_code=error.status_code)


@router.api_route("/get-user-stats", methods=["GET", "POST"])
async def get_user_stats(authorization: str | None = Header(default=None)) -> dict:
    """Stats snapshot for the caller. Any request body is ignored."""
    try:
        token = bearer_token(authorization)
        async with open_store(token) as store:
            user_id = await store.resolve_user()
            aggregator = StatsAggregator(
                store, rewards_limit=get_settings().recent_rewards_limit
            )
            snapshot = await aggregator.collect(user_id)
    except PracticeError as e:
        return error_response("get-user-stats", e)
    return snapshot.to_payload()


@router.post("/get-games")
async def get_games(
    query: GamesQuery,
    authorization: str | None = Header(default=None),
) -> dict:
    """List a chapter's games with the caller's progress per difficulty."""
    try:
        token = bearer_token(authorization)
        async with open_store(token) as store:
            user_id = await store.resolve_user()
            games = await list_games(store, user_id, query.chapter)
    except PracticeError as e:
        return error_response("get-games", e)
    return {"games": games}


@router.post("/update-game-progress")
async def update_game_progress(
    update: ProgressUpdate,
    authorization: str | None = Header(default=None),
) -> dict:
    """Merge a level attempt into the caller's progress."""
    try:
        token = bearer_token(authorization)
        async with open_store(token) as store:
            user_id = await store.resolve_user()
            return await ProgressTracker(store, user_id).apply(update)
    except PracticeError as e:
        return error_response("update-game-progress", e)


@router.post("/submit-result")
async def submit_result(
    submission: ResultSubmission,
    authorization: str | None = Header(default=None),
) -> dict:
    """Record one micro-task result and update adaptive performance."""
    try:
        token = bearer_token(authorization)
        async with open_store(token) as store:
            user_id = await store.resolve_user()
            return await PerformanceTracker(store, user_id).submit(submission)
    except PracticeError as e:
        return error_response("submit-result", e)


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
