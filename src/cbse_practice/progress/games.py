"""Game catalog listing and per-level progress updates."""

from datetime import datetime, timezone
from typing import Any

import structlog

from cbse_practice.errors import UpstreamWriteFailure
from cbse_practice.models.records import (
    Difficulty,
    GameProgressRecord,
    GameRecord,
    parse_row,
    parse_rows,
)
from cbse_practice.models.requests import ProgressUpdate
from cbse_practice.progress.rewards import chapter_mastery_reward, level_rewards
from cbse_practice.storage.supabase import SupabaseStore

logger = structlog.get_logger()


async def list_games(store: SupabaseStore, user_id: str, chapter: str) -> list[dict[str, Any]]:
    """Return a chapter's games, each with an easy/medium/hard progress slot.

    Unknown chapters simply produce an empty list.
    """
    games = await store.fetch_games(chapter=chapter)
    if not games:
        return []

    game_ids = [g.id for g in parse_rows(GameRecord, games, "games")]
    progress = await store.fetch_game_progress(user_id, game_ids=game_ids)
    slots: dict[tuple[str, str], dict[str, Any]] = {}
    for row, entry in zip(progress, parse_rows(GameProgressRecord, progress, "game_progress")):
        # keep the first row per (game, difficulty)
        slots.setdefault((entry.game_id, entry.difficulty), row)

    listed = []
    for game, game_id in zip(games, game_ids):
        listed.append({
            **game,
            "progress": {
                level.value: slots.get((game_id, level.value)) for level in Difficulty
            },
        })
    return listed


def merge_progress(
    user_id: str,
    update: ProgressUpdate,
    existing: GameProgressRecord | None,
    now: datetime,
) -> GameProgressRecord:
    """Fold one attempt into the stored record without losing best results."""
    previous = existing or GameProgressRecord(game_id=update.game_id)
    completed_at = now.isoformat() if update.completed else previous.completed_at
    return previous.model_copy(update={
        "user_id": user_id,
        "game_id": update.game_id,
        "difficulty": update.difficulty.value,
        "stars_earned": max(previous.stars_earned or 0, update.stars_earned),
        "best_accuracy": max(previous.best_accuracy or 0, update.accuracy),
        "questions_completed": (previous.questions_completed or 0) + update.questions_completed,
        "hints_used": (previous.hints_used or 0) + update.hints_used,
        "unlocked": True,
        "completed_at": completed_at,
    })


class ProgressTracker:
    """Applies level attempts to ``game_progress`` and hands out rewards.

    Args:
        store: Store client.
        user_id: Resolved caller id.
    """

    def __init__(self, store: SupabaseStore, user_id: str):
        self.store = store
        self.user_id = user_id

    async def apply(self, update: ProgressUpdate, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        rows = await self.store.fetch_game_progress(
            self.user_id, game_ids=[update.game_id], difficulty=update.difficulty.value
        )
        existing = parse_row(GameProgressRecord, rows[0], "game_progress") if rows else None

        merged = merge_progress(self.user_id, update, existing, now)
        saved = await self.store.upsert_game_progress(merged.to_row())
        logger.info(
            "game_progress_saved",
            user_id=self.user_id,
            game_id=update.game_id,
            difficulty=update.difficulty.value,
            stars=merged.stars_earned,
        )

        rewards = level_rewards(self.user_id, update, existing)
        await self._award(rewards)

        first_completion = update.completed and not (existing and existing.is_completed)
        if first_completion:
            await self._check_chapter_mastery(update.game_id)

        return {"success": True, "progress": saved, "rewardsEarned": len(rewards)}

    async def _check_chapter_mastery(self, game_id: str) -> None:
        game = await self.store.fetch_game(game_id)
        if game is None:
            return
        chapter = parse_row(GameRecord, game, "games").chapter
        chapter_games = await self.store.fetch_games(chapter=chapter)
        if not chapter_games:
            return

        game_ids = [g.id for g in parse_rows(GameRecord, chapter_games, "games")]
        progress = await self.store.fetch_game_progress(self.user_id, game_ids=game_ids)
        completed = {
            entry.game_id
            for entry in parse_rows(GameProgressRecord, progress, "game_progress")
            if entry.is_completed
        }
        logger.info(
            "chapter_completion_checked",
            chapter=chapter,
            completed=len(completed),
            total=len(game_ids),
        )
        if completed.issuperset(game_ids):
            await self._award([chapter_mastery_reward(self.user_id, chapter)])

    async def _award(self, rewards: list[dict[str, Any]]) -> None:
        """Insert rewards; failures are logged and never fail the update."""
        if not rewards:
            return
        try:
            await self.store.insert_rewards(rewards)
        except UpstreamWriteFailure:
            logger.exception("reward_insert_failed", user_id=self.user_id, count=len(rewards))
