"""Milestone rewards granted on game progress updates."""

from typing import Any

from cbse_practice.models.records import GameProgressRecord, RewardRecord
from cbse_practice.models.requests import ProgressUpdate

MAX_STARS = 3
PERFECT_ACCURACY = 100


def _reward(user_id: str, reward_type: str, title: str, description: str, **metadata) -> dict[str, Any]:
    return RewardRecord(
        user_id=user_id,
        reward_type=reward_type,
        reward_title=title,
        reward_description=description,
        metadata=metadata,
    ).to_row()


def level_rewards(
    user_id: str,
    update: ProgressUpdate,
    existing: GameProgressRecord | None,
) -> list[dict[str, Any]]:
    """Rewards earned by one attempt, judged against the record before it."""
    level = update.difficulty.value
    meta = {"game_id": update.game_id, "difficulty": level}
    previous_stars = (existing.stars_earned or 0) if existing else 0
    rewards = []

    if update.completed and not (existing and existing.is_completed):
        rewards.append(_reward(
            user_id,
            "level_completion",
            f"{level.capitalize()} Level Complete!",
            f"Completed {level} difficulty",
            **meta,
        ))
    if update.completed and update.accuracy >= PERFECT_ACCURACY:
        rewards.append(_reward(
            user_id, "perfect_score", "Perfect Score!", "Achieved 100% accuracy", **meta
        ))
    if update.stars_earned == MAX_STARS and previous_stars < MAX_STARS:
        rewards.append(_reward(
            user_id, "three_stars", "Three Stars!", "Earned all three stars", **meta
        ))
    return rewards


def chapter_mastery_reward(user_id: str, chapter: str) -> dict[str, Any]:
    return _reward(
        user_id,
        "chapter_completion",
        f"{chapter} Master!",
        f"Completed all games in {chapter}",
        chapter=chapter,
    )
