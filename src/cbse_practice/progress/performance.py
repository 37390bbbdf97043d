"""Adaptive performance tracking for answered micro-tasks."""

from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog

from cbse_practice.errors import UpstreamWriteFailure
from cbse_practice.models.records import PerformanceRecord, parse_row
from cbse_practice.models.requests import ResultSubmission
from cbse_practice.storage.supabase import SupabaseStore

logger = structlog.get_logger()

EMA_ALPHA = 0.2
TARGET_TIME_SECONDS = 10.0
TOKENS_PER_CORRECT = 10
MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


def update_ema(current: float, new_value: float, alpha: float = EMA_ALPHA) -> float:
    return alpha * new_value + (1 - alpha) * current


def default_performance(user_id: str, subject: str) -> PerformanceRecord:
    return PerformanceRecord(
        user_id=user_id,
        subject=subject,
        ema_accuracy=0.7,
        ema_time=TARGET_TIME_SECONDS,
        ema_hints=0.0,
        difficulty_level=2,
        streak_days=0,
        tokens=0,
    )


def next_streak(streak: int, last_session: date | None, today: date) -> int:
    """Extend a streak from yesterday, hold it for today, otherwise restart."""
    if last_session == today - timedelta(days=1):
        return streak + 1
    if last_session == today:
        return streak
    return 1


def adjust_difficulty(level: int, ema_accuracy: float, ema_time: float, ema_hints: float) -> int:
    if ema_accuracy > 0.8 and ema_time <= TARGET_TIME_SECONDS:
        return min(MAX_DIFFICULTY, level + 1)
    if ema_accuracy < 0.5 or ema_hints > 1:
        return max(MIN_DIFFICULTY, level - 1)
    return level


def apply_result(
    record: PerformanceRecord,
    submission: ResultSubmission,
    today: date,
) -> PerformanceRecord:
    """Return ``record`` updated with one task result."""
    ema_accuracy = update_ema(record.ema_accuracy or 0.0, 1.0 if submission.correct else 0.0)
    ema_time = update_ema(record.ema_time or 0.0, submission.response_time_ms / 1000)
    ema_hints = update_ema(record.ema_hints or 0.0, submission.hints_used)
    tokens = record.tokens or 0
    if submission.correct and not submission.skipped:
        tokens += TOKENS_PER_CORRECT

    return record.model_copy(update={
        "ema_accuracy": ema_accuracy,
        "ema_time": ema_time,
        "ema_hints": ema_hints,
        "streak_days": next_streak(record.streak_days or 0, record.last_session_date, today),
        "last_session_date": today,
        "difficulty_level": adjust_difficulty(
            record.difficulty_level or 2, ema_accuracy, ema_time, ema_hints
        ),
        "tokens": tokens,
    })


class PerformanceTracker:
    """Records task results and keeps ``user_performance`` current.

    Args:
        store: Store client.
        user_id: Resolved caller id.
    """

    def __init__(self, store: SupabaseStore, user_id: str):
        self.store = store
        self.user_id = user_id

    async def submit(
        self, submission: ResultSubmission, now: datetime | None = None
    ) -> dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(timezone.utc).date()

        await self.store.insert_task_result({
            "session_id": submission.session_id,
            "user_id": self.user_id,
            "task_id": submission.task_id,
            "subject": submission.subject,
            "topic": submission.topic,
            "difficulty": submission.difficulty,
            "correct": submission.correct,
            "response_time_ms": submission.response_time_ms,
            "hints_used": submission.hints_used,
            "skipped": submission.skipped,
        })

        rows = await self.store.fetch_performance(self.user_id, subject=submission.subject)
        if rows:
            record = parse_row(PerformanceRecord, rows[0], "user_performance")
        else:
            record = default_performance(self.user_id, submission.subject)

        updated = apply_result(record, submission, today)
        await self.store.upsert_performance(updated.to_row())
        logger.info(
            "performance_updated",
            user_id=self.user_id,
            subject=submission.subject,
            difficulty=updated.difficulty_level,
            streak=updated.streak_days,
        )

        await self._log_event(submission)

        return {
            "success": True,
            "nextDifficulty": updated.difficulty_level,
            "tokens": updated.tokens,
            "streakDays": updated.streak_days,
            "accuracy": updated.ema_accuracy,
        }

    async def _log_event(self, submission: ResultSubmission) -> None:
        event = {
            "user_id": self.user_id,
            "event_type": "microtask_skipped" if submission.skipped else "microtask_answered",
            "session_id": submission.session_id,
            "task_id": submission.task_id,
            "metadata": {
                "correct": submission.correct,
                "time_ms": submission.response_time_ms,
                "hints_used": submission.hints_used,
            },
        }
        try:
            await self.store.insert_analytics_event(event)
        except UpstreamWriteFailure:
            logger.exception("analytics_event_failed", user_id=self.user_id)
