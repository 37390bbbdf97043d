"""Row models for the tables read from the external store.

Only the columns used in calculations are declared; every other column is
kept as an extra field so rows can be passed back to clients unchanged.
"""

from datetime import date
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from cbse_practice.errors import UpstreamReadFailure


class Difficulty(StrEnum):
    """Levels at which a game is attempted and tracked independently."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class StoreRecord(BaseModel):
    """Base for store rows: tolerant of unknown columns and numeric ids."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Dump back to a JSON-ready row, including pass-through columns."""
        return self.model_dump(mode="json", exclude_none=True)


class PerformanceRecord(StoreRecord):
    user_id: str | None = None
    subject: str | None = None
    ema_accuracy: float | None = None
    ema_time: float | None = None
    ema_hints: float | None = None
    difficulty_level: int | None = None
    streak_days: int | None = None
    tokens: int | None = None
    last_session_date: date | None = None


class SessionRecord(StoreRecord):
    duration_seconds: float | None = None
    tasks_completed: int | None = None
    tasks_correct: int | None = None
    start_time: str | None = None


class GameProgressRecord(StoreRecord):
    user_id: str | None = None
    game_id: str
    difficulty: str | None = None
    stars_earned: int | None = None
    best_accuracy: float | None = None
    questions_completed: int | None = None
    hints_used: int | None = None
    unlocked: bool | None = None
    completed_at: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class GameRecord(StoreRecord):
    id: str
    chapter: str
    game_number: int | None = None
    game_title: str | None = None
    game_concept: str | None = None


class RewardRecord(StoreRecord):
    user_id: str | None = None
    reward_type: str
    reward_title: str
    reward_description: str | None = None
    metadata: dict[str, Any] | None = None
    earned_at: str | None = None


Record = TypeVar("Record", bound=StoreRecord)


def parse_rows(model: type[Record], rows: list[dict[str, Any]], table: str) -> list[Record]:
    """Validate store rows, reporting malformed ones as a read failure on ``table``."""
    try:
        return [model.model_validate(row) for row in rows]
    except ValidationError as e:
        raise UpstreamReadFailure(table, f"malformed row ({e.error_count()} invalid fields)") from e


def parse_row(model: type[Record], row: dict[str, Any], table: str) -> Record:
    return parse_rows(model, [row], table)[0]
