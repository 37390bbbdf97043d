"""Request bodies accepted by the practice functions."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cbse_practice.models.records import Difficulty


class RequestModel(BaseModel):
    """Request body with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GamesQuery(RequestModel):
    chapter: str


class ProgressUpdate(RequestModel):
    """One finished attempt at a game level."""

    game_id: str
    difficulty: Difficulty
    stars_earned: int = Field(ge=0, le=3)
    accuracy: float = Field(ge=0, le=100)  # percent, not a 0-1 ratio
    questions_completed: int = Field(default=0, ge=0)
    hints_used: int = Field(default=0, ge=0)
    completed: bool = False


class ResultSubmission(RequestModel):
    """One answered (or skipped) micro-task."""

    session_id: str
    task_id: str
    subject: str
    topic: str
    difficulty: int = Field(ge=1, le=5)
    correct: bool
    response_time_ms: int = Field(ge=0)
    hints_used: int = Field(default=0, ge=0)
    skipped: bool = False
