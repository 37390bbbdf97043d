"""Stats snapshot models returned by get-user-stats."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChapterStats(CamelModel):
    """Per-chapter completion rollup."""

    total_games: int = 0
    completed_games: int = 0
    total_stars: int = 0


class StatsSummary(CamelModel):
    """Daily and cumulative metrics derived for one user."""

    minutes_today: int = 0
    tasks_today: int = 0
    correct_today: int = 0
    accuracy_today: int = 0
    streak: int = 0
    total_tokens: int = 0
    total_stars: int = 0
    completed_levels: int = 0


class StatsSnapshot(CamelModel):
    """Full get-user-stats payload: raw collections plus derived metrics."""

    profile: dict[str, Any] | None = None
    performance: list[dict[str, Any]] = Field(default_factory=list)
    today_sessions: list[dict[str, Any]] = Field(default_factory=list)
    game_progress: list[dict[str, Any]] = Field(default_factory=list)
    rewards: list[dict[str, Any]] = Field(default_factory=list)
    chapter_stats: dict[str, ChapterStats] = Field(default_factory=dict)
    stats: StatsSummary = Field(default_factory=StatsSummary)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
