"""Per-user stats snapshot: daily metrics, cumulative totals and chapter rollups."""

import asyncio
import math
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any

import structlog

from cbse_practice.models.records import (
    GameProgressRecord,
    GameRecord,
    PerformanceRecord,
    SessionRecord,
    parse_rows,
)
from cbse_practice.models.stats import ChapterStats, StatsSnapshot, StatsSummary
from cbse_practice.storage.supabase import SupabaseStore

logger = structlog.get_logger()


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves rounding up."""
    return math.floor(value + 0.5)


def summarize_sessions(sessions: list[SessionRecord]) -> dict[str, int]:
    """Minutes, task counts and accuracy over one day's sessions."""
    seconds = sum(s.duration_seconds or 0 for s in sessions)
    tasks = sum(s.tasks_completed or 0 for s in sessions)
    correct = sum(s.tasks_correct or 0 for s in sessions)
    accuracy = round_half_up(100 * correct / tasks) if tasks > 0 else 0
    return {
        "minutes_today": round_half_up(seconds / 60),
        "tasks_today": tasks,
        "correct_today": correct,
        "accuracy_today": accuracy,
    }


def max_streak(performance: list[PerformanceRecord]) -> int:
    return max((p.streak_days or 0 for p in performance), default=0)


def total_tokens(performance: list[PerformanceRecord]) -> int:
    return sum(p.tokens or 0 for p in performance)


def total_stars(progress: list[GameProgressRecord]) -> int:
    return sum(p.stars_earned or 0 for p in progress)


def completed_levels(progress: list[GameProgressRecord]) -> int:
    return sum(1 for p in progress if p.is_completed)


def build_chapter_stats(
    games: list[GameRecord],
    progress: list[GameProgressRecord],
) -> dict[str, ChapterStats]:
    """Fold the catalog into per-chapter totals.

    Every chapter in ``games`` appears in the result. A game counts as
    completed when any of its difficulty records has ``completed_at`` set;
    its stars are summed over all difficulties.
    """
    by_game: dict[str, list[GameProgressRecord]] = defaultdict(list)
    for entry in progress:
        by_game[entry.game_id].append(entry)

    chapters: dict[str, ChapterStats] = {}
    for game in games:
        rollup = chapters.setdefault(game.chapter, ChapterStats())
        entries = by_game.get(game.id, [])
        rollup.total_games += 1
        if any(e.is_completed for e in entries):
            rollup.completed_games += 1
        rollup.total_stars += total_stars(entries)
    return chapters


def utc_today(now: datetime | None = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date()


class StatsAggregator:
    """Reads a user's practice data and derives a ``StatsSnapshot``.

    Args:
        store: Store client exposing the ``fetch_*`` reads.
        rewards_limit: How many recent rewards to include.
    """

    def __init__(self, store: SupabaseStore, rewards_limit: int):
        self.store = store
        self.rewards_limit = rewards_limit

    async def collect(self, user_id: str, now: datetime | None = None) -> StatsSnapshot:
        """Fetch all sources concurrently and build the snapshot.

        The first failed read cancels the others and is re-raised unwrapped;
        no partial snapshot is produced.
        """
        today = utc_today(now)
        try:
            async with asyncio.TaskGroup() as tg:
                reads = [
                    tg.create_task(self.store.fetch_profile(user_id)),
                    tg.create_task(self.store.fetch_performance(user_id)),
                    tg.create_task(self.store.fetch_sessions_since(user_id, today)),
                    tg.create_task(self.store.fetch_game_progress(user_id)),
                    tg.create_task(
                        self.store.fetch_recent_rewards(user_id, limit=self.rewards_limit)
                    ),
                    tg.create_task(self.store.fetch_games()),
                ]
        except ExceptionGroup as group:
            raise group.exceptions[0] from None

        profile, performance, sessions, progress, rewards, games = (t.result() for t in reads)
        snapshot = self.build(profile, performance, sessions, progress, rewards, games)
        logger.info(
            "stats_aggregated",
            user_id=user_id,
            chapters=len(snapshot.chapter_stats),
            tasks_today=snapshot.stats.tasks_today,
        )
        return snapshot

    @staticmethod
    def build(
        profile: dict[str, Any] | None,
        performance: list[dict[str, Any]],
        sessions: list[dict[str, Any]],
        progress: list[dict[str, Any]],
        rewards: list[dict[str, Any]],
        games: list[dict[str, Any]],
    ) -> StatsSnapshot:
        perf_records = parse_rows(PerformanceRecord, performance, "user_performance")
        session_records = parse_rows(SessionRecord, sessions, "sessions")
        progress_records = parse_rows(GameProgressRecord, progress, "game_progress")
        game_records = parse_rows(GameRecord, games, "games")

        summary = StatsSummary(
            **summarize_sessions(session_records),
            streak=max_streak(perf_records),
            total_tokens=total_tokens(perf_records),
            total_stars=total_stars(progress_records),
            completed_levels=completed_levels(progress_records),
        )
        return StatsSnapshot(
            profile=profile,
            performance=performance,
            today_sessions=sessions,
            game_progress=progress,
            rewards=rewards,
            chapter_stats=build_chapter_stats(game_records, progress_records),
            stats=summary,
        )
