"""Async Supabase client: auth lookups plus PostgREST reads and writes.

One ``SupabaseStore`` is opened per request and bound to the caller's access
token, so row-level security on the project applies to every query.
"""

from datetime import date
from typing import Any

import httpx
import structlog

from cbse_practice.config import Settings
from cbse_practice.errors import Unauthorized, UpstreamReadFailure, UpstreamWriteFailure

logger = structlog.get_logger()


def _in_filter(values: list[str]) -> str:
    return "in.(" + ",".join(values) + ")"


class SupabaseStore:
    """Reads and writes the practice tables on behalf of one caller.

    Args:
        url: Supabase project URL.
        anon_key: Project anon key, sent as ``apikey`` on every call.
        access_token: The caller's bearer token.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        access_token: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = url.rstrip("/")
        self._headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token}",
        }
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings, access_token: str) -> "SupabaseStore":
        return cls(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            access_token=access_token,
            timeout=settings.store_timeout_seconds,
        )

    async def __aenter__(self) -> "SupabaseStore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # --- auth ---

    async def resolve_user(self) -> str:
        """Resolve the bound access token to a user id.

        Raises:
            Unauthorized: The auth endpoint rejected the token or was unreachable.
        """
        await self.start()
        try:
            response = await self._client.get("/auth/v1/user")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("auth_lookup_failed", error=str(e))
            raise Unauthorized() from e
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            raise Unauthorized()
        return str(user_id)

    # --- generic PostgREST access ---

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Run a filtered select; ``filters`` values use PostgREST operators."""
        await self.start()
        params: dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        try:
            response = await self._client.get(f"/rest/v1/{table}", params=params)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("store_read_failed", table=table, status_code=e.response.status_code)
            raise UpstreamReadFailure(table, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("store_read_failed", table=table, error=str(e))
            raise UpstreamReadFailure(table, str(e) or type(e).__name__) from e
        if not isinstance(rows, list):
            raise UpstreamReadFailure(table, "expected a list of rows")
        return rows

    async def write(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str | None = None,
    ) -> list[dict[str, Any]]:
        """Insert rows, or upsert them when ``on_conflict`` names the key columns."""
        await self.start()
        prefer = ["return=representation"]
        params = {}
        if on_conflict:
            prefer.append("resolution=merge-duplicates")
            params["on_conflict"] = on_conflict
        try:
            response = await self._client.post(
                f"/rest/v1/{table}",
                json=rows,
                params=params,
                headers={"Prefer": ",".join(prefer)},
            )
            response.raise_for_status()
            written = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("store_write_failed", table=table, status_code=e.response.status_code)
            raise UpstreamWriteFailure(table, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("store_write_failed", table=table, error=str(e))
            raise UpstreamWriteFailure(table, str(e) or type(e).__name__) from e
        return written if isinstance(written, list) else [written]

    async def _first(self, table: str, filters: dict[str, str]) -> dict[str, Any] | None:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    # --- practice tables ---

    async def fetch_profile(self, user_id: str) -> dict[str, Any] | None:
        return await self._first("profiles", {"id": f"eq.{user_id}"})

    async def fetch_performance(
        self, user_id: str, subject: str | None = None
    ) -> list[dict[str, Any]]:
        filters = {"user_id": f"eq.{user_id}"}
        if subject is not None:
            filters["subject"] = f"eq.{subject}"
        return await self.select("user_performance", filters)

    async def fetch_sessions_since(self, user_id: str, since: date) -> list[dict[str, Any]]:
        return await self.select(
            "sessions",
            {"user_id": f"eq.{user_id}", "start_time": f"gte.{since.isoformat()}"},
        )

    async def fetch_game_progress(
        self,
        user_id: str,
        game_ids: list[str] | None = None,
        difficulty: str | None = None,
    ) -> list[dict[str, Any]]:
        filters = {"user_id": f"eq.{user_id}"}
        if game_ids is not None:
            filters["game_id"] = _in_filter(game_ids)
        if difficulty is not None:
            filters["difficulty"] = f"eq.{difficulty}"
        return await self.select("game_progress", filters)

    async def fetch_recent_rewards(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        return await self.select(
            "rewards",
            {"user_id": f"eq.{user_id}"},
            order="earned_at.desc",
            limit=limit,
        )

    async def fetch_games(self, chapter: str | None = None) -> list[dict[str, Any]]:
        filters = {"chapter": f"eq.{chapter}"} if chapter is not None else {}
        return await self.select("games", filters, order="game_number")

    async def fetch_game(self, game_id: str) -> dict[str, Any] | None:
        return await self._first("games", {"id": f"eq.{game_id}"})

    async def upsert_game_progress(self, row: dict[str, Any]) -> dict[str, Any]:
        written = await self.write("game_progress", row, on_conflict="user_id,game_id,difficulty")
        return written[0] if written else row

    async def upsert_performance(self, row: dict[str, Any]) -> dict[str, Any]:
        written = await self.write("user_performance", row, on_conflict="user_id,subject")
        return written[0] if written else row

    async def insert_rewards(self, rows: list[dict[str, Any]]) -> None:
        await self.write("rewards", rows)

    async def insert_task_result(self, row: dict[str, Any]) -> None:
        await self.write("task_results", row)

    async def insert_analytics_event(self, row: dict[str, Any]) -> None:
        await self.write("analytics_events", row)
