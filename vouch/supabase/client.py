from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx

from .config import DEFAULT_SUPABASE_CONFIG, SupabaseConfig

logger = logging.getLogger(__name__)

LIST_ITEM_COLUMNS = "id,name,code_name,parent_id,list_id,metadata,sort_order"

# Characters PostgREST treats as syntax inside in-lists and logic trees.
_RESERVED = set(',.:()"\\ ')


class SupabaseError(Exception):
    """A backend call failed (network, HTTP status, or unusable payload)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def quote_value(value: str) -> str:
    """Quote a filter value for use inside ``in.(...)`` or ``or=(...)``."""
    if not any(ch in _RESERVED for ch in value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def in_list(values: Iterable[str]) -> str:
    return "in.(" + ",".join(quote_value(v) for v in values) + ")"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


class SupabaseClient:
    """Thin async client over a Supabase project's PostgREST API.

    The underlying ``httpx.AsyncClient`` is created lazily on first use so the
    client can be constructed at import time.
    """

    def __init__(
        self,
        config: SupabaseConfig = DEFAULT_SUPABASE_CONFIG,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if not self.config.url or not self.config.anon_key:
                raise SupabaseError(
                    "Missing Supabase configuration. Set SUPABASE_URL and SUPABASE_ANON_KEY."
                )
            headers = {
                "apikey": self.config.anon_key,
                "Authorization": f"Bearer {self.config.anon_key}",
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self.config.rest_url,
                headers=headers,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        client = self._get_client()
        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.warning("Backend %s %s failed: %s", method, path, message)
            raise SupabaseError(message, e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("Backend %s %s unreachable: %s", method, path, e)
            raise SupabaseError(str(e) or "Backend unavailable") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise SupabaseError("Backend returned invalid JSON", response.status_code) from e

    async def select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        rows = await self._request("GET", f"/{table}", params=params)
        return rows or []

    async def select_one(self, table: str, params: dict[str, str]) -> dict[str, Any] | None:
        rows = await self.select(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "POST",
            f"/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise SupabaseError(f"Insert into {table} returned no data")
        return rows[0] if isinstance(rows, list) else rows

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        return await self._request("POST", f"/rpc/{function}", json=params)

    async def get_list_ids(self, names: Iterable[str]) -> dict[str, str]:
        """Map list names (``"area"``, ``"subcategory"``...) to their ids."""
        rows = await self.select("lists", {"select": "id,name", "name": in_list(names)})
        return {row["name"]: str(row["id"]) for row in rows}

    async def get_list_items(
        self,
        list_ids: Iterable[str],
        *,
        top_level_only: bool = False,
        parent_id: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {
            "select": LIST_ITEM_COLUMNS,
            "list_id": in_list(list_ids),
            "order": "sort_order.asc.nullslast,name.asc",
        }
        if top_level_only:
            params["parent_id"] = "is.null"
        elif parent_id is not None:
            params["parent_id"] = f"eq.{parent_id}"
        return await self.select("list_items", params)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
