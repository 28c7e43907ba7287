from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any

import pytest

from vouch.feed.service import clear_feed_cache
from vouch.supabase.client import SupabaseError

LIST_IDS = {
    "city": "list-city",
    "area": "list-area",
    "neighbourhood": "list-neighbourhood",
    "category": "list-category",
    "subcategory": "list-subcategory",
}


def row(
    id: str,
    name: str,
    list_name: str,
    parent_id: str | None = None,
    sort_order: int | None = None,
    metadata: dict | None = None,
) -> dict[str, Any]:
    return {
        "id": id,
        "name": name,
        "code_name": None,
        "parent_id": parent_id,
        "list_id": LIST_IDS[list_name],
        "metadata": metadata,
        "sort_order": sort_order,
    }


SAMPLE_ROWS = [
    row("london", "London", "area", sort_order=1),
    row("hackney", "Hackney", "area", parent_id="london"),
    row("shoreditch", "Shoreditch", "area", parent_id="hackney"),
    row("westminster", "Westminster", "area", parent_id="london"),
    row("soho", "Soho", "area", parent_id="westminster", metadata={"user_generated": True}),
    row("manchester", "Manchester", "area", sort_order=2),
    row("c1", "Food & Drink", "category", sort_order=1),
    row("c2", "Home Services", "category", sort_order=2),
    row("s1", "Restaurant", "subcategory", parent_id="c1", sort_order=1),
    row("s2", "Plumber", "subcategory", parent_id="c2"),
    row("s3", "Electrician", "subcategory", parent_id="c2"),
]

FEED_ROWS = [
    {
        "id": "req-1",
        "share_token": "tok-shoreditch",
        "title": "Looking for a plumber in Shoreditch",
        "context": "Leaky tap",
        "created_at": "2026-10-17T10:00:00+00:00",
        "area_id": "shoreditch",
        "location_name": "Shoreditch",
        "category_id": "c2",
        "subcategory_id": "s2",
        "response_count": 1,
        "requester_name": "Anonymous",
    },
]

RESPONSE_ROWS = [
    {
        "id": "resp-1",
        "request_id": "req-1",
        "created_at": "2026-10-17T12:00:00+00:00",
        "is_guest": True,
        "business_name": "Joe's Plumbing",
        "website": "https://joes.example",
    },
]


class FakeSupabase:
    """In-memory stand-in for ``SupabaseClient`` with the same coroutine methods."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.lists = dict(LIST_IDS)
        self.rows = [dict(r) for r in (SAMPLE_ROWS if rows is None else rows)]
        self.views: dict[str, list[dict[str, Any]]] = {
            "web_request_feed": [dict(r) for r in FEED_ROWS],
            "web_request_responses": [dict(r) for r in RESPONSE_ROWS],
        }
        self.calls: Counter[str] = Counter()
        self.fail: SupabaseError | None = None
        self.gate: asyncio.Event | None = None
        self.rpc_results: dict[str, Any] = {}
        self.rpc_calls: list[tuple[str, dict]] = []
        self.inserted: list[tuple[str, dict]] = []
        self.params: dict[str, dict] = {}

    def add_item(self, id, name, list_name, **fields):
        self.rows.append(row(id, name, list_name, **fields))

    async def get_list_ids(self, names):
        self.calls["get_list_ids"] += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return {n: self.lists[n] for n in names if n in self.lists}

    async def get_list_items(self, list_ids, *, top_level_only=False, parent_id=None):
        self.calls["get_list_items"] += 1
        wanted = set(list_ids)
        rows = [r for r in self.rows if r["list_id"] in wanted]
        if top_level_only:
            rows = [r for r in rows if not r["parent_id"]]
        elif parent_id is not None:
            rows = [r for r in rows if r["parent_id"] == parent_id]
        return [dict(r) for r in rows]

    async def rpc(self, function, params):
        self.calls["rpc"] += 1
        self.rpc_calls.append((function, params))
        if self.gate is not None:
            await self.gate.wait()
        result = self.rpc_results.get(function)
        if isinstance(result, Exception):
            raise result
        return result

    async def select(self, table, params):
        self.calls[f"select:{table}"] += 1
        if self.fail is not None:
            raise self.fail
        self.params[table] = params
        rows = self.views.get(table, [])
        for column in ("share_token", "request_id"):
            value = params.get(column, "")
            if value.startswith("eq."):
                rows = [r for r in rows if r.get(column) == value[3:]]
        return [dict(r) for r in rows]

    async def select_one(self, table, params):
        rows = await self.select(table, params)
        return rows[0] if rows else None

    async def insert(self, table, data):
        self.inserted.append((table, data))
        created = {"id": f"{table}-{len(self.inserted)}", **data}
        if table == "rec_requests":
            created["share_token"] = f"tok-{len(self.inserted)}"
        return created


@pytest.fixture
def fake_backend() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture(autouse=True)
def _fresh_feed_cache():
    clear_feed_cache()
    yield
    clear_feed_cache()


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
