"""Requests created from this browser, kept in the signed session cookie."""
from __future__ import annotations

import time
from typing import Any, MutableMapping

from .config import DEFAULT_FEED_CONFIG, FeedConfig

SESSION_KEY = "my_requests"


def get_my_requests(session: MutableMapping[str, Any]) -> list[dict[str, Any]]:
    stored = session.get(SESSION_KEY)
    return list(stored) if isinstance(stored, list) else []


def get_my_request_tokens(session: MutableMapping[str, Any]) -> list[str]:
    return [r["token"] for r in get_my_requests(session)]


def add_my_request(
    session: MutableMapping[str, Any],
    token: str,
    config: FeedConfig = DEFAULT_FEED_CONFIG,
) -> None:
    existing = get_my_requests(session)
    if any(r["token"] == token for r in existing):
        return
    updated = [{"token": token, "created_at": time.time()}, *existing]
    session[SESSION_KEY] = updated[: config.max_stored_requests]


def remove_my_request(session: MutableMapping[str, Any], token: str) -> bool:
    existing = get_my_requests(session)
    updated = [r for r in existing if r["token"] != token]
    session[SESSION_KEY] = updated
    return len(updated) != len(existing)


def is_my_request(session: MutableMapping[str, Any], token: str) -> bool:
    return token in get_my_request_tokens(session)


def clear_my_requests(session: MutableMapping[str, Any]) -> None:
    session.pop(SESSION_KEY, None)
