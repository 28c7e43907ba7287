from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import quote

from .config import DEFAULT_FEED_CONFIG, FeedConfig

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_relative_date(then: datetime, now: datetime | None = None) -> str:
    """Render a timestamp like ``"2 days ago"``; older than a month shows the date."""
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - then).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    if days < 30:
        return _plural(days // 7, "week")
    return then.date().isoformat()


def format_instagram_handle(handle: str | None) -> str | None:
    if not handle or not handle.strip():
        return None
    handle = handle.strip()
    return handle[1:] if handle.startswith("@") else handle


def instagram_url(handle: str | None) -> str | None:
    clean = format_instagram_handle(handle)
    return f"https://instagram.com/{clean}" if clean else None


def format_url(url: str | None) -> str | None:
    if not url or not url.strip():
        return None
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    return f"https://{url}"


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def request_share_url(share_token: str, config: FeedConfig = DEFAULT_FEED_CONFIG) -> str:
    return f"{config.site_url.rstrip('/')}/request/{share_token}"


def whatsapp_share_url(text: str, url: str) -> str:
    message = quote(text + "\n\n" + url, safe="")
    return f"https://wa.me/?text={message}"
