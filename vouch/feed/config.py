from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class FeedConfig:
    site_url: str = os.getenv("VOUCH_SITE_URL", "https://vouch.app")
    feed_ttl: float = 2 * 60  # requests change often
    detail_ttl: float = 60  # responses can be added frequently
    max_stored_requests: int = 50


DEFAULT_FEED_CONFIG = FeedConfig()
