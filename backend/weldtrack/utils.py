from __future__ import annotations

import datetime as dt
import re
import time
import uuid
from typing import Any, Optional
from zoneinfo import ZoneInfo

from .config import settings

LOCAL_TZ = ZoneInfo(settings.timezone)

_ARTICLE_PATTERN = re.compile(r"^[A-ZА-ЯЁ0-9]+$")
_WHITESPACE = re.compile(r"\s+")


def normalize_article(value: Any) -> str:
    """Uppercase an article code and drop every whitespace character."""
    if value is None:
        return ""
    return _WHITESPACE.sub("", str(value)).upper()


def is_valid_article(article: str) -> bool:
    return bool(_ARTICLE_PATTERN.match(article or ""))


def normalize_name(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def generate_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def local_today() -> dt.date:
    return dt.datetime.now(LOCAL_TZ).date()
