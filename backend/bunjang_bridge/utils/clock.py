from __future__ import annotations
from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """naive 视为 UTC；aware 统一转到 UTC。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_utc(value: datetime) -> str:
    # Bunjang / Shopify 都接受 ISO-8601，带毫秒 + Z
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """ISO-8601 -> aware UTC datetime；兼容结尾 Z。"""
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(raw))
