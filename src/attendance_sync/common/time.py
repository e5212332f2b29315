"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- разбор таймстампов из payload (ISO строка или epoch ms)
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """
    Текущее время в UTC в ISO формате.
    """
    return utc_now().isoformat()


def parse_timestamp(value: datetime | str | int | float | None) -> datetime | None:
    """
    ISO-строка / epoch-ms / datetime -> aware datetime (UTC).
    Naive datetime считается UTC. Мусор -> None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(float(value) / 1000.0, UTC)
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)
