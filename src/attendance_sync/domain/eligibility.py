"""
Окно допустимости отмены скана (undo).

Отмена разрешена в течение window_sec после времени скана. Проверка делается
в момент запроса пользователя; поставленная в очередь отмена при последующей
синхронизации окно уже не проверяет.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from attendance_sync.common.time import parse_timestamp, utc_now

DEFAULT_UNDO_WINDOW_SEC = 5 * 60


@dataclass(frozen=True)
class UndoEligibility:
    eligible: bool
    seconds_remaining: int


def undo_eligibility(
    scanned_at: datetime | str | int | float | None,
    now: datetime | None = None,
    window_sec: int = DEFAULT_UNDO_WINDOW_SEC,
) -> UndoEligibility:
    """
    Сколько секунд осталось до закрытия окна отмены.

    - время скана неизвестно/невалидно -> не допускается
    - скан "из будущего" (рассинхрон часов) -> полное окно
    """
    scanned = parse_timestamp(scanned_at)
    if scanned is None or window_sec <= 0:
        return UndoEligibility(eligible=False, seconds_remaining=0)

    current = parse_timestamp(now) if now is not None else utc_now()
    elapsed = max(0.0, (current - scanned).total_seconds())
    remaining = int(window_sec - elapsed)
    if elapsed >= window_sec or remaining <= 0:
        return UndoEligibility(eligible=False, seconds_remaining=0)
    return UndoEligibility(eligible=True, seconds_remaining=remaining)


def format_countdown(seconds_remaining: int) -> str:
    """
    125 -> "2:05" (для бейджа кнопки отмены).
    """
    s = max(0, int(seconds_remaining))
    return f"{s // 60}:{s % 60:02d}"
