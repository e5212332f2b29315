"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations

import hashlib


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def short_err(err: BaseException, max_len: int = 300) -> str:
    return str(err)[:max_len]
