"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для очереди / обработчиков / dead-letter
- единый стиль исключений по проекту

Таксономия синхронизации:
- TransientNetworkError  — задача остаётся в очереди, попытка не считается
- NotFound при удалении  — не ошибка (идемпотентный delete)
- UnknownTaskTypeError   — задача паркуется, не удаляется
- PartialCascadeFailure  — часть шагов каскада упала, задача ретраится целиком
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"

    # Очередь
    STORAGE_ERROR = "storage_error"
    UNKNOWN_TASK_TYPE = "unknown_task_type"

    # Remote
    REMOTE_ERROR = "remote_error"
    NETWORK_TRANSIENT = "network_transient"
    CASCADE_PARTIAL = "cascade_partial"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"

    @property
    def transient(self) -> bool:
        return False


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class StorageError(AppError):
    def __init__(self, message: str = "Queue storage failure", details: dict | None = None) -> None:
        super().__init__(ErrCode.STORAGE_ERROR, message, details)


class RemoteError(AppError):
    def __init__(self, message: str = "Remote call failed", details: dict | None = None) -> None:
        super().__init__(ErrCode.REMOTE_ERROR, message, details)


class TransientNetworkError(AppError):
    def __init__(self, message: str = "Network unavailable", details: dict | None = None) -> None:
        super().__init__(ErrCode.NETWORK_TRANSIENT, message, details)

    @property
    def transient(self) -> bool:
        return True


class UnknownTaskTypeError(AppError):
    def __init__(self, task_type: str) -> None:
        super().__init__(
            ErrCode.UNKNOWN_TASK_TYPE,
            f"No handler for task type: {task_type}",
            {"type": task_type},
        )


class PartialCascadeFailure(AppError):
    """
    Каскад выполнил часть шагов, но не все.

    failed_steps: [{"step": "...", "target": "...", "err": "...", "transient": bool}]
    """

    def __init__(self, failed_steps: list[dict]) -> None:
        super().__init__(
            ErrCode.CASCADE_PARTIAL,
            f"{len(failed_steps)} cascade step(s) failed",
            {"failed_steps": failed_steps},
        )
        self.failed_steps = failed_steps

    @property
    def transient(self) -> bool:
        return bool(self.failed_steps) and all(s.get("transient") for s in self.failed_steps)


def is_transient(err: BaseException) -> bool:
    return bool(getattr(err, "transient", False))
