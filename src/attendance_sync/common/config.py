"""
Централизованная конфигурация проекта (ENV / .env).

Важно:
- настройки читаются из .env и переменных окружения
- типизированные значения через pydantic-settings
- любое поле можно переопределить через <ALIAS>_FILE (docker secrets)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field, TypeAdapter
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    app_env: str = Field(default="dev", alias="APP_ENV")
    service_name: str = Field(default="attendance-sync", alias="SERVICE_NAME")

    # -------------------------------------------------------------------------
    # Локальная очередь
    # -------------------------------------------------------------------------
    queue_storage: str = Field(default="sql", alias="QUEUE_STORAGE")  # sql|redis|memory
    queue_sql_dsn: str = Field(
        default="sqlite:///./data/offline_sync.db", alias="QUEUE_SQL_DSN"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    queue_key: str = Field(default="offline_sync_queue", alias="QUEUE_KEY")

    # -------------------------------------------------------------------------
    # Синхронизация
    # -------------------------------------------------------------------------
    sync_enabled: bool = Field(default=True, alias="SYNC_ENABLED")
    sync_interval_sec: int = Field(default=60, alias="SYNC_INTERVAL_SEC")
    # 0 = без ограничения (задача ретраится бесконечно)
    sync_max_attempts: int = Field(default=5, alias="SYNC_MAX_ATTEMPTS")
    undo_window_sec: int = Field(default=300, alias="UNDO_WINDOW_SEC")

    # -------------------------------------------------------------------------
    # Remote (document API + backend API)
    # -------------------------------------------------------------------------
    remote_api_base: str = Field(default="http://127.0.0.1:8080", alias="REMOTE_API_BASE")
    remote_api_token: str | None = Field(default=None, alias="REMOTE_API_TOKEN")
    remote_timeout_sec: float = Field(default=10.0, alias="REMOTE_TIMEOUT_SEC")
    remote_http_retries: int = Field(default=1, alias="REMOTE_HTTP_RETRIES")
    remote_http_backoff_ms: int = Field(default=300, alias="REMOTE_HTTP_BACKOFF_MS")

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    metrics_port: int = Field(default=9108, alias="METRICS_PORT")  # 0 = не поднимать
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json|text

    def model_post_init(self, __context) -> None:
        _apply_file_overrides(self)


def _apply_file_overrides(settings: Settings) -> None:
    alias_to_field = {}
    for name, field in type(settings).model_fields.items():
        alias = field.alias or name
        alias_to_field[str(alias)] = name
        alias_to_field[str(name)] = name

    for key, path in os.environ.items():
        if not key.endswith("_FILE"):
            continue
        base = key[: -len("_FILE")]
        target = alias_to_field.get(base)
        if not target:
            continue
        file_path = (path or "").strip()
        if not file_path:
            continue
        try:
            raw = Path(file_path).read_text(encoding="utf-8")
        except Exception as e:
            logging.getLogger("attendance-sync").error(
                "config_file_read_failed",
                extra={"payload": {"env_key": key, "path": file_path, "error": str(e)[:200]}},
            )
            raise RuntimeError(f"Failed to read {key} from {file_path}") from e
        annotation = type(settings).model_fields[target].annotation
        try:
            value = TypeAdapter(annotation).validate_python((raw or "").strip())
        except ValueError as e:
            raise RuntimeError(f"Invalid value for {base} in {file_path}") from e
        setattr(settings, target, value)


_SETTINGS = Settings()


def get_settings() -> Settings:
    return _SETTINGS
