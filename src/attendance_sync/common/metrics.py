"""
Метрики Prometheus.

Назначение:
- счётчики проходов синхронизации и исходов задач
- глубина очереди и dead-letter
- экспорт через HTTP-сервер prometheus_client (воркер)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

SYNC_PASSES_TOTAL = Counter(
    "attendance_sync_passes_total",
    "Количество проходов синхронизации",
    ["source", "status"],  # status=empty|completed|coalesced|error
)

SYNC_TASKS_TOTAL = Counter(
    "attendance_sync_tasks_total",
    "Исходы обработки задач очереди",
    ["type", "outcome"],  # outcome=succeeded|failed|parked|dead_lettered
)

SYNC_TASK_LATENCY_MS = Histogram(
    "attendance_sync_task_latency_ms",
    "Время выполнения обработчика задачи (мс)",
    ["type"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)

QUEUE_DEPTH = Gauge(
    "attendance_sync_queue_depth",
    "Текущая глубина локальной очереди",
)

DLQ_DEPTH = Gauge(
    "attendance_sync_dlq_depth",
    "Текущая глубина dead-letter списка",
)

CASCADE_TARGETS_TOTAL = Counter(
    "attendance_sync_cascade_targets_total",
    "Шаги fan-out каскада отмены скана",
    ["target", "result"],  # target=scan|links|parent_feed|student_feed, result=ok|failed
)


@contextmanager
def track_task_latency(task_type: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        SYNC_TASK_LATENCY_MS.labels(type=task_type).observe(
            (time.perf_counter() - started) * 1000
        )


def record_task_outcome(*, task_type: str, outcome: str) -> None:
    SYNC_TASKS_TOTAL.labels(type=task_type, outcome=outcome).inc()


def record_cascade_step(*, target: str, ok: bool) -> None:
    CASCADE_TARGETS_TOTAL.labels(target=target, result="ok" if ok else "failed").inc()


def record_pass_result(*, source: str, status: str, remaining: int | None = None) -> None:
    SYNC_PASSES_TOTAL.labels(source=source, status=status).inc()
    if remaining is not None:
        QUEUE_DEPTH.set(max(0, remaining))


def set_queue_depth(*, queue: int | None = None, dlq: int | None = None) -> None:
    if queue is not None:
        QUEUE_DEPTH.set(max(0, queue))
    if dlq is not None:
        DLQ_DEPTH.set(max(0, dlq))


# =============================================================================
# ЭКСПОРТ
# =============================================================================
def start_metrics_server(port: int) -> bool:
    """
    Поднимает /metrics на указанном порту. port <= 0 — выключено.
    """
    if int(port) <= 0:
        return False
    start_http_server(int(port))
    return True
