"""
Sync-процессор локальной очереди.

Алгоритм прохода:
- снапшот очереди (FIFO)
- для каждой задачи: обработчик -> succeeded | failed | parked | dead_lettered
- поздняя задача выполняется, даже если ранняя упала (нет head-of-line blocking)
- в конце один settle(): в очереди остаются failed + parked + пришедшие во время прохода

Конкурентность:
- в процессе одновременно идёт не больше одного прохода
- триггеры во время прохода схлопываются максимум в один дополнительный проход
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from attendance_sync.common.errors import StorageError, UnknownTaskTypeError, is_transient
from attendance_sync.common.ids import new_task_id
from attendance_sync.common.logging import get_sync_logger, sync_context
from attendance_sync.common.metrics import (
    record_pass_result,
    record_task_outcome,
    set_queue_depth,
    track_task_latency,
)
from attendance_sync.common.utils import short_err
from attendance_sync.contracts.tasks import Task
from attendance_sync.domain.enums import (
    ProcessorState,
    SyncPassStatus,
    TaskOutcome,
    TaskType,
    TriggerSource,
)
from attendance_sync.domain.state_machine import can_transition, resolve_outcome
from attendance_sync.handlers.base import HandlerContext, TaskHandler
from attendance_sync.handlers.registry import resolve_handler
from attendance_sync.queue.task_store import TaskStore

log = get_sync_logger()


@dataclass
class SyncPassResult:
    status: SyncPassStatus
    processed_count: int = 0
    failed_count: int = 0
    parked_count: int = 0
    dead_lettered_count: int = 0
    remaining_count: int = 0
    error: str | None = None
    passes: int = 1
    outcomes: list[tuple[str, TaskOutcome]] = field(default_factory=list)

    def merge(self, other: SyncPassResult) -> SyncPassResult:
        statuses = {self.status, other.status}
        if SyncPassStatus.error in statuses:
            status = SyncPassStatus.error
        elif SyncPassStatus.completed in statuses:
            status = SyncPassStatus.completed
        else:
            status = other.status
        return SyncPassResult(
            status=status,
            processed_count=self.processed_count + other.processed_count,
            failed_count=self.failed_count + other.failed_count,
            parked_count=self.parked_count + other.parked_count,
            dead_lettered_count=self.dead_lettered_count + other.dead_lettered_count,
            remaining_count=other.remaining_count,
            error=other.error or self.error,
            passes=self.passes + other.passes,
            outcomes=self.outcomes + other.outcomes,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status.value}
        if self.status != SyncPassStatus.empty:
            out.update(
                {
                    "processedCount": self.processed_count,
                    "failedCount": self.failed_count,
                    "parkedCount": self.parked_count,
                    "deadLetteredCount": self.dead_lettered_count,
                    "remainingCount": self.remaining_count,
                }
            )
        if self.error:
            out["error"] = self.error
        return out


class SyncProcessor:
    def __init__(
        self,
        store: TaskStore,
        ctx: HandlerContext,
        *,
        max_attempts: int = 0,
        handlers: dict[TaskType, TaskHandler] | None = None,
    ) -> None:
        self.store = store
        self.ctx = ctx
        self.max_attempts = max(0, int(max_attempts))
        self.handlers = handlers
        self._state = ProcessorState.idle
        self._drain_lock = threading.Lock()
        self._flag_lock = threading.Lock()
        self._rerun_requested = False

    @property
    def state(self) -> ProcessorState:
        return self._state

    def _set_state(self, target: ProcessorState) -> None:
        if not can_transition(self._state, target):
            raise RuntimeError(f"Invalid processor transition {self._state} -> {target}")
        self._state = target

    # -------------------------------------------------------------------------
    # публичные входы
    # -------------------------------------------------------------------------
    def process_queue(self, source: TriggerSource = TriggerSource.manual) -> SyncPassResult:
        """
        Проход с ожиданием: если проход уже идёт, ждёт его завершения.
        Триггеры, схлопнутые во время этого прохода, отрабатываются здесь же.
        """
        self._drain_lock.acquire()
        return self._drain_with_reruns(source)

    def trigger_sync(self, source: TriggerSource = TriggerSource.manual) -> SyncPassResult:
        """
        Проход без ожидания: если проход уже идёт, запрос схлопывается
        (status=coalesced) и текущий владелец сделает ещё один проход.
        """
        with self._flag_lock:
            if not self._drain_lock.acquire(blocking=False):
                self._rerun_requested = True
                log.info("sync_trigger_coalesced", extra={"payload": {"source": source.value}})
                record_pass_result(source=source.value, status=SyncPassStatus.coalesced.value)
                return SyncPassResult(status=SyncPassStatus.coalesced, passes=0)

        return self._drain_with_reruns(source)

    def _drain_with_reruns(self, source: TriggerSource) -> SyncPassResult:
        """
        Вызывается с захваченным _drain_lock; освобождает его сам.
        Lock отпускается под _flag_lock, поэтому запрос на повтор не теряется.
        """
        released = False
        try:
            result: SyncPassResult | None = None
            while True:
                current = self._run_pass(source)
                result = current if result is None else result.merge(current)
                with self._flag_lock:
                    if not self._rerun_requested:
                        self._drain_lock.release()
                        released = True
                        return result
                    self._rerun_requested = False
        finally:
            if not released:
                self._drain_lock.release()

    # -------------------------------------------------------------------------
    # проход
    # -------------------------------------------------------------------------
    def _run_pass(self, source: TriggerSource) -> SyncPassResult:
        with sync_context(pass_id=new_task_id("pass"), source=source.value):
            return self._drain_once(source)

    def _drain_once(self, source: TriggerSource) -> SyncPassResult:
        try:
            snapshot = self.store.drain()
        except StorageError as e:
            log.error("sync_pass_storage_error", extra={"payload": {"err": short_err(e)}})
            record_pass_result(source=source.value, status=SyncPassStatus.error.value)
            return SyncPassResult(status=SyncPassStatus.error, error=short_err(e))

        if not snapshot:
            log.info("sync_pass_empty", extra={"payload": {"source": source.value}})
            record_pass_result(source=source.value, status=SyncPassStatus.empty.value, remaining=0)
            return SyncPassResult(status=SyncPassStatus.empty, passes=1)

        self._set_state(ProcessorState.draining)
        log.info(
            "sync_pass_started",
            extra={"payload": {"source": source.value, "tasks": len(snapshot)}},
        )
        result = SyncPassResult(status=SyncPassStatus.completed)
        survivors: list[Task] = []
        dead: list[Task] = []
        try:
            for task in snapshot:
                with sync_context(task_id=task.id, task_type=task.type):
                    outcome, kept = self._apply(task)
                result.outcomes.append((task.id, outcome))
                record_task_outcome(task_type=task.type, outcome=outcome.value)
                if outcome == TaskOutcome.succeeded:
                    result.processed_count += 1
                elif outcome == TaskOutcome.parked:
                    result.parked_count += 1
                    survivors.append(kept)
                elif outcome == TaskOutcome.dead_lettered:
                    result.failed_count += 1
                    result.dead_lettered_count += 1
                    dead.append(kept)
                else:
                    result.failed_count += 1
                    survivors.append(kept)

            try:
                # DLQ пишется раньше очереди: при сбое задача дублируется, но не теряется
                self.store.dead_letter(dead)
                remaining = self.store.settle(snapshot, survivors)
            except StorageError as e:
                log.error(
                    "sync_pass_settle_failed",
                    extra={"payload": {"err": short_err(e), "tasks": len(snapshot)}},
                )
                result.status = SyncPassStatus.error
                result.error = short_err(e)
                result.remaining_count = len(snapshot)
                record_pass_result(source=source.value, status=result.status.value)
                return result
        finally:
            self._set_state(ProcessorState.idle)

        result.remaining_count = len(remaining)
        record_pass_result(
            source=source.value, status=result.status.value, remaining=result.remaining_count
        )
        if dead:
            try:
                set_queue_depth(dlq=len(self.store.dead_letters()))
            except StorageError as e:
                log.warning("dlq_depth_refresh_failed", extra={"payload": {"err": short_err(e)}})
        log.info(
            "sync_pass_finished",
            extra={
                "payload": {
                    "source": source.value,
                    "processed": result.processed_count,
                    "failed": result.failed_count,
                    "parked": result.parked_count,
                    "dead_lettered": result.dead_lettered_count,
                    "remaining": result.remaining_count,
                }
            },
        )
        return result

    def _apply(self, task: Task) -> tuple[TaskOutcome, Task]:
        try:
            handler = resolve_handler(task.type, self.handlers)
        except UnknownTaskTypeError as e:
            log.warning(
                "sync_task_unknown_type",
                extra={"payload": {"task_id": task.id, "type": task.type, "err": short_err(e)}},
            )
            return resolve_outcome(handled=False, succeeded=False).outcome, task

        try:
            with track_task_latency(task.type):
                handler(task.payload, self.ctx)
        except Exception as e:
            err = short_err(e)
            tr = resolve_outcome(
                handled=True,
                succeeded=False,
                transient=is_transient(e),
                attempts_before=task.attempts,
                max_attempts=self.max_attempts,
            )
            kept = task.with_failure(err) if tr.count_attempt else task.with_error(err)
            log.warning(
                "sync_task_failed",
                extra={
                    "payload": {
                        "task_id": task.id,
                        "type": task.type,
                        "outcome": tr.outcome.value,
                        "attempts": kept.attempts,
                        "err": err,
                    }
                },
            )
            return tr.outcome, kept

        log.info("sync_task_succeeded", extra={"payload": {"task_id": task.id, "type": task.type}})
        return TaskOutcome.succeeded, task
