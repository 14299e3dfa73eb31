"""
The autonomous worker: polls work sources, ranks what they find in the
persistent queue and drives the best pending item through the approval
policy and an injected workflow executor.

Each poll cycle runs one step of a small state machine:

1. Check the stop-signal file; if present, stop and return.
2. Poll every enabled source. A source that raises is logged and skipped.
   Items whose id is already queued are skipped.
3. Select the next pending item from the queue.
4. If cumulative spend has reached the budget, leave the item pending.
5. Evaluate the approval policy, then escalate, ask for confirmation or
   execute the item.
6. Rewrite the worker status file.

Only one item is processed at a time. The executor and confirmation callback
may be plain functions or coroutines; either way the worker awaits them
before considering the next item. A running workflow is never interrupted:
stop requests take effect between cycles.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Union

from autoworker_contracts import (
    ApprovalAction,
    CurrentWorkInfo,
    DiscoveredWork,
    QueueStats,
    SuggestedWorkflow,
    WorkerState,
    WorkerStats,
    WorkerStatus,
    WorkflowResult,
    WorkflowType,
    WorkStatus,
)

from .approval import evaluate_approval
from .audit import AUDIT_FILE_NAME, AuditLog
from .config import WorkerConfig
from .errors import DuplicateWorkError, WorkerAlreadyRunningError
from .events import (
    BUDGET_EXHAUSTED,
    ERROR,
    WORK_COMPLETED,
    WORK_CONFIRMED,
    WORK_DISCOVERED,
    WORK_ESCALATED,
    WORK_FAILED,
    WORK_PICKED_UP,
    WORKER_STARTED,
    WORKER_STOPPED,
    RedisEventPublisher,
    WorkerEvents,
)
from .locking import FileLock
from .queue import PersistentQueue
from .sources import WorkSourceProvider
from .worker_status import save_worker_status

LOGGER = logging.getLogger(__name__)

LOCK_FILE_NAME = "worker.lock"
STOP_SIGNAL_FILE_NAME = "worker-stop-signal"
WORKER_ASSIGNEE = "autonomous-worker"

WorkflowExecutor = Callable[
    [WorkflowType, str, float],
    Union[WorkflowResult, dict, Awaitable[Union[WorkflowResult, dict]]],
]
ConfirmationHandler = Callable[[DiscoveredWork], Union[bool, Awaitable[bool]]]

_WORKFLOW_MAP = {
    SuggestedWorkflow.BUG_FIX: WorkflowType.BUG_FIX,
    SuggestedWorkflow.REFACTOR: WorkflowType.REFACTOR,
    SuggestedWorkflow.NEW_FEATURE: WorkflowType.NEW_FEATURE,
    SuggestedWorkflow.INVESTIGATION: WorkflowType.BUG_FIX,
    SuggestedWorkflow.MANUAL_REVIEW: None,
}


def map_work_to_workflow(suggested: SuggestedWorkflow | str) -> Optional[WorkflowType]:
    """
    Map a source's suggested workflow to one the executor can run.

    Investigations are framed as bug fixes. Manual review has no executable
    workflow and maps to None. Unrecognised values fall back to a bug fix.
    """
    try:
        workflow = SuggestedWorkflow(suggested)
    except ValueError:
        LOGGER.warning("Unknown suggested workflow %r, treating as bug-fix", suggested)
        return WorkflowType.BUG_FIX
    return _WORKFLOW_MAP.get(workflow, WorkflowType.BUG_FIX)


def request_stop(working_directory: str | Path, *, state_dir_name: str = ".autoworker") -> Path:
    """Ask a running worker to stop by creating its stop-signal file."""
    state_dir = Path(working_directory) / state_dir_name
    state_dir.mkdir(parents=True, exist_ok=True)
    signal_path = state_dir / STOP_SIGNAL_FILE_NAME
    signal_path.touch()
    return signal_path


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class AutonomousWorker:
    """
    Connects work sources to a workflow executor under an approval policy
    and a spending budget.

    Args:
        config: Worker configuration. Its state directory holds the queue,
            status, lock, stop-signal and audit files.
        on_execute_workflow: ``(workflow_type, description, budget_usd)``
            returning a `WorkflowResult`. Without it the worker runs in
            queue-only mode and approved items are just marked in-progress.
        on_confirmation_required: ``(work) -> bool`` for items the policy
            wants confirmed. Without it such items are escalated.
        events: Event bus to emit lifecycle events on; a new one is created
            when omitted.
    """

    def __init__(
        self,
        config: WorkerConfig,
        *,
        on_execute_workflow: WorkflowExecutor | None = None,
        on_confirmation_required: ConfirmationHandler | None = None,
        events: WorkerEvents | None = None,
    ) -> None:
        self.config = config
        self.state_dir = config.state_dir
        self.queue = PersistentQueue(
            config.working_directory,
            max_items=config.queue_max_items,
            state_dir_name=config.state_dir_name,
        )
        self.policy = config.approval_policy
        self.events = events or WorkerEvents()
        self.audit = AuditLog(self.state_dir / AUDIT_FILE_NAME) if config.audit_enabled else None
        self._on_execute_workflow = on_execute_workflow
        self._on_confirmation_required = on_confirmation_required
        self._lock = FileLock(self.state_dir / LOCK_FILE_NAME)
        self._stop_signal_path = self.state_dir / STOP_SIGNAL_FILE_NAME
        self._sources: List[WorkSourceProvider] = []

        self._running = False
        self._processing = False
        self._total_spent_usd = 0.0
        self._completed_count = 0
        self._escalated_count = 0
        self._failed_count = 0
        self._budget_notified = False
        self._started_at: Optional[datetime] = None
        self._last_poll_at: Optional[datetime] = None
        self._current_work: Optional[CurrentWorkInfo] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None

        if config.events_redis_url:
            RedisEventPublisher(
                config.events_redis_url,
                stream_key=config.events_stream_key,
            ).attach(self.events)

    # ------------------------------------------------------------ properties

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def total_spent_usd(self) -> float:
        return self._total_spent_usd

    # ------------------------------------------------------------- lifecycle

    def register_source(self, source: WorkSourceProvider) -> None:
        self._sources.append(source)

    async def start(self) -> None:
        """
        Acquire the worker lock and begin polling in the background.

        Raises:
            WorkerAlreadyRunningError: If this worker is already started.
            LockHeldError: If another worker holds the lock file.
        """
        if self._running:
            raise WorkerAlreadyRunningError("Worker is already running")
        self._lock.acquire()
        self._running = True
        self._started_at = _utc_now()
        self._stopped = asyncio.Event()
        self._clear_stop_signal()
        self._save_status()
        self._emit(WORKER_STARTED)
        LOGGER.info(
            "Worker started in %s, polling every %.1fs",
            self.config.working_directory,
            self.config.poll_interval_seconds,
        )
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """Stop polling, release the lock and clear any pending stop signal."""
        self._running = False
        task, self._loop_task = self._loop_task, None
        # In-flight work is left to finish; the loop exits after that cycle.
        if (
            task is not None
            and task is not asyncio.current_task()
            and not task.done()
            and not self._processing
        ):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._lock.release()
        self._clear_stop_signal()
        self._save_status()
        self._emit(WORKER_STOPPED)
        LOGGER.info("Worker stopped")
        if self._stopped is not None:
            self._stopped.set()

    async def wait_stopped(self) -> None:
        if self._stopped is None:
            return
        await self._stopped.wait()

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.poll_interval_seconds)
            if not self._running:
                break
            try:
                await self.poll_once()
            except Exception as exc:  # noqa: BLE001 - a failed cycle must not end the loop
                LOGGER.exception("Poll cycle failed")
                self._emit(ERROR, error=str(exc))

    # ------------------------------------------------------------ poll cycle

    async def poll_once(self) -> None:
        """Run a single poll cycle."""
        if self.check_stop_signal():
            LOGGER.info("Stop signal found at %s", self._stop_signal_path)
            await self.stop()
            return

        if self._processing:
            return

        try:
            await self._poll_sources()
            self._last_poll_at = _utc_now()
            next_work = self.queue.get_next_work()
            if next_work is not None:
                await self._process_work(next_work)
        finally:
            self._save_status()

    async def _poll_sources(self) -> None:
        for source in list(self._sources):
            if not source.enabled:
                continue
            try:
                items = await source.poll()
            except Exception as exc:  # noqa: BLE001 - one bad source must not block the others
                LOGGER.warning("Work source %s failed: %s", source.name, exc)
                self._emit(ERROR, error=str(exc), source=source.name)
                continue
            for item in items or []:
                try:
                    self.queue.add(item)
                except DuplicateWorkError:
                    LOGGER.debug("Skipping duplicate work item %s from %s", item.id, source.name)
                    continue
                LOGGER.info(
                    "Discovered %s: %s (%s, tier %d)",
                    item.id,
                    item.summary,
                    item.priority.value,
                    item.tier,
                )
                self._emit(WORK_DISCOVERED, work=item, source=source.name)

    async def _process_work(self, work: DiscoveredWork) -> None:
        if self.is_budget_exhausted():
            if not self._budget_notified:
                LOGGER.warning(
                    "Budget exhausted ($%.2f of $%.2f); leaving work pending",
                    self._total_spent_usd,
                    self.config.max_budget_usd,
                )
                self._budget_notified = True
                self._emit(
                    BUDGET_EXHAUSTED,
                    spent_usd=self._total_spent_usd,
                    max_budget_usd=self.config.max_budget_usd,
                )
            return

        approval = evaluate_approval(
            work,
            self.policy,
            estimated_cost_usd=self.config.max_item_budget_usd,
        )
        LOGGER.debug("Approval for %s: %s (%s)", work.id, approval.decision.value, approval.reason)
        workflow_type = map_work_to_workflow(work.suggested_workflow)

        if approval.decision == ApprovalAction.ESCALATE:
            self._escalate(work, approval.reason, f"Escalated: {approval.reason}")
            return

        if approval.decision == ApprovalAction.CONFIRM:
            if self._on_confirmation_required is None:
                self._escalate(
                    work,
                    "No confirmation handler available",
                    "Escalated: no confirmation handler",
                )
                return
            try:
                confirmed = await _maybe_await(self._on_confirmation_required(work))
            except Exception as exc:  # noqa: BLE001 - treated as a rejection
                LOGGER.exception("Confirmation handler failed for %s", work.id)
                self._escalate(work, f"Confirmation handler failed: {exc}", f"Escalated: {exc}")
                return
            if not confirmed:
                self._escalate(work, "Confirmation rejected", "Escalated: confirmation rejected")
                return
            self._emit(WORK_CONFIRMED, work=work)

        if workflow_type is None:
            self._escalate(
                work,
                "manual-review cannot be auto-executed",
                "No executable workflow for manual-review",
            )
            return

        await self._execute_work(work, workflow_type)

    async def _execute_work(self, work: DiscoveredWork, workflow_type: WorkflowType) -> None:
        started_at = _utc_now()
        if self._on_execute_workflow is None:
            picked = self.queue.update(
                work.id,
                status=WorkStatus.IN_PROGRESS,
                started_at=started_at,
                assigned_to=WORKER_ASSIGNEE,
            )
            LOGGER.info("No executor configured; %s marked in-progress", work.id)
            self._emit(WORK_PICKED_UP, work=picked or work)
            return

        self._processing = True
        self._current_work = CurrentWorkInfo(id=work.id, summary=work.summary, started_at=started_at)
        try:
            picked = self.queue.update(
                work.id,
                status=WorkStatus.IN_PROGRESS,
                started_at=started_at,
                assigned_to=WORKER_ASSIGNEE,
            ) or work
            self._save_status()
            self._emit(WORK_PICKED_UP, work=picked)
            LOGGER.info("Executing %s as %s", work.id, workflow_type.value)

            try:
                raw = await _maybe_await(
                    self._on_execute_workflow(
                        workflow_type,
                        work.description,
                        self.config.max_item_budget_usd,
                    )
                )
                result = raw if isinstance(raw, WorkflowResult) else WorkflowResult.model_validate(raw)
            except Exception as exc:  # noqa: BLE001 - executor errors are recorded on the item
                LOGGER.exception("Executor raised for %s", work.id)
                failed = self.queue.update(
                    work.id,
                    status=WorkStatus.FAILED,
                    completed_at=_utc_now(),
                    resolution=f"Error: {exc}",
                )
                self._failed_count += 1
                self._emit(WORK_FAILED, work=failed or picked, error=str(exc))
                return

            self._total_spent_usd += result.cost_usd
            if result.success:
                done = self.queue.update(
                    work.id,
                    status=WorkStatus.COMPLETED,
                    completed_at=_utc_now(),
                    resolution=result.resolution or "Completed successfully",
                )
                self._completed_count += 1
                LOGGER.info("Completed %s ($%.2f)", work.id, result.cost_usd)
                self._emit(WORK_COMPLETED, work=done or picked, result=result)
            else:
                error = result.error or "Unknown error"
                failed = self.queue.update(
                    work.id,
                    status=WorkStatus.FAILED,
                    completed_at=_utc_now(),
                    resolution=f"Failed: {error}",
                )
                self._failed_count += 1
                LOGGER.warning("Workflow failed for %s: %s", work.id, error)
                self._emit(WORK_FAILED, work=failed or picked, error=error, result=result)
        finally:
            self._processing = False
            self._current_work = None

    def _escalate(self, work: DiscoveredWork, reason: str, resolution: str) -> None:
        escalated = self.queue.update(work.id, status=WorkStatus.ESCALATED, resolution=resolution)
        self._escalated_count += 1
        LOGGER.info("Escalated %s: %s", work.id, reason)
        self._emit(WORK_ESCALATED, work=escalated or work, reason=reason)

    # --------------------------------------------------------------- budget

    def is_budget_exhausted(self) -> bool:
        return self._total_spent_usd >= self.config.max_budget_usd

    def add_spent_budget(self, amount: float) -> None:
        self._total_spent_usd += amount

    # ---------------------------------------------------------- queue access

    def add_to_queue(self, work: DiscoveredWork) -> Optional[DiscoveredWork]:
        return self.queue.add(work)

    def remove_from_queue(self, work_id: str) -> bool:
        return self.queue.remove(work_id)

    def get_queue_items(self) -> List[DiscoveredWork]:
        return self.queue.get_all()

    def get_queue_stats(self) -> QueueStats:
        return self.queue.get_stats()

    # ------------------------------------------------------- stop signal/status

    def check_stop_signal(self) -> bool:
        return self._stop_signal_path.exists()

    def _clear_stop_signal(self) -> None:
        self._stop_signal_path.unlink(missing_ok=True)

    def status_snapshot(self) -> WorkerStatus:
        if self._running:
            state = WorkerState.PROCESSING if self._processing else WorkerState.RUNNING
        else:
            state = WorkerState.STOPPED if self._started_at else WorkerState.IDLE
        return WorkerStatus(
            status=state,
            started_at=self._started_at,
            last_poll_at=self._last_poll_at,
            current_work=self._current_work,
            stats=WorkerStats(
                completed=self._completed_count,
                escalated=self._escalated_count,
                failed=self._failed_count,
                total_cost_usd=self._total_spent_usd,
            ),
            queue_stats=self.queue.get_stats().snapshot(),
        )

    def _save_status(self) -> None:
        try:
            save_worker_status(self.state_dir, self.status_snapshot())
        except OSError as exc:
            LOGGER.warning("Failed to save worker status: %s", exc)

    def _emit(self, event: str, **payload: Any) -> None:
        if self.audit is not None:
            self.audit.record(event, **payload)
        self.events.emit(event, **payload)


__all__ = [
    "AutonomousWorker",
    "map_work_to_workflow",
    "request_stop",
    "LOCK_FILE_NAME",
    "STOP_SIGNAL_FILE_NAME",
    "WORKER_ASSIGNEE",
]
