"""Scheduler: runs stored workflows on interval, cron and one-shot timers.

Each installed schedule is an asyncio timer task on the running loop. A firing
re-checks the task's ``enabled`` flag and starts the run as a separate task,
so unscheduling stops future firings without touching a run in flight. Every
run writes one execution log entry whatever the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from croniter import croniter

from ..config import Settings, get_settings
from ..debug import DebugLog
from ..errors import BrowserUnavailableError, InvalidScheduleError
from ..workflow.executor import GraphTraversalEngine
from ..workflow.runner import run_workflow
from ..workflow.schema import CronSchedule, IntervalSchedule, OnceSchedule, Schedule, Workflow
from ..workflow.store import WorkflowStore
from ..workflow.variables import VariableStore
from .logs import ExecutionLogEntry, ExecutionLogger
from .store import ScheduleStore

if TYPE_CHECKING:
    from ..browser.surface import BrowserSurface
    from ..integrations.ai import CredentialProvider

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    schedule_id: str
    workflow_id: str
    schedule: Schedule
    enabled: bool = True
    handle: asyncio.Task | None = None

    def summary(self) -> dict[str, Any]:
        return {
            "scheduleId": self.schedule_id,
            "workflowId": self.workflow_id,
            "schedule": self.schedule.model_dump(mode="json", by_alias=True),
            "enabled": self.enabled,
        }


@dataclass
class SchedulerState:
    """Timers and in-flight runs owned by one Scheduler instance."""

    tasks: dict[str, ScheduledTask] = field(default_factory=dict)
    runs: set[asyncio.Task] = field(default_factory=set)


class Scheduler:
    """Owns the set of timed tasks and drives runs over time."""

    def __init__(
        self,
        workflow_store: WorkflowStore,
        schedule_store: ScheduleStore,
        execution_logger: ExecutionLogger,
        settings: Settings | None = None,
        surface: BrowserSurface | None = None,
        debug: DebugLog | None = None,
        credentials: CredentialProvider | None = None,
    ):
        self.settings = settings or get_settings()
        self.workflow_store = workflow_store
        self.schedule_store = schedule_store
        self.execution_logger = execution_logger
        self.surface = surface
        self.debug = debug
        self.credentials = credentials
        self.state = SchedulerState()

    def set_surface(self, surface: BrowserSurface | None) -> None:
        """Register the window-lifecycle collaborator used by browser workflows."""
        self.surface = surface

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def install_automation(self, workflow: Workflow, schedule_id: str) -> bool:
        """Install (or replace) the timer for ``schedule_id``. Must run inside an event loop."""
        schedule = workflow.schedule
        if schedule is None or schedule.type == "manual":
            logger.info("Workflow %s has no schedule", workflow.id)
            return False

        self.unschedule_automation(schedule_id)

        task = ScheduledTask(
            schedule_id=schedule_id,
            workflow_id=workflow.id,
            schedule=schedule,
            enabled=workflow.enabled,
        )

        if isinstance(schedule, IntervalSchedule):
            coro = self._interval_loop(task, workflow, self._interval_seconds(schedule))
        elif isinstance(schedule, CronSchedule):
            try:
                validate_schedule(schedule)
            except InvalidScheduleError as e:
                logger.error("%s; schedule %s not installed", e, schedule_id)
                return False
            coro = self._cron_loop(task, workflow, schedule.expression)
        elif isinstance(schedule, OnceSchedule):
            delay = self._seconds_until(schedule.at)
            if delay <= 0:
                logger.info("One-time schedule for %s is in the past, executing now", workflow.id)
            coro = self._once(task, workflow, max(delay, 0.0))
        else:
            logger.error("Unknown schedule type for %s", schedule_id)
            return False

        self.state.tasks[schedule_id] = task
        task.handle = asyncio.get_running_loop().create_task(coro, name=f"schedule-{schedule_id}")
        logger.info("Scheduled workflow %s (schedule %s): %s", workflow.id, schedule_id, schedule.type)
        return True

    def unschedule_automation(self, schedule_id: str) -> bool:
        """Stop and remove a task. Unknown ids return False."""
        task = self.state.tasks.pop(schedule_id, None)
        if task is None:
            return False
        if task.handle is not None and not _is_current(task.handle):
            task.handle.cancel()
        logger.info("Unscheduled schedule %s (workflow %s)", schedule_id, task.workflow_id)
        return True

    def toggle_automation(self, schedule_id: str, enabled: bool) -> bool:
        """Flip the enabled flag; the timer keeps running."""
        task = self.state.tasks.get(schedule_id)
        if task is None:
            return False
        task.enabled = enabled
        logger.info(
            "Schedule %s (workflow %s) %s",
            schedule_id,
            task.workflow_id,
            "enabled" if enabled else "disabled",
        )
        return True

    def get_scheduled_tasks(self) -> list[dict[str, Any]]:
        return [task.summary() for task in self.state.tasks.values()]

    def get_execution_logs(self, workflow_id: str, limit: int | None = None) -> list[ExecutionLogEntry]:
        return self.execution_logger.list(workflow_id, limit or self.settings.execution_log_limit)

    def cleanup(self) -> None:
        """Stop every timer. Runs already in flight are left to finish."""
        for schedule_id in list(self.state.tasks):
            self.unschedule_automation(schedule_id)
        logger.info("All scheduled tasks cleaned up")

    async def shutdown(self) -> None:
        """Stop every timer, cancel in-flight runs and wait for both to settle."""
        handles = [t.handle for t in self.state.tasks.values() if t.handle is not None]
        self.cleanup()
        runs = list(self.state.runs)
        for run in runs:
            run.cancel()
        if runs:
            logger.info("Cancelling %d in-flight scheduled runs", len(runs))
        await asyncio.gather(*handles, *runs, return_exceptions=True)

    async def load_and_activate_schedules(self) -> int:
        """Reinstall every enabled stored schedule. Returns the number of active tasks.

        A schedule whose workflow is missing or no longer loads is logged and
        skipped; the remaining schedules are still installed.
        """
        schedules = self.schedule_store.list()
        logger.info("Loading %d schedules", len(schedules))

        for stored in schedules:
            if not stored.enabled:
                logger.info("Skipping disabled schedule %s for workflow %s", stored.id, stored.workflow_id)
                continue

            try:
                workflow = self.workflow_store.load(stored.workflow_id)
                if workflow is None:
                    logger.error("Workflow %s not found for schedule %s", stored.workflow_id, stored.id)
                    continue

                scheduled = workflow.model_copy(update={"schedule": stored.schedule, "enabled": stored.enabled})
                self.install_automation(scheduled, stored.id)
            except Exception:
                logger.exception("Could not activate schedule %s for workflow %s", stored.id, stored.workflow_id)

        logger.info("Activated %d schedules", len(self.state.tasks))
        return len(self.state.tasks)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _interval_seconds(self, schedule: IntervalSchedule) -> float:
        return schedule.interval_minutes * 60.0

    @staticmethod
    def _seconds_until(at: datetime) -> float:
        now = datetime.now(at.tzinfo) if at.tzinfo is not None else datetime.now()
        return (at - now).total_seconds()

    async def _interval_loop(self, task: ScheduledTask, workflow: Workflow, seconds: float) -> None:
        # Firings are spaced from the install time, not from the end of the previous run
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while True:
            next_at += seconds
            await asyncio.sleep(max(next_at - loop.time(), 0.0))
            await self._fire(task, workflow)

    async def _cron_loop(self, task: ScheduledTask, workflow: Workflow, expression: str) -> None:
        schedule = croniter(expression, datetime.now())
        while True:
            next_fire = schedule.get_next(datetime)
            await asyncio.sleep(max((next_fire - datetime.now()).total_seconds(), 0.0))
            await self._fire(task, workflow)

    async def _once(self, task: ScheduledTask, workflow: Workflow, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._fire(task, workflow)
        finally:
            # Remove only if this is still the installed task for the id
            if self.state.tasks.get(task.schedule_id) is task:
                self.unschedule_automation(task.schedule_id)

    async def _fire(self, task: ScheduledTask, workflow: Workflow) -> None:
        if not task.enabled:
            logger.debug("Schedule %s is disabled; skipping run", task.schedule_id)
            return
        run = asyncio.get_running_loop().create_task(
            self._run_and_log(workflow), name=f"run-{task.schedule_id}"
        )
        self.state.runs.add(run)
        run.add_done_callback(self.state.runs.discard)
        # Cancelling the timer while it waits here leaves the run untouched
        await asyncio.shield(run)

    async def _run_and_log(self, workflow: Workflow) -> None:
        try:
            await self.execute_scheduled_automation(workflow)
        except Exception:
            # A broken run must not kill the timer
            logger.exception("Scheduled run of %s could not be logged", workflow.id)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def execute_scheduled_automation(self, workflow: Workflow) -> ExecutionLogEntry:
        """Run a workflow once and persist its log entry."""
        logger.info("Executing scheduled workflow: %s - %s", workflow.id, workflow.name)

        started = time.perf_counter()
        variables = VariableStore(workflow.variables)
        engine = GraphTraversalEngine(self.settings.max_iterations)
        headless = self.settings.headless_schedules
        success = False
        error: str | None = None

        try:
            if workflow.requires_browser and not headless and self.surface is None:
                raise BrowserUnavailableError(
                    "Browser surface not available. Cannot execute browser-based workflows. "
                    "This is a configuration error."
                )
            result = await run_workflow(
                workflow,
                variables=variables,
                headless=headless,
                surface=self.surface,
                settings=self.settings,
                debug=self.debug,
                credentials=self.credentials,
                engine=engine,
            )
            success = result.success
            if result.stopped:
                error = "Run stopped before completion"
            logger.info("Scheduled workflow completed: %s", workflow.id)
        except asyncio.CancelledError:
            logger.warning("Scheduled workflow cancelled: %s", workflow.id)
            self._log_run(workflow, started, engine, variables, False, "Run cancelled during shutdown")
            raise
        except Exception as e:
            error = str(e)
            logger.error("Scheduled workflow failed: %s: %s", workflow.id, error)

        return self._log_run(workflow, started, engine, variables, success, error)

    def _log_run(
        self,
        workflow: Workflow,
        started: float,
        engine: GraphTraversalEngine,
        variables: VariableStore,
        success: bool,
        error: str | None,
    ) -> ExecutionLogEntry:
        entry = ExecutionLogEntry(
            automation_id=workflow.id,
            automation_name=workflow.name,
            success=success,
            duration_ms=(time.perf_counter() - started) * 1000,
            error=error,
            steps_executed=engine.steps_executed,
            steps_succeeded=engine.steps_succeeded,
            variables=variables.snapshot(),
        )
        self.execution_logger.write(entry)
        return entry


def validate_schedule(schedule: Schedule) -> None:
    """Raise InvalidScheduleError for a cron expression croniter rejects."""
    if isinstance(schedule, CronSchedule) and not croniter.is_valid(schedule.expression):
        raise InvalidScheduleError(f"Invalid cron expression: {schedule.expression}")


def _is_current(handle: asyncio.Task) -> bool:
    try:
        return handle is asyncio.current_task()
    except RuntimeError:  # no running loop
        return False
