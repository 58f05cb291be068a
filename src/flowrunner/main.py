import asyncio
import json
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse

from .browser.surface import PlaywrightWindow
from .config import configure_logging, get_settings
from .debug import DebugLog
from .errors import FlowError, InvalidScheduleError
from .models import CreateScheduleRequest, HealthResponse, RunRequest, ToggleScheduleRequest
from .scheduling.logs import ExecutionLogger
from .scheduling.scheduler import Scheduler, validate_schedule
from .scheduling.store import ScheduleStore, StoredSchedule
from .workflow.executor import GraphTraversalEngine
from .workflow.runner import run_workflow
from .workflow.schema import Workflow
from .workflow.store import WorkflowStore
from .workflow.variables import VariableStore

load_dotenv()

settings = get_settings()
configure_logging(settings)

workflow_store = WorkflowStore(settings.workflows_dir)
schedule_store = ScheduleStore(settings.schedules_dir)
execution_logger = ExecutionLogger(settings.logs_dir)
debug_log = DebugLog(settings.debug_log_capacity)


@asynccontextmanager
async def lifespan(app: FastAPI):
    surface = PlaywrightWindow()
    scheduler = Scheduler(
        workflow_store,
        schedule_store,
        execution_logger,
        settings=settings,
        surface=surface,
        debug=debug_log,
    )
    app.state.surface = surface
    app.state.scheduler = scheduler
    app.state.active_runs = {}
    await scheduler.load_and_activate_schedules()
    try:
        yield
    finally:
        await scheduler.shutdown()
        await surface.close()


app = FastAPI(
    title="flowrunner API",
    description="Run browser automation graphs on demand or on a schedule",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _scheduler() -> Scheduler:
    return app.state.scheduler


def _active_runs() -> dict[str, GraphTraversalEngine]:
    """Engines of interactive runs in flight, keyed by workflow id."""
    return app.state.active_runs


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# --- Workflows ---


@app.get("/api/workflows")
def list_workflows():
    return [wf.model_dump(mode="json", by_alias=True) for wf in workflow_store.list_all()]


@app.post("/api/workflows")
def save_workflow(workflow: Workflow):
    workflow_id = workflow_store.save(workflow)
    return {"status": "saved", "workflow_id": workflow_id, "version": workflow.version}


@app.get("/api/workflows/{workflow_id}")
def get_workflow(workflow_id: str):
    wf = workflow_store.load(workflow_id)
    if wf is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return wf.model_dump(mode="json", by_alias=True)


@app.delete("/api/workflows/{workflow_id}")
def delete_workflow(workflow_id: str):
    deleted = workflow_store.delete(workflow_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"status": "deleted", "workflow_id": workflow_id}


@app.post("/api/workflows/{workflow_id}/run")
async def run_workflow_endpoint(workflow_id: str, request: RunRequest):
    """Run a workflow now, streaming node status events as server-sent events."""
    wf = workflow_store.load(workflow_id)
    if wf is None:
        raise HTTPException(status_code=404, detail="Workflow not found")

    active_runs = _active_runs()
    if workflow_id in active_runs:
        raise HTTPException(status_code=409, detail="Workflow is already running")
    engine = GraphTraversalEngine(settings.max_iterations)

    queue: asyncio.Queue = asyncio.Queue()
    variables = VariableStore({**wf.variables, **request.variables})

    def on_status(node_id: str, status: str, error: str | None = None) -> None:
        queue.put_nowait({"type": "status", "nodeId": node_id, "status": status, "error": error})

    async def run() -> None:
        try:
            result = await run_workflow(
                wf,
                variables=variables,
                headless=request.headless,
                surface=getattr(app.state, "surface", None),
                settings=settings,
                debug=debug_log,
                on_status=on_status,
                engine=engine,
            )
            queue.put_nowait(
                {
                    "type": "result",
                    "success": result.success,
                    "stopped": result.stopped,
                    "stepsExecuted": result.steps_executed,
                    "stepsSucceeded": result.steps_succeeded,
                    "variables": variables.snapshot(),
                }
            )
        except FlowError as e:
            queue.put_nowait({"type": "error", "errorType": e.error_type, "message": str(e)})
        except Exception as e:
            queue.put_nowait({"type": "error", "errorType": "internal_error", "message": str(e)})
        finally:
            if active_runs.get(workflow_id) is engine:
                del active_runs[workflow_id]
            queue.put_nowait(None)

    async def event_stream():
        # Registered only once streaming starts so an abandoned response never holds the slot
        active_runs[workflow_id] = engine
        task = asyncio.create_task(run())
        try:
            while (event := await queue.get()) is not None:
                yield f"data: {json.dumps(event, default=str)}\n\n"
        finally:
            await task

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@app.post("/api/workflows/{workflow_id}/stop")
def stop_workflow_run(workflow_id: str):
    """Ask an interactive run to stop before its next node."""
    engine = _active_runs().get(workflow_id)
    if engine is None:
        raise HTTPException(status_code=404, detail="No active run for workflow")
    engine.request_stop()
    return {"status": "stopping", "workflow_id": workflow_id}


@app.get("/api/workflows/{workflow_id}/logs")
def get_execution_logs(workflow_id: str, limit: int | None = None):
    entries = _scheduler().get_execution_logs(workflow_id, limit)
    return [e.model_dump(mode="json", by_alias=True) for e in entries]


@app.delete("/api/workflows/{workflow_id}/logs")
def clear_execution_logs(workflow_id: str):
    removed = execution_logger.clear(workflow_id)
    return {"status": "cleared", "workflow_id": workflow_id, "removed": removed}


# --- Schedules ---


@app.get("/api/schedules")
def list_schedules():
    return [s.model_dump(mode="json", by_alias=True) for s in schedule_store.list()]


@app.post("/api/schedules")
async def create_schedule(request: CreateScheduleRequest):
    wf = workflow_store.load(request.workflow_id)
    if wf is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    try:
        validate_schedule(request.schedule)
    except InvalidScheduleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    stored = StoredSchedule(
        workflow_id=request.workflow_id,
        schedule=request.schedule,
        enabled=request.enabled,
    )
    schedule_store.save(stored)

    installed = False
    if stored.enabled:
        scheduled = wf.model_copy(update={"schedule": stored.schedule, "enabled": True})
        installed = _scheduler().install_automation(scheduled, stored.id)

    return {**stored.model_dump(mode="json", by_alias=True), "installed": installed}


@app.delete("/api/schedules/{schedule_id}")
async def delete_schedule(schedule_id: str):
    unscheduled = _scheduler().unschedule_automation(schedule_id)
    deleted = schedule_store.delete(schedule_id)
    if not (unscheduled or deleted):
        raise HTTPException(status_code=404, detail="Schedule not found")
    return {"status": "deleted", "schedule_id": schedule_id}


@app.post("/api/schedules/{schedule_id}/toggle")
async def toggle_schedule(schedule_id: str, request: ToggleScheduleRequest):
    stored = schedule_store.set_enabled(schedule_id, request.enabled)
    if stored is None:
        raise HTTPException(status_code=404, detail="Schedule not found")

    scheduler = _scheduler()
    if not scheduler.toggle_automation(schedule_id, request.enabled) and request.enabled:
        wf = workflow_store.load(stored.workflow_id)
        if wf is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        scheduler.install_automation(wf.model_copy(update={"schedule": stored.schedule}), schedule_id)

    return stored.model_dump(mode="json", by_alias=True)


@app.get("/api/scheduler/tasks")
async def list_scheduled_tasks():
    return _scheduler().get_scheduled_tasks()


# --- Debug log ---


@app.get("/api/debug/logs")
def get_debug_logs():
    return [e.model_dump(mode="json") for e in debug_log.get_logs()]


@app.delete("/api/debug/logs")
def clear_debug_logs():
    debug_log.clear()
    return {"status": "cleared"}


@app.get("/api/debug/statistics")
def get_debug_statistics():
    return debug_log.statistics()


@app.get("/api/debug/export")
def export_debug_logs():
    return Response(
        content=debug_log.export(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="debug-logs.json"'},
    )
