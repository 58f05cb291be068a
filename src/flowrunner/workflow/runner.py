"""Backend selection and resource ownership for a single workflow run."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import TYPE_CHECKING

import httpx

from ..browser.capability import PageCapability
from ..browser.headless import HeadlessBrowser
from ..config import Settings, get_settings
from ..debug import DebugLog
from ..errors import BrowserUnavailableError, NoNodesError
from ..executors.step_executor import StepExecutor
from .executor import GraphTraversalEngine, RunResult, StatusCallback
from .schema import Edge, Node, Workflow, requires_browser
from .variables import VariableStore

if TYPE_CHECKING:
    from playwright.async_api import Page

    from ..browser.surface import BrowserSurface
    from ..integrations.ai import CredentialProvider

logger = logging.getLogger(__name__)


async def execute_graph(
    nodes: list[Node],
    edges: list[Edge],
    *,
    variables: VariableStore | None = None,
    headless: bool = False,
    page: Page | None = None,
    surface: BrowserSurface | None = None,
    settings: Settings | None = None,
    debug: DebugLog | None = None,
    credentials: CredentialProvider | None = None,
    on_status: StatusCallback | None = None,
    engine: GraphTraversalEngine | None = None,
) -> RunResult:
    """Run a graph on the right backend and release everything the run owned.

    A private headless browser is launched only when ``headless`` is set and
    the graph has a browser step; it is always closed, even when launch or a
    step fails. Interactive runs drive ``page`` (or the surface's page) and
    hold the surface lock for the whole run.
    """
    if not nodes:
        raise NoNodesError()

    settings = settings or get_settings()
    variables = variables if variables is not None else VariableStore()
    engine = engine or GraphTraversalEngine(settings.max_iterations)
    needs_browser = requires_browser(nodes)
    interactive = needs_browser and not headless

    if interactive and page is None and surface is None:
        raise BrowserUnavailableError(
            "No browser surface available. Cannot execute browser-based workflows."
        )

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    headless_browser: HeadlessBrowser | None = None
    lock = surface.lock if interactive and surface is not None else nullcontext()
    try:
        async with lock:
            browser = None
            if needs_browser and headless:
                logger.info("Initializing headless browser for browser automation")
                headless_browser = HeadlessBrowser(settings.element_timeout_ms, settings.navigation_wait_until)
                await headless_browser.launch()
                browser = headless_browser.capability()
            elif interactive:
                if page is None:
                    page = await surface.ensure_page()
                browser = PageCapability(page, settings.element_timeout_ms, settings.navigation_wait_until)

            executor = StepExecutor(
                variables,
                browser=browser,
                http_client=http_client,
                settings=settings,
                debug=debug,
                credentials=credentials,
            )
            return await engine.execute(nodes, edges, executor, executor.conditions, on_status)
    finally:
        if headless_browser is not None:
            await headless_browser.close()
        await http_client.aclose()


async def run_workflow(workflow: Workflow, **kwargs) -> RunResult:
    """Run a stored workflow, seeding a fresh variable store from its defaults."""
    variables = kwargs.pop("variables", None) or VariableStore(workflow.variables)
    return await execute_graph(workflow.nodes, workflow.edges, variables=variables, **kwargs)
