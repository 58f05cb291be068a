"""Error taxonomy for workflow configuration, step execution and traversal."""

from __future__ import annotations


class FlowError(Exception):
    """Base error carrying a machine-readable error type."""

    def __init__(self, message: str, error_type: str = "flow_error"):
        self.error_type = error_type
        super().__init__(message)


# --- Configuration errors: reported immediately, nothing is activated ---


class ConfigurationError(FlowError):
    def __init__(self, message: str, error_type: str = "configuration_error"):
        super().__init__(message, error_type)


class NoNodesError(ConfigurationError):
    def __init__(self, message: str = "No nodes to execute"):
        super().__init__(message, "no_nodes")


class NoStartNodeError(ConfigurationError):
    def __init__(self, message: str = "No start nodes found in workflow"):
        super().__init__(message, "no_start_node")


class BrowserUnavailableError(ConfigurationError):
    def __init__(self, message: str):
        super().__init__(message, "browser_unavailable")


class InvalidScheduleError(ConfigurationError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_schedule")


# --- Execution errors: abort the current run ---


class StepExecutionError(FlowError):
    """A step failed. ``elapsed_ms`` is filled in by the step executor."""

    def __init__(
        self,
        message: str,
        error_type: str = "step_failed",
        step_type: str | None = None,
        elapsed_ms: float | None = None,
    ):
        self.step_type = step_type
        self.elapsed_ms = elapsed_ms
        super().__init__(message, error_type)


class UnsupportedStepError(StepExecutionError):
    def __init__(self, step_type: str):
        super().__init__(f"Unsupported step type: {step_type}", "unsupported_step", step_type)


class ElementNotFoundError(StepExecutionError):
    def __init__(self, selector: str, timeout_ms: float | None = None):
        self.selector = selector
        detail = f" within {timeout_ms:.0f}ms" if timeout_ms is not None else ""
        super().__init__(f"Element not found: {selector}{detail}", "element_not_found")


class StepTimeoutError(StepExecutionError, TimeoutError):
    def __init__(self, message: str):
        super().__init__(message, "timeout")


class NavigationError(StepExecutionError):
    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Navigation to {url} failed: {reason}", "navigation_failed")


# --- Traversal guard: a buggy graph, not a failed step ---


class IterationLimitExceeded(FlowError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Maximum iteration limit reached ({limit}) - possible infinite loop",
            "iteration_limit",
        )
