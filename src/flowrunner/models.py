"""API models for the flowrunner service."""

from typing import Any

from pydantic import Field

from .workflow.schema import Schedule
from .workflow.steps import FlowModel


class RunRequest(FlowModel):
    """Request to run a stored workflow now."""

    headless: bool = Field(
        False,
        description="Run browser steps in a private headless browser instead of the interactive window",
    )
    variables: dict[str, Any] = Field(
        default_factory=dict,
        description="Initial variables, merged over the workflow's defaults",
    )


class CreateScheduleRequest(FlowModel):
    """Request to attach a schedule to a stored workflow."""

    workflow_id: str
    schedule: Schedule
    enabled: bool = True


class ToggleScheduleRequest(FlowModel):
    enabled: bool


class HealthResponse(FlowModel):
    """Health check response."""

    status: str
    service: str = "flowrunner"
