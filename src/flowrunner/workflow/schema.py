"""Pydantic models defining the workflow graph and its schedule."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import Field, field_validator, model_validator

from .steps import (
    BROWSER_STEP_TYPES,
    CONDITION_KEYS,
    CONDITIONAL_STEP_TYPES,
    ConditionConfig,
    FlowModel,
    Step,
)


class Node(FlowModel):
    """A single unit of work: an action step, a conditional branch point or a pass-through."""

    id: str
    type: str | None = None  # editor node type, e.g. "automationStep" | "conditional"
    step: Step | None = None
    condition: ConditionConfig | None = None
    is_start: bool = False

    @model_validator(mode="before")
    @classmethod
    def _unwrap_editor_data(cls, data: Any) -> Any:
        """Accept editor exports that nest the payload under ``data``."""
        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            return data

        inner = data["data"]
        merged: dict[str, Any] = {"id": data.get("id"), "type": data.get("type")}
        if inner.get("step") is not None:
            merged["step"] = inner["step"]
        if "isStart" in inner:
            merged["isStart"] = bool(inner["isStart"])
        if data.get("type") == "conditional" or "conditionType" in inner:
            merged["condition"] = {k: v for k, v in inner.items() if k in CONDITION_KEYS}
        return merged

    @model_validator(mode="after")
    def _step_or_condition(self) -> "Node":
        if self.step is not None and self.condition is not None:
            raise ValueError(f"Node {self.id} has both a step and a condition")
        return self

    @property
    def condition_config(self) -> ConditionConfig | None:
        """The condition this node branches on, or None for non-conditional nodes."""
        if self.condition is not None:
            return self.condition
        if self.step is not None and self.step.type in CONDITIONAL_STEP_TYPES:
            return self.step.to_condition()
        return None

    @property
    def is_conditional(self) -> bool:
        return self.condition is not None or (
            self.step is not None and self.step.type in CONDITIONAL_STEP_TYPES
        )

    @property
    def requires_browser(self) -> bool:
        if self.step is not None:
            return self.step.type in BROWSER_STEP_TYPES
        return self.condition is not None and self.condition.is_browser


class Edge(FlowModel):
    """A directed link between two nodes. Invalid endpoints are tolerated and filtered later."""

    id: str | None = None
    source: str | None = None
    target: str | None = None
    source_handle: str | None = None  # "if" | "else" | None


class ManualSchedule(FlowModel):
    type: Literal["manual"] = "manual"


class IntervalSchedule(FlowModel):
    type: Literal["interval"]
    interval_minutes: int = Field(ge=1)


class CronSchedule(FlowModel):
    type: Literal["cron"]
    expression: str


class OnceSchedule(FlowModel):
    type: Literal["once"]
    at: datetime = Field(alias="datetime")


Schedule = Annotated[
    Union[ManualSchedule, IntervalSchedule, CronSchedule, OnceSchedule],
    Field(discriminator="type"),
]


class Workflow(FlowModel):
    """A complete automation graph."""

    id: str
    name: str
    description: str = ""
    nodes: list[Node] = []
    edges: list[Edge] = []
    schedule: Schedule | None = None
    enabled: bool = True
    variables: dict[str, Any] = {}
    version: int = 1

    @field_validator("nodes")
    @classmethod
    def _unique_node_ids(cls, nodes: list[Node]) -> list[Node]:
        seen: set[str] = set()
        for node in nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        return nodes

    @property
    def requires_browser(self) -> bool:
        return requires_browser(self.nodes)


def requires_browser(nodes: list[Node]) -> bool:
    """True if any node needs a live browser page."""
    return any(node.requires_browser for node in nodes)
