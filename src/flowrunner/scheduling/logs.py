"""Append-only execution log: one JSON record per scheduled run."""

from __future__ import annotations

import glob
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..persistence import read_models, write_model
from ..workflow.steps import FlowModel

logger = logging.getLogger(__name__)


class ExecutionLogEntry(FlowModel):
    """Summary of one run. Immutable once written."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    automation_id: str
    automation_name: str
    timestamp: datetime = Field(default_factory=datetime.now)
    success: bool
    duration_ms: float
    error: Optional[str] = None
    steps_executed: int = 0
    steps_succeeded: int = 0
    variables: dict[str, Any] = {}


class ExecutionLogger:
    """Writes ``{automationId}_{epochMillis}.json`` files and reads them back newest first."""

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, entry: ExecutionLogEntry) -> Path:
        millis = time.time_ns() // 1_000_000
        filepath = self.log_dir / f"{entry.automation_id}_{millis}.json"
        # Two runs finishing in the same millisecond must not overwrite each other
        while filepath.exists():
            millis += 1
            filepath = self.log_dir / f"{entry.automation_id}_{millis}.json"

        write_model(filepath, entry)
        return filepath

    def list(self, workflow_id: str, limit: int = 10) -> list[ExecutionLogEntry]:
        """Most recent entries for one workflow. Unreadable records are skipped."""
        entries: list[tuple[int, ExecutionLogEntry]] = []
        for filepath, entry in read_models(self._files(workflow_id), ExecutionLogEntry):
            if entry.automation_id == workflow_id:
                entries.append((_millis(filepath, workflow_id), entry))

        entries.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in entries[:limit]]

    def clear(self, workflow_id: str) -> int:
        """Delete every record of a workflow. Returns how many were removed."""
        files = self._files(workflow_id)
        for filepath in files:
            filepath.unlink(missing_ok=True)
        logger.info("Cleared %d execution logs for %s", len(files), workflow_id)
        return len(files)

    def _files(self, workflow_id: str) -> list[Path]:
        if not self.log_dir.exists():
            return []
        return [
            path
            for path in self.log_dir.glob(f"{glob.escape(workflow_id)}_*.json")
            if path.stem[len(workflow_id) + 1:].isdigit()
        ]


def _millis(path: Path, workflow_id: str) -> int:
    return int(path.stem[len(workflow_id) + 1:])
