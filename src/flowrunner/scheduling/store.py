"""File-based persistence for workflow schedules."""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import Field

from ..persistence import FileLock, read_model, read_models, write_model
from ..workflow.schema import Schedule
from ..workflow.steps import FlowModel


class StoredSchedule(FlowModel):
    """A schedule bound to a workflow, as persisted between restarts."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    workflow_id: str
    schedule: Schedule
    enabled: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class ScheduleStore:
    """Stores one JSON file per schedule."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self._lock = FileLock(base_dir / ".schedule_store.lock")

    def save(self, schedule: StoredSchedule) -> str:
        with self._lock.locked():
            write_model(self._path(schedule.id), schedule)
        return schedule.id

    def load(self, schedule_id: str) -> Optional[StoredSchedule]:
        with self._lock.locked():
            filepath = self._path(schedule_id)
            if not filepath.exists():
                return None
            return read_model(filepath, StoredSchedule)

    def list(self) -> list[StoredSchedule]:
        """All readable stored schedules, oldest first. Corrupt files are logged and skipped."""
        with self._lock.locked():
            if not self.base_dir.exists():
                return []
            schedules = [stored for _, stored in read_models(self.base_dir.glob("*.json"), StoredSchedule)]
        schedules.sort(key=lambda s: s.created_at)
        return schedules

    def set_enabled(self, schedule_id: str, enabled: bool) -> Optional[StoredSchedule]:
        with self._lock.locked():
            stored = self.load(schedule_id)
            if stored is None:
                return None
            stored.enabled = enabled
            write_model(self._path(schedule_id), stored)
            return stored

    def delete(self, schedule_id: str) -> bool:
        with self._lock.locked():
            filepath = self._path(schedule_id)
            if filepath.exists():
                filepath.unlink()
                return True
            return False

    def _path(self, schedule_id: str) -> Path:
        return self.base_dir / f"{schedule_id}.json"
