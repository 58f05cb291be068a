"""File based workflow storage with versioned JSON files."""

import re
from pathlib import Path

from ..persistence import FileLock, read_model, read_models, write_model
from .schema import Workflow

_VERSIONED = re.compile(r"^(?P<id>.+)-v(?P<version>\d+)\.json$")


class WorkflowStore:
    """Stores workflows as ``{id}-v{version}.json`` files."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self._lock = FileLock(base_dir / ".workflow_store.lock")

    def save(self, workflow: Workflow) -> str:
        """Save a workflow and return its ID."""
        with self._lock.locked():
            filepath = self.base_dir / f"{workflow.id}-v{workflow.version}.json"
            write_model(filepath, workflow)
        return workflow.id

    def load(self, workflow_id: str) -> Workflow | None:
        """Load the latest version of a workflow by ID."""
        with self._lock.locked():
            versions = self._versions(workflow_id)
            if not versions:
                return None
            _, latest = max(versions)
            return read_model(latest, Workflow)

    def list_all(self) -> list[Workflow]:
        """Latest version of every stored workflow, ordered by ID. Unreadable files are skipped."""
        with self._lock.locked():
            latest: dict[str, tuple[int, Path]] = {}
            for filepath in self._files():
                match = _VERSIONED.match(filepath.name)
                if match is None:
                    continue
                version = int(match.group("version"))
                current = latest.get(match.group("id"))
                if current is None or version > current[0]:
                    latest[match.group("id")] = (version, filepath)

            paths = [path for _, (_, path) in sorted(latest.items())]
            return [workflow for _, workflow in read_models(paths, Workflow)]

    def delete(self, workflow_id: str) -> bool:
        """Delete all versions of a workflow. Returns True if any were deleted."""
        with self._lock.locked():
            versions = self._versions(workflow_id)
            for _, f in versions:
                f.unlink()
            return len(versions) > 0

    def _versions(self, workflow_id: str) -> list[tuple[int, Path]]:
        found = []
        for filepath in self._files():
            match = _VERSIONED.match(filepath.name)
            if match and match.group("id") == workflow_id:
                found.append((int(match.group("version")), filepath))
        return found

    def _files(self) -> list[Path]:
        if not self.base_dir.exists():
            return []
        return sorted(self.base_dir.glob("*.json"))
