"""Per-run variable storage with ``{{name}}`` template substitution."""

from __future__ import annotations

import json
import re
from typing import Any

_TEMPLATE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")
_MISSING = object()


class VariableStore:
    """Key/value state owned by exactly one run."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, name: str, default: Any = None) -> Any:
        value = self._lookup(name)
        return default if value is _MISSING else value

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def has(self, name: str) -> bool:
        return self._lookup(name) is not _MISSING

    def snapshot(self) -> dict[str, Any]:
        """A copy of the current values, safe to persist."""
        return dict(self._values)

    def substitute(self, text: str | None) -> str:
        """Replace ``{{name}}`` (or ``{{name.key}}``) placeholders with variable values.

        Unknown placeholders are left untouched so a missing variable stays visible.
        """
        if not text:
            return ""
        if "{{" not in text:
            return text

        def _replace(match: re.Match[str]) -> str:
            value = self._lookup(match.group(1))
            if value is _MISSING:
                return match.group(0)
            return render_value(value)

        return _TEMPLATE.sub(_replace, text)

    def substitute_any(self, value: Any) -> Any:
        """Template every string inside a JSON-like structure."""
        if isinstance(value, str):
            return self.substitute(value)
        if isinstance(value, dict):
            return {k: self.substitute_any(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.substitute_any(v) for v in value]
        return value

    def _lookup(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        # Dotted access into structured values, e.g. {{response.data.id}}
        head, _, rest = name.partition(".")
        if not rest or head not in self._values:
            return _MISSING
        current = self._values[head]
        for part in rest.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return _MISSING
        return current


def render_value(value: Any) -> str:
    """Text form of a variable as used in templates and comparisons."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
