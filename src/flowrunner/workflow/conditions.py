"""Conditional evaluation against live DOM state or run variables.

Scraped values are rarely clean, so a browser value passes through a
transform pipeline (currency stripping, character removal, regex
replacement) before it is compared. A broken transform degrades to a
no-op; it never fails the condition.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import BrowserUnavailableError, ConfigurationError
from .steps import ConditionConfig
from .variables import VariableStore, render_value

if TYPE_CHECKING:
    from ..browser.capability import BrowserCapability
    from ..debug import DebugLog

_CURRENCY = re.compile(r"[$€£¥₹,\s]")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_FLOAT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_GROUP_REF = re.compile(r"\$(\d+|&)")


@dataclass
class ConditionResult:
    condition_result: bool
    effective_selector: str | None = None


def parse_number(text: str) -> float | None:
    """Parse the leading number of ``text``; None when there is none."""
    match = _LEADING_FLOAT.match(text.strip())
    if match is None:
        return None
    return float(match.group(0))


def apply_transforms(raw: str, config: ConditionConfig, debug: DebugLog | None = None) -> str:
    """Run the configured transform pipeline over a raw value, in order."""
    if not raw:
        return raw

    value = raw
    for transform in config.transforms():
        if transform == "stripCurrency":
            value = _CURRENCY.sub("", value)
        elif transform == "stripNonNumeric":
            value = _NON_NUMERIC.sub("", value)
        elif transform == "removeChars" and config.transform_chars:
            for char in config.transform_chars:
                value = value.replace(char, "")
        elif transform == "regexReplace" and config.transform_pattern:
            value = _regex_replace(value, config.transform_pattern, config.transform_replace or "", debug)
    return value


def _regex_replace(value: str, pattern: str, replacement: str, debug: DebugLog | None) -> str:
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        if debug is not None:
            debug.warn("Conditional", "Invalid regex pattern", {"pattern": pattern, "error": str(e)})
        return value

    def _expand(match: re.Match[str]) -> str:
        # "$1" / "$&" references in the replacement
        def _group(ref: re.Match[str]) -> str:
            token = ref.group(1)
            if token == "&":
                return match.group(0)
            index = int(token)
            if index > (compiled.groups or 0):
                return ref.group(0)
            return match.group(index) or ""

        return _GROUP_REF.sub(_group, replacement)

    return compiled.sub(_expand, value)


def compare(actual: str, expected: str, operator: str, parse_as_number: bool) -> bool:
    """Compare two textual values with ``equals|contains|greaterThan|lessThan``."""
    if operator == "contains":
        return expected in actual

    if parse_as_number:
        a = parse_number(_NON_NUMERIC.sub("", actual))
        b = parse_number(_NON_NUMERIC.sub("", expected))
        if a is None or b is None:
            return False
        if operator == "greaterThan":
            return a > b
        if operator == "lessThan":
            return a < b
        return a == b

    if operator in ("greaterThan", "lessThan"):
        a = parse_number(actual)
        b = parse_number(expected)
        if a is None or b is None:
            return False
        return a > b if operator == "greaterThan" else a < b
    return actual == expected


class ConditionalEvaluator:
    """Decides the branch of a conditional node."""

    def __init__(
        self,
        variables: VariableStore,
        browser: BrowserCapability | None = None,
        debug: DebugLog | None = None,
    ):
        self.variables = variables
        self.browser = browser
        self.debug = debug

    async def evaluate(self, config: ConditionConfig) -> ConditionResult:
        if config.is_browser:
            return await self.evaluate_browser(config)
        return self.evaluate_variable(config)

    async def evaluate_browser(self, config: ConditionConfig) -> ConditionResult:
        if not config.selector:
            raise ConfigurationError("selector is required for browser conditional evaluation")
        if self.browser is None:
            raise BrowserUnavailableError("Browser required for browser conditional evaluation")

        started = time.perf_counter()
        selector = config.selector
        self._trace("BrowserConditional", f"Evaluating {config.condition_type} condition",
                    {"selector": selector, "expectedValue": config.expected_value})

        if config.condition_type == "elementExists":
            result = await self.browser.element_exists(selector)
            self._trace("BrowserConditional", f"Element {'found' if result else 'not found'}",
                        {"selector": selector})
        else:
            raw = await self.browser.element_text(selector)
            transformed = apply_transforms(raw, config, self.debug)
            expected = config.expected_value or ""
            result = compare(transformed, expected, config.condition, config.parse_as_number)
            self._trace("BrowserConditional", "Value matching", {
                "rawValue": raw,
                "transformed": transformed,
                "expected": expected,
                "operator": config.condition,
                "result": result,
            })

        if self.debug is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.debug.log_operation("BrowserConditional", f"Condition evaluated to: {result}", elapsed_ms)
        return ConditionResult(condition_result=result, effective_selector=selector)

    def evaluate_variable(self, config: ConditionConfig) -> ConditionResult:
        if not config.variable_name:
            raise ConfigurationError("variableName is required for variable conditional evaluation")

        value = self.variables.get(config.variable_name)
        if config.condition_type == "variableExists":
            result = value is not None and value != ""
        else:
            actual = render_value(value)
            result = compare(actual, config.expected_value or "", config.condition, config.parse_as_number)

        self._trace("VariableConditional", f"{config.variable_name} {config.condition} -> {result}",
                    {"value": render_value(value), "expected": config.expected_value})
        return ConditionResult(condition_result=result)

    def _trace(self, category: str, message: str, data: dict | None = None) -> None:
        if self.debug is not None:
            self.debug.debug(category, message, data)
