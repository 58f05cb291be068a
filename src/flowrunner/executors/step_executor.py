"""Step executor: performs one workflow step against a browser capability.

The same class backs both execution modes. An interactive run composes it
with a capability over a caller-owned page; a headless run composes it with
the page of a ``HeadlessBrowser`` that the run owns. Logic-only steps
(variables, waits, HTTP and AI calls) never touch the browser.
"""

from __future__ import annotations

import asyncio
import re
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from ..config import Settings, get_settings
from ..debug import DebugLog
from ..errors import (
    BrowserUnavailableError,
    ConfigurationError,
    FlowError,
    StepExecutionError,
    UnsupportedStepError,
)
from ..integrations.ai import AIClient, CredentialProvider
from ..integrations.http_request import send_request
from ..workflow.conditions import ConditionalEvaluator, ConditionResult
from ..workflow.steps import (
    AIAnthropicStep,
    AIGenerateTextStep,
    AIOllamaStep,
    AIOpenAIStep,
    ApiCallStep,
    BrowserConditionalStep,
    ClickStep,
    ConditionConfig,
    ExtractStep,
    FileUploadStep,
    HoverStep,
    NavigateStep,
    ScreenshotStep,
    ScrollStep,
    SelectOptionStep,
    SetVariableStep,
    Step,
    TypeStep,
    VariableConditionalStep,
    WaitStep,
)
from ..workflow.variables import VariableStore

if TYPE_CHECKING:
    from ..browser.capability import BrowserCapability

_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def parse_int(text: str, default: int = 0) -> int:
    """Leading integer of ``text``, or ``default`` when there is none."""
    match = _LEADING_INT.match(text or "")
    return int(match.group(0)) if match else default


class StepExecutor:
    """Executes steps and evaluates conditions for a single run."""

    def __init__(
        self,
        variables: VariableStore,
        browser: BrowserCapability | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        debug: DebugLog | None = None,
        credentials: CredentialProvider | None = None,
    ):
        self.settings = settings or get_settings()
        self.variables = variables
        self.browser = browser
        self.http = http_client
        self.debug = debug or DebugLog(self.settings.debug_log_capacity)
        self.conditions = ConditionalEvaluator(variables, browser, self.debug)
        self.ai = AIClient(self.settings, http_client, credentials) if http_client is not None else None

    async def execute_step(self, step: Step) -> Any:
        """Run one step. Failures carry the elapsed time for diagnostics."""
        started = time.perf_counter()
        try:
            result = await self._dispatch(step)
        except FlowError as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if isinstance(e, StepExecutionError):
                e.step_type = e.step_type or step.type
                e.elapsed_ms = elapsed_ms
            self.debug.error("Step Execution", f"{step.type} step failed: {e} ({elapsed_ms:.2f}ms)")
            raise
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.debug.error("Step Execution", f"{step.type} step failed: {e} ({elapsed_ms:.2f}ms)")
            raise StepExecutionError(str(e), step_type=step.type, elapsed_ms=elapsed_ms) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        self.debug.log_operation("Step Execution", f"{step.type} step completed successfully", elapsed_ms)
        return result

    async def evaluate_browser_conditional(self, config: ConditionConfig) -> ConditionResult:
        return await self.conditions.evaluate_browser(config)

    def evaluate_variable_conditional(self, config: ConditionConfig) -> ConditionResult:
        return self.conditions.evaluate_variable(config)

    async def _dispatch(self, step: Step) -> Any:
        sub = self.variables.substitute

        match step:
            case NavigateStep():
                url = sub(step.value)
                self.debug.debug("Navigate", f"Loading URL: {url}")
                await self._require_browser(step.type).navigate(url)
                return None

            case ClickStep():
                selector = sub(step.selector)
                self.debug.debug("Click", f"Clicking element: {selector}")
                await self._require_browser(step.type).click(selector)
                return None

            case TypeStep():
                selector = sub(step.selector)
                self.debug.debug("Type", f"Typing into {selector}")
                await self._require_browser(step.type).type_text(selector, sub(step.value))
                return None

            case ExtractStep():
                selector = sub(step.selector)
                self.debug.debug("Extract", f"Extracting text from: {selector}")
                extracted = await self._require_browser(step.type).extract_text(selector)
                if step.store_key:
                    self.variables.set(step.store_key, extracted)
                    self.debug.debug("Variable", f"Set {step.store_key} = {extracted}")
                return extracted

            case ScrollStep():
                browser = self._require_browser(step.type)
                if step.scroll_type == "toElement":
                    selector = sub(step.selector or "")
                    self.debug.debug("Scroll", f"Scrolling to element: {selector}")
                    await browser.scroll_to_element(selector)
                else:
                    amount = parse_int(sub(str(step.scroll_amount or 0)))
                    self.debug.debug("Scroll", f"Scrolling by {amount}px")
                    await browser.scroll_by(amount)
                return None

            case ScreenshotStep():
                browser = self._require_browser(step.type)
                filename = f"screenshot_{datetime.now().strftime('%Y%m%dT%H%M%S')}.png"
                self.debug.debug("Screenshot", "Capturing page screenshot")
                await browser.screenshot(self.settings.screenshots_dir / filename)
                self.debug.info("Screenshot", f"Screenshot saved to: {filename}")
                return filename

            case SelectOptionStep():
                selector = sub(step.selector)
                self.debug.debug("Select Option", f"Selecting option in: {selector}")
                await self._require_browser(step.type).select_option(selector, sub(step.option_value))
                return None

            case FileUploadStep():
                selector = sub(step.selector)
                self.debug.debug("File Upload", f"Uploading {step.file_path} to {selector}")
                await self._require_browser(step.type).upload_file(selector, sub(step.file_path))
                return None

            case HoverStep():
                selector = sub(step.selector)
                self.debug.debug("Hover", f"Hovering over element: {selector}")
                await self._require_browser(step.type).hover(selector)
                return None

            case BrowserConditionalStep():
                result = await self.evaluate_browser_conditional(step.to_condition())
                return result.condition_result

            case VariableConditionalStep():
                return self.evaluate_variable_conditional(step.to_condition()).condition_result

            case WaitStep():
                seconds = max(parse_int(sub(step.value)), 0)
                self.debug.debug("Wait", f"Waiting for {seconds} seconds")
                await asyncio.sleep(seconds)
                return None

            case SetVariableStep():
                value = self.variables.substitute_any(step.value)
                self.variables.set(step.variable_name, value)
                self.debug.debug("Variable", f"Set {step.variable_name} = {value}")
                return value

            case ApiCallStep():
                if self.http is None:
                    raise ConfigurationError("HTTP client not available for apiCall step")
                url = sub(step.url)
                self.debug.debug("API Call", f"{step.method} {url}")
                result = await send_request(
                    self.http,
                    step.method,
                    url,
                    headers={k: sub(v) for k, v in step.headers.items()},
                    body=self.variables.substitute_any(step.body),
                    timeout=self.settings.http_timeout_seconds,
                )
                if step.store_key:
                    self.variables.set(step.store_key, result)
                return result

            case AIOpenAIStep() | AIAnthropicStep() | AIOllamaStep() | AIGenerateTextStep():
                return await self._generate_text(step)

            case _:
                raise UnsupportedStepError(getattr(step, "type", type(step).__name__))

    async def _generate_text(
        self, step: AIOpenAIStep | AIAnthropicStep | AIOllamaStep | AIGenerateTextStep
    ) -> str:
        if self.ai is None:
            raise ConfigurationError("HTTP client not available for AI steps")

        if isinstance(step, AIGenerateTextStep):
            provider = step.provider
        else:
            provider = {"aiOpenAI": "openai", "aiAnthropic": "anthropic", "aiOllama": "ollama"}[step.type]

        prompt = self.variables.substitute(step.prompt)
        system_prompt = self.variables.substitute(step.system_prompt) or None
        self.debug.debug("AI", f"Generating text with {provider}", {"model": step.model})

        text = await self.ai.generate(provider, step, prompt, system_prompt)
        if step.store_key:
            self.variables.set(step.store_key, text)
            self.debug.debug("Variable", f"Set {step.store_key} from {provider}")
        return text

    def _require_browser(self, step_type: str) -> BrowserCapability:
        if self.browser is None:
            raise BrowserUnavailableError(
                f"Cannot execute step type: {step_type} - browser not available"
            )
        return self.browser
