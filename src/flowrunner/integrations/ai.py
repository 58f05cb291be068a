"""AI provider calls (OpenAI, Anthropic, Ollama) over a shared httpx client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx

from ..errors import ConfigurationError, StepExecutionError
from ..workflow.steps import AIStepFields

if TYPE_CHECKING:
    from ..config import Settings

ANTHROPIC_VERSION = "2023-06-01"


class CredentialProvider(Protocol):
    """Resolves a stored credential id to its secret. Owned by the settings layer."""

    def get_secret(self, credential_id: str) -> str | None: ...


class AIClient:
    """Sends one prompt to a provider and returns the generated text.

    Key resolution order: ``credentialId`` through the credential provider,
    then the step's inline ``apiKey``, then the provider key from Settings.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        credentials: CredentialProvider | None = None,
    ) -> None:
        self.settings = settings
        self.http = http_client
        self.credentials = credentials

    async def generate(self, provider: str, step: AIStepFields, prompt: str, system_prompt: str | None) -> str:
        if provider == "openai":
            return await self._openai(step, prompt, system_prompt)
        if provider == "anthropic":
            return await self._anthropic(step, prompt, system_prompt)
        if provider == "ollama":
            return await self._ollama(step, prompt, system_prompt)
        raise ConfigurationError(f"Unknown AI provider: {provider}")

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def _openai(self, step: AIStepFields, prompt: str, system_prompt: str | None) -> str:
        api_key = self._resolve_key(step, self.settings.openai_api_key, "openai")
        base_url = (step.base_url or self.settings.openai_base_url).rstrip("/")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: dict = {
            "model": step.model or "gpt-4o-mini",
            "messages": messages,
            "temperature": step.temperature,
            "max_tokens": step.max_tokens,
        }
        if step.top_p is not None:
            payload["top_p"] = step.top_p

        data = await self._post(
            f"{base_url}/chat/completions",
            step,
            headers={"Authorization": f"Bearer {api_key}"},
            payload=payload,
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise StepExecutionError("Unexpected OpenAI response shape", "ai_provider_error") from e

    async def _anthropic(self, step: AIStepFields, prompt: str, system_prompt: str | None) -> str:
        api_key = self._resolve_key(step, self.settings.anthropic_api_key, "anthropic")
        base_url = (step.base_url or self.settings.anthropic_base_url).rstrip("/")

        payload: dict = {
            "model": step.model or "claude-3-5-haiku-latest",
            "max_tokens": step.max_tokens,
            "temperature": step.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        if step.top_p is not None:
            payload["top_p"] = step.top_p

        data = await self._post(
            f"{base_url}/v1/messages",
            step,
            headers={"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION},
            payload=payload,
        )
        blocks = data.get("content") or []
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")

    async def _ollama(self, step: AIStepFields, prompt: str, system_prompt: str | None) -> str:
        base_url = (step.base_url or self.settings.ollama_base_url).rstrip("/")

        options: dict = {"temperature": step.temperature, "num_predict": step.max_tokens}
        if step.top_p is not None:
            options["top_p"] = step.top_p
        payload: dict = {
            "model": step.model or "llama3",
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system_prompt:
            payload["system"] = system_prompt

        data = await self._post(f"{base_url}/api/generate", step, headers={}, payload=payload)
        return data.get("response", "")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_key(self, step: AIStepFields, fallback: str | None, provider: str) -> str:
        if step.credential_id and self.credentials is not None:
            secret = self.credentials.get_secret(step.credential_id)
            if secret:
                return secret
        key = step.api_key or fallback
        if not key:
            raise ConfigurationError(f"No API key configured for {provider}")
        return key

    async def _post(self, url: str, step: AIStepFields, headers: dict, payload: dict) -> dict:
        timeout = step.timeout_ms / 1000 if step.timeout_ms else self.settings.http_timeout_seconds
        try:
            resp = await self.http.post(url, headers=headers, json=payload, timeout=timeout)
        except httpx.TimeoutException as e:
            raise StepExecutionError(f"AI request timed out: {url}", "timeout") from e
        except httpx.HTTPError as e:
            raise StepExecutionError(f"AI request failed: {e}", "ai_provider_error") from e

        if resp.status_code >= 400:
            raise StepExecutionError(
                f"AI provider returned HTTP {resp.status_code}: {resp.text[:200]}",
                "ai_provider_error",
            )
        return resp.json()
