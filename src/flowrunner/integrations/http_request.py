"""Generic HTTP request step."""

from __future__ import annotations

from typing import Any

import httpx

from ..errors import StepExecutionError


async def send_request(
    http_client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: Any = None,
    timeout: float = 30.0,
) -> Any:
    """Send a request and return the decoded JSON body, or the text when it is not JSON."""
    kwargs: dict[str, Any] = {"headers": headers or {}, "timeout": timeout}
    if body is not None and method != "GET":
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        else:
            kwargs["content"] = str(body)

    try:
        resp = await http_client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise StepExecutionError(f"Request timed out: {method} {url}", "timeout") from e
    except httpx.HTTPError as e:
        raise StepExecutionError(f"Request failed: {method} {url}: {e}", "http_error") from e

    if resp.status_code >= 400:
        raise StepExecutionError(
            f"{method} {url} returned HTTP {resp.status_code}",
            "http_error",
        )

    try:
        return resp.json()
    except ValueError:
        return resp.text
