"""
OpenAI Responses API backend.

POSTs a single free-text prompt to {url}/v1/responses with a bearer
credential. Works against any endpoint that speaks the same request
shape ({"model", "input", "store"}) and returns either the structured
`output` list or a plain top-level `text` field.
"""

from __future__ import annotations

import logging
import time

import httpx

from helpline.backends.base import (
    CREDENTIALS,
    EMPTY,
    EMPTY_REPLY,
    NETWORK,
    TIMEOUT,
    BackendResponse,
    BaseBackend,
)

logger = logging.getLogger(__name__)


class ResponsesBackend(BaseBackend):
    """Backend for the /v1/responses endpoint."""

    def __init__(
        self,
        name: str,
        url: str,
        api_key: str = "",
        model: str = "gpt-5-nano",
        store: bool = True,
        timeout: float = 60,
    ):
        super().__init__(name=name, url=url, timeout=timeout, api_key=api_key)
        self.model = model
        self.store = store

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _body(self, prompt: str) -> dict:
        return {"model": self.model, "input": prompt, "store": self.store}

    async def generate(self, prompt: str) -> BackendResponse:
        if not self.api_key:
            return BackendResponse(
                ok=False, status_code=0, backend_name=self.name,
                error="API key is not configured", error_kind=CREDENTIALS,
            )

        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/v1/responses",
                    headers=self._headers(),
                    json=self._body(prompt),
                )
                latency = (time.monotonic() - t0) * 1000

                if resp.status_code >= 400:
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        latency_ms=latency,
                        error=self._error_detail(resp),
                    )

                try:
                    data = resp.json()
                except ValueError:
                    data = None
                if not isinstance(data, dict):
                    logger.warning("Backend '%s' returned a non-object body (HTTP %d)", self.name, resp.status_code)
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        latency_ms=latency,
                        error=EMPTY_REPLY,
                        error_kind=EMPTY,
                    )

                return BackendResponse(
                    ok=True,
                    status_code=resp.status_code,
                    data=data,
                    backend_name=self.name,
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Backend '%s' timed out after %.0fms", self.name, latency)
            return BackendResponse(
                ok=False, status_code=0, backend_name=self.name, latency_ms=latency,
                error=f"Timeout after {self.timeout}s", error_kind=TIMEOUT,
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False, status_code=0, backend_name=self.name, latency_ms=latency,
                error=str(e) or e.__class__.__name__, error_kind=NETWORK,
            )

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        """`API error: <status> - <provider message or body excerpt>`."""
        detail = ""
        try:
            payload = resp.json()
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                detail = payload["error"].get("message", "")
        except ValueError:
            pass
        return f"API error: {resp.status_code} - {detail or resp.text[:200] or resp.reason_phrase}"
