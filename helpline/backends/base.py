"""
Base backend abstraction.
A backend sends one rendered prompt to a text-generation endpoint and
reports what happened as a BackendResponse. Backends never raise;
classifying failures and retrying is the retry wrapper's job.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# error_kind values
TIMEOUT = "timeout"
NETWORK = "network"
CREDENTIALS = "credentials"
EMPTY = "empty"

EMPTY_REPLY = "Empty response from LLM - could not extract text"


@dataclass
class BackendResponse:
    """Standardized response from any backend."""
    ok: bool
    status_code: int = 200
    data: dict = field(default_factory=dict)
    backend_name: str = ""
    latency_ms: float = 0.0
    error: str = ""
    error_kind: str = ""

    @property
    def text(self) -> str:
        """
        Extract reply text from the response data.

        Structured form first: the first completed "message" entry in
        `output`, then its first "output_text" content entry. Falls back
        to a top-level string `text` field. Empty string if neither.
        """
        if not isinstance(self.data, dict):
            return ""
        output = self.data.get("output")
        if isinstance(output, list):
            message = next(
                (
                    item for item in output
                    if isinstance(item, dict)
                    and item.get("type") == "message"
                    and item.get("status") == "completed"
                ),
                None,
            )
            content = message.get("content") if message else None
            if isinstance(content, list):
                part = next(
                    (c for c in content if isinstance(c, dict) and c.get("type") == "output_text"),
                    None,
                )
                if part and isinstance(part.get("text"), str) and part["text"].strip():
                    return part["text"].strip()

        fallback = self.data.get("text")
        if isinstance(fallback, str):
            return fallback.strip()
        return ""


class BaseBackend(abc.ABC):
    """
    Abstract base for generation backends.
    Each backend knows how to send one prompt to its endpoint.
    """

    def __init__(self, name: str, url: str, timeout: float = 60, api_key: str = ""):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key

    @abc.abstractmethod
    async def generate(self, prompt: str) -> BackendResponse:
        """Send a single free-text prompt. Returns BackendResponse with data or error."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
