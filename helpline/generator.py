"""
Reply generator: bounded-context prompt in, support reply out.
"""

from __future__ import annotations

import logging
from typing import Sequence

from helpline.backends.responses import ResponsesBackend
from helpline.backends.retry_wrapper import RetryableBackendWrapper
from helpline.config import Settings
from helpline.prompt import DEFAULT_SYSTEM_PROMPT, load_system_prompt, render_prompt
from helpline.storage.models import Message

logger = logging.getLogger(__name__)


class ReplyGenerator:

    def __init__(
        self,
        backend: RetryableBackendWrapper,
        max_history: int = 10,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self.backend = backend
        self.max_history = max_history
        self.system_prompt = system_prompt

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReplyGenerator":
        backend = ResponsesBackend(
            name="responses",
            url=settings.llm_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            store=settings.llm_store,
            timeout=settings.llm_timeout,
        )
        wrapped = RetryableBackendWrapper(
            backend,
            max_attempts=settings.llm_max_attempts,
            base_delay=settings.llm_retry_base_delay,
        )
        return cls(
            wrapped,
            max_history=settings.max_history,
            system_prompt=load_system_prompt(settings.prompt_path),
        )

    def build_prompt(self, history: Sequence[Message], user_message: str) -> str:
        return render_prompt(self.system_prompt, history, user_message, self.max_history)

    async def generate_reply(self, history: Sequence[Message], user_message: str) -> str:
        """Generate a reply. Raises GenerationError (or a subclass) on failure."""
        prompt = self.build_prompt(history, user_message)
        logger.debug(
            "Generating reply (%d of %d history turns, %d prompt chars)",
            min(len(history), max(self.max_history, 0)), len(history), len(prompt),
        )
        return await self.backend.generate(prompt)
