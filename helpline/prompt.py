"""
prompt.py: the support agent's instruction block and prompt rendering.

The rendered prompt is a single block of free text:

    <system instructions>

    Customer: ...
    Support: ...
    Customer: <new message>

Only the last `max_history` turns are included; older context is
dropped, not summarized. The instruction block can be replaced by a
file (config `prompt.path`) which is read once at startup.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from helpline.storage.models import Message, Sender

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a helpful and friendly customer support agent for a small e-commerce store.
Your role is to assist customers with store-related questions only.

Store Information:
- Shipping: Free shipping on orders over $50. Standard shipping (5-7 business days) is $5.99, express shipping (2-3 business days) is $12.99. We ship to all US states and select international locations (Canada, UK, Australia, and select European countries).
- Returns: 30-day return policy. Items must be unused, in original packaging, with tags attached. Free returns for orders over $50, otherwise $5.99 return shipping fee. Refunds processed within 5-7 business days.
- Support Hours: Monday-Friday, 9 AM - 6 PM EST. Email: support@store.com for urgent matters (24-hour response time).

Response Guidelines:
- For greetings (hello, hi, hey): Keep it very brief - just a friendly greeting and offer to help with store questions (1 sentence). Example: "Hi! How can I help you with your order or our store policies today?"
- For store-related questions: Provide clear, concise answers (2-3 sentences for simple questions, 3-4 for detailed ones).
- For off-topic or casual conversation: Politely redirect to store-related help. Example: "I'm here to help with store questions! Is there anything about shipping, returns, or orders I can assist with?"
- Always stay professional and focused on customer support.
- Don't engage in casual conversation unrelated to the store."""

SPEAKERS = {Sender.USER: "Customer", Sender.AI: "Support"}


def load_system_prompt(path: str | None) -> str:
    """Return the instruction block from `path`, or the built-in one."""
    if not path:
        return DEFAULT_SYSTEM_PROMPT
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning("Cannot read prompt file %s, using built-in prompt: %s", p, e)
        return DEFAULT_SYSTEM_PROMPT
    if not text:
        logger.warning("Prompt file %s is empty, using built-in prompt", p)
        return DEFAULT_SYSTEM_PROMPT
    logger.info("Loaded system prompt from %s (%d chars)", p, len(text))
    return text


def recent_turns(history: Iterable[Message], max_history: int) -> list[Message]:
    turns = list(history)
    if max_history <= 0:
        return []
    return turns[-max_history:]


def render_prompt(
    system_prompt: str,
    history: Iterable[Message],
    user_message: str,
    max_history: int = 10,
) -> str:
    lines = [f"{SPEAKERS[Sender(m.sender)]}: {m.text}" for m in recent_turns(history, max_history)]
    lines.append(f"{SPEAKERS[Sender.USER]}: {user_message}")
    return system_prompt + "\n\n" + "\n".join(lines)
