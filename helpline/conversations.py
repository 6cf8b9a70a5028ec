"""
Conversation service.

Thin orchestration over the store: resolve a session to its conversation
(creating it lazily on first contact), append messages, read history in
order, and bump the freshness timestamp after an exchange.
"""

from __future__ import annotations

import logging

from helpline.errors import ConstraintViolation, NotFoundError, StoreError, ValidationError
from helpline.storage.models import Conversation, Message, Sender, is_session_id
from helpline.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class ConversationService:

    def __init__(self, store: SQLiteStore):
        self.store = store

    def get_or_create_conversation(self, session_id: str) -> Conversation:
        """
        Return the conversation for session_id, creating it if needed.

        Two requests for a brand-new session can race on the insert. The
        UNIQUE constraint lets exactly one win; the loser re-reads the
        winner's row once instead of failing the request.
        """
        existing = self.store.find_conversation_by_session(session_id)
        if existing:
            return existing

        try:
            conversation_id = self.store.insert_conversation(session_id)
        except ConstraintViolation:
            logger.info("Session %s created concurrently, re-reading", session_id)
            existing = self.store.find_conversation_by_session(session_id)
            if existing:
                return existing
            raise

        created = self.store.get_conversation(conversation_id)
        if created is None:
            raise StoreError(f"Conversation {conversation_id} vanished after insert")
        logger.info("New conversation %s for session %s", created.id, session_id)
        return created

    def find_conversation(self, session_id: str) -> Conversation | None:
        """Read-only lookup; never creates."""
        return self.store.find_conversation_by_session(session_id)

    def require_conversation(self, session_id: str) -> Conversation:
        """Strict lookup for operator tooling: bad id or unknown session raise."""
        if not is_session_id(session_id):
            raise ValidationError(f"Not a valid session id: {session_id}")
        conversation = self.find_conversation(session_id)
        if conversation is None:
            raise NotFoundError(f"No conversation for session {session_id}")
        return conversation

    def save_message(self, conversation_id: str, sender: Sender, text: str) -> Message:
        message_id = self.store.insert_message(conversation_id, sender, text)
        saved = self.store.get_message(message_id)
        if saved is None:
            raise StoreError(f"Message {message_id} vanished after insert")
        return saved

    def get_conversation_history(self, conversation_id: str) -> list[Message]:
        return self.store.list_messages(conversation_id)

    def update_conversation_timestamp(self, conversation_id: str) -> None:
        self.store.touch_conversation(conversation_id)
