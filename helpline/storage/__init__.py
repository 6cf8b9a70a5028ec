"""
Relational storage for conversations and their messages.
"""
from helpline.storage.models import Conversation, Message, Sender
from helpline.storage.sqlite_store import SQLiteStore

__all__ = ["Conversation", "Message", "Sender", "SQLiteStore"]
