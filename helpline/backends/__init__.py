"""
Text-generation backends for helpline.
A backend sends one prompt; the retry wrapper classifies and retries.
"""
from helpline.backends.base import BaseBackend, BackendResponse
from helpline.backends.responses import ResponsesBackend
from helpline.backends.retry_wrapper import RetryableBackendWrapper

__all__ = [
    "BaseBackend",
    "BackendResponse",
    "ResponsesBackend",
    "RetryableBackendWrapper",
]
