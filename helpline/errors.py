"""
Error taxonomy for helpline.

Every error the service raises on purpose derives from HelplineError and
carries the HTTP status it maps to. Generation errors are raised only
after the retry wrapper has given up (or decided not to retry at all).
"""

from __future__ import annotations


class HelplineError(Exception):
    status_code = 500


class ValidationError(HelplineError):
    status_code = 400


class NotFoundError(HelplineError):
    status_code = 404


# ─ Store ─────────────────────────────────────────────────────────────────────

class StoreError(HelplineError):
    pass


class ConstraintViolation(StoreError):
    """Uniqueness or foreign-key constraint rejected a write."""


# ─ Cache ─────────────────────────────────────────────────────────────────────

class CacheError(HelplineError):
    """Never leaves the cache layer; logged and absorbed there."""


# ─ Generation ────────────────────────────────────────────────────────────────

class GenerationError(HelplineError):
    pass


class UpstreamAuthError(GenerationError):
    pass


class MissingCredentialError(UpstreamAuthError):
    pass


class UpstreamRateLimitError(GenerationError):
    pass


class UpstreamUnavailableError(GenerationError):
    pass


class UpstreamTimeoutError(GenerationError):
    pass


class UpstreamFormatError(GenerationError):
    """The endpoint answered but no reply text could be extracted."""
