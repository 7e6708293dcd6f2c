"""
Error taxonomy for the stock engine.

Every error carries an HTTP status code so routes can translate it without
re-deriving the category. Messages are user-facing: callers show them
verbatim ("No changes detected", "Return 12 has status: POST").
"""

from __future__ import annotations


class StockEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StockEngineError):
    """Referenced product/sale/supply/return does not exist."""

    status_code = 404


class ValidationError(StockEngineError, ValueError):
    """400-level input problem."""

    status_code = 400


class NoOpError(ValidationError):
    """A zero-sum edit is not a valid adjustment."""

    def __init__(self, message: str = "No changes detected"):
        super().__init__(message)


class InvalidStateError(StockEngineError):
    """Illegal return-state transition."""

    status_code = 409


class ConflictError(StockEngineError):
    """409-level duplicate (e.g. an idempotency key the store has already seen)."""

    status_code = 409

    def __init__(self, message: str, *, existing_id: int | None = None):
        super().__init__(message)
        self.existing_id = existing_id


class UpstreamError(StockEngineError):
    """Persistence/transport failure; message is passed through verbatim."""

    status_code = 502
