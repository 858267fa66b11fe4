from __future__ import annotations

from typing import Any


def field_error(field: str, message: str, value: Any = None) -> dict:
    return {"field": field, "message": message, "value": value}


class ValidationFailed(Exception):
    """Request input rejected before reaching the store. Maps to 400."""

    def __init__(self, errors: list[dict], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors


class NotFound(LookupError):
    """No record matches the requested id. Maps to 404."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)
        self.message = message
