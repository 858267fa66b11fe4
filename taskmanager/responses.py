# taskmanager/responses.py

"""
Uniform JSON envelopes.

    success: {"success": true, "data": ..., "message"?, "pagination"?, "stats"?}
    failure: {"success": false, "error": "...", "details"?}
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Callable

from django.conf import settings
from django.http import HttpRequest, JsonResponse

from .errors import NotFound, ValidationFailed, field_error

logger = logging.getLogger(__name__)


def ok(
    data: Any = None,
    *,
    status: int = 200,
    message: str | None = None,
    pagination: dict | None = None,
    stats: dict | None = None,
) -> JsonResponse:
    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    if stats is not None:
        body["stats"] = stats
    return JsonResponse(body, status=status)


def fail(error: str, *, status: int, details: Any = None) -> JsonResponse:
    body: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return JsonResponse(body, status=status)


def method_not_allowed(request: HttpRequest, allowed: list[str]) -> JsonResponse:
    resp = fail(f"Method {request.method} not allowed", status=405)
    resp["Allow"] = ", ".join(allowed)
    return resp


def parse_json_body(request: HttpRequest) -> dict:
    """Decode a JSON object body. Empty body -> {}."""
    raw = request.body.decode("utf-8") if request.body else ""
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise ValidationFailed([field_error("body", f"Invalid JSON: {e}")], message="Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise ValidationFailed([field_error("body", "Request body must be a JSON object")], message="Invalid JSON body")
    return payload


def api_view(failure_message: str) -> Callable:
    """
    Outermost boundary of a handler: nothing propagates past it.

    ValidationFailed -> 400, NotFound -> 404, anything else -> 500 with
    `failure_message` (exception text in `details` only when DEBUG is on).
    """

    def decorator(view: Callable[..., JsonResponse]) -> Callable[..., JsonResponse]:
        @functools.wraps(view)
        def wrapper(request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
            try:
                return view(request, *args, **kwargs)
            except ValidationFailed as e:
                return fail(e.message, status=400, details=e.errors)
            except NotFound as e:
                return fail(e.message, status=404)
            except Exception as e:
                logger.exception("%s (%s %s)", failure_message, request.method, request.path)
                return fail(failure_message, status=500, details=str(e) if settings.DEBUG else None)

        return wrapper

    return decorator
