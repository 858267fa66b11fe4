"""Request-shape validation for the task endpoints.

Everything here runs before the store is touched. Failures are collected
field by field and raised together as one ValidationFailed.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Mapping

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from taskmanager.errors import ValidationFailed, field_error

from .models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH, Task
from .store import SORT_FIELDS, TaskQuery

PRIORITIES = tuple(Task.Priority.values)
STATUSES = tuple(Task.Status.values)

MAX_PAGE_LIMIT = 100


def parse_due_date(value: Any) -> dt.datetime | None:
    """ISO 8601 date or date-time -> aware datetime (UTC when no offset). None if unparsable."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        parsed = parse_datetime(raw)
    except ValueError:
        return None
    if parsed is None:
        try:
            day = parse_date(raw)
        except ValueError:
            return None
        if day is None:
            return None
        parsed = dt.datetime(day.year, day.month, day.day)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt.timezone.utc)
    return parsed


def validate_task_payload(payload: Mapping[str, Any], *, partial: bool) -> dict:
    """
    Validate a create (partial=False) or update (partial=True) body.

    Returns model field kwargs. Only keys present in the payload are returned
    on update; unknown keys are ignored.
    """
    errors: list[dict] = []
    cleaned: dict[str, Any] = {}

    if "title" in payload or not partial:
        title = payload.get("title")
        if not isinstance(title, str):
            errors.append(field_error("title", "Title is required", title))
        else:
            title = title.strip()
            if not 1 <= len(title) <= TITLE_MAX_LENGTH:
                errors.append(
                    field_error("title", f"Title must be between 1 and {TITLE_MAX_LENGTH} characters", title)
                )
            else:
                cleaned["title"] = title

    if "description" in payload:
        description = payload.get("description")
        if description is None:
            cleaned["description"] = ""
        elif not isinstance(description, str):
            errors.append(field_error("description", "Description must be a string", description))
        else:
            description = description.strip()
            if len(description) > DESCRIPTION_MAX_LENGTH:
                errors.append(
                    field_error(
                        "description",
                        f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters",
                        description,
                    )
                )
            else:
                cleaned["description"] = description

    if "priority" in payload:
        priority = payload.get("priority")
        if priority not in PRIORITIES:
            errors.append(field_error("priority", "Priority must be low, medium, or high", priority))
        else:
            cleaned["priority"] = priority

    if "status" in payload:
        status = payload.get("status")
        if status not in STATUSES:
            errors.append(field_error("status", "Status must be todo, in-progress, or completed", status))
        else:
            cleaned["status"] = status

    if "dueDate" in payload:
        raw_due = payload.get("dueDate")
        if raw_due is None or raw_due == "":
            cleaned["due_date"] = None
        else:
            due = parse_due_date(raw_due)
            if due is None:
                errors.append(field_error("dueDate", "Due date must be a valid date", raw_due))
            else:
                cleaned["due_date"] = due

    if errors:
        raise ValidationFailed(errors)
    return cleaned


def validate_status(payload: Mapping[str, Any]) -> str:
    status = payload.get("status")
    if status not in STATUSES:
        raise ValidationFailed(
            [field_error("status", "Status must be todo, in-progress, or completed", status)],
            message="Invalid status value",
        )
    return status


def _positive_int(params: Mapping[str, str], name: str, default: int, errors: list[dict], upper: int | None = None) -> int:
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        errors.append(field_error(name, f"{name} must be a positive integer", raw))
        return default
    if value < 1 or (upper is not None and value > upper):
        bound = f" between 1 and {upper}" if upper is not None else " positive"
        errors.append(field_error(name, f"{name} must be{bound}", raw))
        return default
    return value


def parse_list_query(params: Mapping[str, str]) -> TaskQuery:
    """GET /tasks query string -> TaskQuery."""
    errors: list[dict] = []

    status = (params.get("status") or "").strip()
    if status in ("", "all"):
        status = None
    elif status not in STATUSES:
        errors.append(field_error("status", "Status must be todo, in-progress, or completed", status))

    priority = (params.get("priority") or "").strip()
    if priority in ("", "all"):
        priority = None
    elif priority not in PRIORITIES:
        errors.append(field_error("priority", "Priority must be low, medium, or high", priority))

    search = (params.get("search") or "").strip() or None

    sort_by = params.get("sortBy") or "createdAt"
    if sort_by not in SORT_FIELDS:
        errors.append(field_error("sortBy", f"sortBy must be one of: {', '.join(SORT_FIELDS)}", sort_by))

    sort_order = (params.get("sortOrder") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        errors.append(field_error("sortOrder", "sortOrder must be asc or desc", sort_order))

    page = _positive_int(params, "page", 1, errors)
    limit = _positive_int(params, "limit", 50, errors, upper=MAX_PAGE_LIMIT)

    if errors:
        raise ValidationFailed(errors)

    return TaskQuery(
        status=status,
        priority=priority,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
