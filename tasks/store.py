from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from django.core.exceptions import ValidationError
from django.db.models import Case, Count, F, IntegerField, Q, QuerySet, Value, When
from django.utils import timezone

from taskmanager.errors import NotFound, ValidationFailed, field_error

from .models import Task

logger = logging.getLogger(__name__)

# wire name -> model field
SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
}

# wire name <- model field, for error details
_WIRE_NAMES = {v: k for k, v in SORT_FIELDS.items()}

_RANKS = {
    "priority": [Task.Priority.LOW, Task.Priority.MEDIUM, Task.Priority.HIGH],
    "status": [Task.Status.TODO, Task.Status.IN_PROGRESS, Task.Status.COMPLETED],
}

RECENT_LIMIT = 5


@dataclass(frozen=True)
class TaskQuery:
    """One filter set: exact status/priority, text search, single-field sort, offset paging."""

    status: Optional[str] = None
    priority: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 50

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class TaskPage:
    tasks: list[Task]
    total: int
    page: int
    limit: int
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}


def _parse_id(task_id: Any) -> uuid.UUID | None:
    if isinstance(task_id, uuid.UUID):
        return task_id
    try:
        return uuid.UUID(str(task_id))
    except (TypeError, ValueError):
        return None


class TaskStore:
    """
    Persistence adapter for Task.

    Every method is a single query (or a read followed by one write); per-row
    atomicity comes from the database, there is no explicit locking.
    """

    not_found_message = "Task not found"

    def __init__(self, queryset: QuerySet | None = None) -> None:
        self._qs = queryset if queryset is not None else Task.objects.all()

    # ---- helpers ----

    def _all(self) -> QuerySet:
        return self._qs.all()

    def _get(self, task_id: Any) -> Task:
        pk = _parse_id(task_id)
        if pk is None:
            raise NotFound(self.not_found_message)
        try:
            return self._all().get(pk=pk)
        except Task.DoesNotExist:
            raise NotFound(self.not_found_message) from None

    @staticmethod
    def _full_clean(task: Task) -> None:
        try:
            task.full_clean()
        except ValidationError as e:
            errors = []
            for name, messages in e.message_dict.items():
                for msg in messages:
                    errors.append(field_error(_WIRE_NAMES.get(name, name), msg, getattr(task, name, None)))
            raise ValidationFailed(errors) from e

    @staticmethod
    def _ordering(query: TaskQuery, qs: QuerySet) -> QuerySet:
        model_field = SORT_FIELDS.get(query.sort_by, "created_at")
        desc = query.sort_order == "desc"

        # priority and status sort by rank, not alphabetically
        if model_field in _RANKS:
            rank_name = f"{model_field}_rank"
            whens = [When(**{model_field: v}, then=Value(i)) for i, v in enumerate(_RANKS[model_field])]
            qs = qs.annotate(
                **{rank_name: Case(*whens, default=Value(len(whens)), output_field=IntegerField())}
            )
            model_field = rank_name

        expr = F(model_field)
        order = expr.desc(nulls_last=True) if desc else expr.asc(nulls_last=True)
        return qs.order_by(order, "-pk" if desc else "pk")

    # ---- queries ----

    def list(self, query: TaskQuery) -> TaskPage:
        qs = self._all()
        if query.status:
            qs = qs.filter(status=query.status)
        if query.priority:
            qs = qs.filter(priority=query.priority)
        if query.search:
            qs = qs.filter(Q(title__icontains=query.search) | Q(description__icontains=query.search))

        total = qs.count()
        tasks = list(self._ordering(query, qs)[query.skip : query.skip + query.limit])

        counts = self.status_counts()
        stats = {
            "total": total,
            Task.Status.TODO.value: counts[Task.Status.TODO],
            Task.Status.IN_PROGRESS.value: counts[Task.Status.IN_PROGRESS],
            Task.Status.COMPLETED.value: counts[Task.Status.COMPLETED],
        }
        return TaskPage(tasks=tasks, total=total, page=query.page, limit=query.limit, stats=stats)

    def get_by_id(self, task_id: Any) -> Task:
        return self._get(task_id)

    def status_counts(self) -> dict[str, int]:
        counts = {s: 0 for s in Task.Status.values}
        for row in self._all().order_by().values("status").annotate(count=Count("pk")):
            counts[row["status"]] = row["count"]
        return counts

    def count(self) -> int:
        return self._all().count()

    def recent(self, limit: int = RECENT_LIMIT) -> list[Task]:
        return list(self._all().order_by("-created_at", "-pk")[:limit])

    def overdue_count(self, now: datetime | None = None) -> int:
        now = now or timezone.now()
        return self._all().filter(due_date__lt=now).exclude(status=Task.Status.COMPLETED).count()

    def open_high_priority_count(self) -> int:
        return self._all().filter(priority=Task.Priority.HIGH).exclude(status=Task.Status.COMPLETED).count()

    # ---- mutations ----

    def create(self, fields: dict[str, Any], *, now: datetime | None = None) -> Task:
        now = now or timezone.now()
        due = fields.get("due_date")
        if due is not None and due < now:
            raise ValidationFailed([field_error("dueDate", "Due date cannot be in the past", due.isoformat())])

        task = Task(**fields)
        self._full_clean(task)
        task.save()
        logger.info("Task created id=%s status=%s priority=%s", task.id, task.status, task.priority)
        return task

    def update_by_id(self, task_id: Any, fields: dict[str, Any]) -> Task:
        task = self._get(task_id)
        for name, value in fields.items():
            setattr(task, name, value)
        self._full_clean(task)
        task.save()
        logger.info("Task updated id=%s fields=%s", task.id, sorted(fields))
        return task

    def update_status(self, task_id: Any, status: str) -> Task:
        if status not in Task.Status.values:
            raise ValidationFailed(
                [field_error("status", "Status must be todo, in-progress, or completed", status)],
                message="Invalid status value",
            )
        task = self._get(task_id)
        task.status = status
        task.save(update_fields=["status", "updated_at"])
        logger.info("Task status id=%s status=%s", task.id, status)
        return task

    def delete_by_id(self, task_id: Any) -> None:
        pk = _parse_id(task_id)
        if pk is None:
            raise NotFound(self.not_found_message)
        deleted, _ = self._all().filter(pk=pk).delete()
        if not deleted:
            raise NotFound(self.not_found_message)
        logger.info("Task deleted id=%s", pk)
