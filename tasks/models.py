import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


def validate_title(value):
    if not value or not value.strip():
        raise ValidationError("Task title is required")


class Task(models.Model):
    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"

    class Status(models.TextChoices):
        TODO = "todo", "To do"
        IN_PROGRESS = "in-progress", "In progress"
        COMPLETED = "completed", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=TITLE_MAX_LENGTH, validators=[validate_title])
    description = models.CharField(max_length=DESCRIPTION_MAX_LENGTH, blank=True, default="")
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.TODO)
    due_date = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "priority"], name="tasks_task_status_prio_idx"),
            models.Index(fields=["-created_at"], name="tasks_task_created_desc_idx"),
        ]

    def __str__(self):
        return self.title

    def overdue_at(self, now):
        if self.status == self.Status.COMPLETED or self.due_date is None:
            return False
        return self.due_date < now

    @property
    def is_overdue(self):
        # derived at read time, never stored
        return self.overdue_at(timezone.now())

    def to_dict(self):
        return {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "dueDate": self.due_date,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isOverdue": self.is_overdue,
        }
