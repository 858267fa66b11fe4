import uuid

from django.db import migrations, models

import tasks.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Task",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=100, validators=[tasks.models.validate_title])),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                (
                    "priority",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High")],
                        default="medium",
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("todo", "To do"), ("in-progress", "In progress"), ("completed", "Completed")],
                        default="todo",
                        max_length=20,
                    ),
                ),
                ("due_date", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "priority"], name="tasks_task_status_prio_idx"),
                    models.Index(fields=["-created_at"], name="tasks_task_created_desc_idx"),
                ],
            },
        ),
    ]
