# chat/context.py

"""
Task context for the assistant, and canned suggestions.

The context block is rebuilt on every chat turn from live aggregates; nothing
about the conversation is stored server-side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from taskmanager.errors import ValidationFailed, field_error

from tasks.models import Task
from tasks.store import RECENT_LIMIT, TaskStore

SYSTEM_INSTRUCTION = """\
You are a helpful AI assistant integrated into a task management application. You can help users with:
1. Creating and organizing tasks
2. Setting priorities and due dates
3. Breaking down complex projects into smaller tasks
4. Providing productivity tips and suggestions
5. Helping with time management
6. Suggesting task categorization
7. Analyzing current workload and providing insights

Be concise, helpful, and focused on productivity and task management. \
When users ask about creating tasks, provide structured suggestions they can easily implement."""

TODO_BACKLOG_THRESHOLD = 10


@dataclass
class TaskSnapshot:
    total: int = 0
    todo: int = 0
    in_progress: int = 0
    completed: int = 0
    recent: list[Task] = field(default_factory=list)


def take_snapshot(store: TaskStore) -> TaskSnapshot:
    counts = store.status_counts()
    return TaskSnapshot(
        total=store.count(),
        todo=counts[Task.Status.TODO],
        in_progress=counts[Task.Status.IN_PROGRESS],
        completed=counts[Task.Status.COMPLETED],
        recent=store.recent(RECENT_LIMIT),
    )


def _recent_line(task: Task) -> str:
    due = f", due {task.due_date.date().isoformat()}" if task.due_date else ""
    return f"- {task.title} ({task.status}, {task.priority} priority{due})"


def build_context(snapshot: TaskSnapshot) -> str:
    recent = "\n".join(_recent_line(t) for t in snapshot.recent) or "- (no tasks yet)"
    return (
        "Current Task Statistics:\n"
        f"- Total Tasks: {snapshot.total}\n"
        f"- Todo: {snapshot.todo}\n"
        f"- In Progress: {snapshot.in_progress}\n"
        f"- Completed: {snapshot.completed}\n"
        "\n"
        "Recent Tasks:\n"
        f"{recent}\n"
        "\n"
        f"{SYSTEM_INSTRUCTION}"
    )


def parse_history(raw: Any, max_turns: int) -> list[dict[str, str]]:
    """
    Validate conversationHistory and map it to provider roles.

    Roles must be "user" or "assistant"; anything else is rejected.
    Keeps the last `max_turns` entries.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationFailed([field_error("conversationHistory", "conversationHistory must be a list", raw)])

    errors: list[dict] = []
    history: list[dict[str, str]] = []
    for i, turn in enumerate(raw):
        if not isinstance(turn, Mapping) or not isinstance(turn.get("content"), str):
            errors.append(field_error(f"conversationHistory[{i}]", "Each turn needs a string content", turn))
            continue
        if turn.get("role") not in ("user", "assistant"):
            errors.append(field_error(f"conversationHistory[{i}].role", "Role must be user or assistant", turn.get("role")))
            continue
        history.append({"role": "user" if turn["role"] == "user" else "assistant", "content": turn["content"]})

    if errors:
        raise ValidationFailed(errors)
    if max_turns > 0:
        history = history[-max_turns:]
    return history


def build_messages(context: str, history: Iterable[dict[str, str]], message: str) -> list[dict[str, str]]:
    return [{"role": "system", "content": context}, *history, {"role": "user", "content": message}]


def build_suggestions(overdue: int, high_priority: int, todo: int) -> list[str]:
    suggestions = []
    if overdue > 0:
        suggestions.append(f"You have {overdue} overdue task(s). Consider prioritizing these first.")
    if high_priority > 0:
        suggestions.append(f"Focus on your {high_priority} high-priority task(s) today.")
    if todo > TODO_BACKLOG_THRESHOLD:
        suggestions.append("You have many pending tasks. Consider breaking them down into smaller, manageable chunks.")
    if not suggestions:
        suggestions.append("Great job staying on top of your tasks! Consider planning ahead for upcoming deadlines.")
    return suggestions
