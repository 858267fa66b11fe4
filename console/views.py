# console/views.py

"""
Rendering for the console client: stat tiles, task list, form checks and
the chat widget. Functions here only read state and return text; all I/O
lives in console.cli.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .state import Notification, TaskController
from .theme import BOLD, DIM, MAGENTA, NOTIFICATION_COLOR, PRIORITY_COLOR, RED, STATUS_COLOR, color

STATUSES = ("todo", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")

# mirrors of the server-side constraints
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

STATUS_CYCLE = {
    "todo": "in-progress",
    "in-progress": "completed",
    "completed": "todo",
}

STATUS_LABEL = {
    "todo": "TODO",
    "in-progress": "DOING",
    "completed": "DONE",
}


def next_status(status: str) -> str:
    """todo -> in-progress -> completed -> todo. Unknown values restart the cycle."""
    return STATUS_CYCLE.get(status, "todo")


def _parse_dt(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# -------------------- stat tiles --------------------


def render_stats(stats: Dict[str, int]) -> str:
    tiles = [
        ("Total", stats.get("total", 0), BOLD),
        ("To do", stats.get("todo", 0), STATUS_COLOR["todo"]),
        ("In progress", stats.get("in-progress", 0), STATUS_COLOR["in-progress"]),
        ("Completed", stats.get("completed", 0), STATUS_COLOR["completed"]),
    ]
    return "  ".join(f"[{color(str(value), style)} {label}]" for label, value, style in tiles)


# -------------------- task list --------------------


def render_task_line(index: int, task: Dict[str, Any]) -> str:
    status = task.get("status", "todo")
    priority = task.get("priority", "medium")
    badge = color(f"{STATUS_LABEL.get(status, status):<5}", STATUS_COLOR.get(status, ""))
    prio = color(f"{priority:<6}", PRIORITY_COLOR.get(priority, ""))

    due = _parse_dt(task.get("dueDate"))
    due_text = due.date().isoformat() if due else ""
    if task.get("isOverdue"):
        due_text = color(f"{due_text} !", RED)
    else:
        due_text = f"{due_text:<12}"

    line = f"{index:>3}. {badge} {prio} {due_text:<12} {task.get('title', '')}"
    if task.get("description"):
        line += color(f"  - {task['description'][:60]}", DIM)
    return line


def render_task_list(tasks: List[Dict[str, Any]], pagination: Optional[Dict[str, int]] = None) -> str:
    if not tasks:
        return color("No tasks found.", DIM)
    lines = [render_task_line(i, t) for i, t in enumerate(tasks, start=1)]
    if pagination and pagination.get("pages", 0) > 1:
        lines.append(
            color(
                f"page {pagination['page']}/{pagination['pages']} ({pagination['total']} tasks)",
                DIM,
            )
        )
    return "\n".join(lines)


def render_notifications(items: List[Notification]) -> str:
    return "\n".join(color(("✓ " if n.kind == "success" else "✗ ") + n.text, NOTIFICATION_COLOR.get(n.kind, "")) for n in items)


# -------------------- form --------------------


def validate_task_form(data: Dict[str, Any], *, creating: bool, now: Optional[datetime] = None) -> Dict[str, str]:
    """
    Client-side checks before anything is sent. Returns {field: message};
    empty means the form can be submitted. The server validates again.
    """
    errors: Dict[str, str] = {}

    if "title" in data or creating:
        title = (data.get("title") or "").strip()
        if not title:
            errors["title"] = "Title is required"
        elif len(title) > TITLE_MAX_LENGTH:
            errors["title"] = f"Title cannot be more than {TITLE_MAX_LENGTH} characters"

    description = (data.get("description") or "").strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters"

    if data.get("priority") is not None and data["priority"] not in PRIORITIES:
        errors["priority"] = "Priority must be low, medium, or high"

    if data.get("status") is not None and data["status"] not in STATUSES:
        errors["status"] = "Status must be todo, in-progress, or completed"

    raw_due = data.get("dueDate")
    if raw_due:
        due = _parse_dt(raw_due)
        if due is None:
            errors["dueDate"] = "Due date must be a valid date (YYYY-MM-DD)"
        elif creating and due < (now or datetime.now(timezone.utc)):
            errors["dueDate"] = "Due date cannot be in the past"

    return errors


def form_payload(
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    due_date: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    """Drop blank answers so an edit only sends what the user changed."""
    payload: Dict[str, Any] = {}
    if title:
        payload["title"] = title.strip()
    if description:
        payload["description"] = description.strip()
    if priority:
        payload["priority"] = priority.strip().lower()
    if due_date:
        payload["dueDate"] = due_date.strip()
    if status:
        payload["status"] = status.strip().lower()
    return payload


# -------------------- chat widget --------------------


class WidgetState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    MINIMIZED = "minimized"


QUICK_PROMPTS = (
    "Help me prioritize my tasks",
    "Break down a complex project",
    "Suggest a daily routine",
    "Tips for better productivity",
)


def welcome_message(task_count: int) -> str:
    return (
        "Hi! I'm your AI task management assistant. I can help you with:\n"
        "\n"
        "• Creating and organizing tasks\n"
        "• Setting priorities and deadlines\n"
        "• Breaking down complex projects\n"
        "• Productivity tips and suggestions\n"
        "• Time management advice\n"
        "\n"
        f"You currently have {task_count} tasks. How can I help you today?"
    )


class ChatWidget:
    """Chat log and visibility. The log lives only here, never on the server."""

    def __init__(self, task_count: int = 0) -> None:
        self.state = WidgetState.CLOSED
        self.messages: List[Dict[str, str]] = [
            {"role": "assistant", "content": welcome_message(task_count), "id": "welcome"}
        ]
        self.busy = False

    # ---- visibility ----

    def open(self) -> None:
        self.state = WidgetState.OPEN

    def close(self) -> None:
        self.state = WidgetState.CLOSED

    def toggle_minimized(self) -> None:
        if self.state == WidgetState.CLOSED:
            return
        self.state = WidgetState.OPEN if self.state == WidgetState.MINIMIZED else WidgetState.MINIMIZED

    @property
    def show_quick_prompts(self) -> bool:
        return len(self.messages) <= 1

    # ---- conversation ----

    def history(self) -> List[Dict[str, str]]:
        return [{"role": m["role"], "content": m["content"]} for m in self.messages if m.get("id") != "welcome"]

    def send(self, controller: TaskController, text: str) -> Optional[str]:
        text = text.strip()
        if not text or self.busy:
            return None
        history = self.history()
        self.messages.append(
            {"role": "user", "content": text, "timestamp": datetime.now(timezone.utc).isoformat()}
        )
        self.busy = True
        try:
            data = controller.send_chat(text, history)
        finally:
            self.busy = False
        if data is None:
            return None
        self.messages.append(
            {"role": "assistant", "content": data["message"], "timestamp": data.get("timestamp", "")}
        )
        return data["message"]

    def send_quick_prompt(self, controller: TaskController, index: int) -> Optional[str]:
        if not 0 <= index < len(QUICK_PROMPTS):
            return None
        return self.send(controller, QUICK_PROMPTS[index])

    # ---- rendering ----

    def render(self) -> str:
        if self.state == WidgetState.CLOSED:
            return color("(chat closed - type 'chat' to open)", DIM)
        header = color("AI Assistant", MAGENTA, BOLD)
        if self.state == WidgetState.MINIMIZED:
            return f"{header} {color('(minimized)', DIM)}"

        lines = [header, color("-" * 40, DIM)]
        for m in self.messages:
            who = "you" if m["role"] == "user" else "bot"
            lines.append(f"{color(who + ':', BOLD)} {m['content']}")
        if self.busy:
            lines.append(color("bot: ...", DIM))
        if self.show_quick_prompts:
            lines.append(color("Quick suggestions:", DIM))
            lines.extend(f"  q{i + 1}. {p}" for i, p in enumerate(QUICK_PROMPTS))
        return "\n".join(lines)
