"""Interactive console front-end for the task manager API.

The screen is redrawn after every command: notifications, stat tiles,
filters, task list, then the chat widget.
"""
from __future__ import annotations

import argparse
import logging
from typing import Any, Callable, Dict, List, Optional

from taskmanager.config import get_settings
from taskmanager.logging_setup import setup_logging

from .api import TaskApiClient
from .state import QueryResult, TaskController
from .theme import BOLD, DIM, color
from .views import (
    PRIORITIES,
    STATUSES,
    ChatWidget,
    WidgetState,
    form_payload,
    next_status,
    render_notifications,
    render_stats,
    render_task_list,
    validate_task_form,
)

logger = logging.getLogger(__name__)

SORT_FIELDS = ("createdAt", "updatedAt", "dueDate", "title", "priority", "status")

HELP = """\
Commands:
  add                       Add a task (prompts for fields)
  edit <n>                  Edit task n (blank answers keep the current value)
  toggle <n>                Cycle status of task n: todo -> in-progress -> completed -> todo
  rm <n>                    Delete task n (asks for confirmation)
  status <all|todo|in-progress|completed>
  priority <all|low|medium|high>
  search <text...>          Search title/description (no text clears the search)
  sort <field> [asc|desc]   Fields: createdAt, updatedAt, dueDate, title, priority, status
  page <n> / next / prev    Pagination
  tips                      Show suggestions for the current workload
  chat                      Open the chat widget;  chat min | chat close
  say <message...>          Send a message to the assistant
  q1..q4                    Send a quick prompt (while the chat is empty)
  refresh                   Refetch the current list
  help                      Show this help
  exit                      Quit"""


class ConsoleApp:
    def __init__(
        self,
        controller: TaskController,
        *,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ) -> None:
        self.controller = controller
        self.input = input_fn
        self.output = output_fn
        self.chat: Optional[ChatWidget] = None
        self.result = QueryResult(None)

    # -------------------- rendering --------------------

    def refresh(self) -> QueryResult:
        self.result = self.controller.query()
        return self.result

    def render(self) -> str:
        f = self.controller.filters
        entry = self.controller.cache.get(f.key())
        flags = []
        if self.result.stale:
            flags.append("stale")
        if entry is not None and entry.revalidating:
            flags.append("revalidating")
        parts = []
        notes = render_notifications(self.controller.notifications.active())
        if notes:
            parts.append(notes)
        parts.append(color("Task Manager", BOLD))
        parts.append(render_stats(self.result.stats))
        parts.append(
            color(
                f"status={f.status} priority={f.priority} search={f.search!r} "
                f"sort={f.sort_by}:{f.sort_order}" + (f" ({', '.join(flags)})" if flags else ""),
                DIM,
            )
        )
        parts.append(render_task_list(self.result.tasks, self.result.pagination))
        if self.chat is not None and self.chat.state != WidgetState.CLOSED:
            parts.append("")
            parts.append(self.chat.render())
        return "\n".join(parts)

    def run(self) -> None:
        while True:
            self.refresh()
            self.output("\n" + self.render())
            try:
                line = self.input("\n: ").strip()
            except (KeyboardInterrupt, EOFError):
                self.output("Goodbye.")
                return
            if not line:
                continue
            if line.lower() == "exit":
                self.output("Goodbye.")
                return
            self.handle(line)

    # -------------------- command dispatch --------------------

    def handle(self, line: str) -> None:
        tokens = line.split()
        cmd, args = tokens[0].lower(), tokens[1:]
        handler = {
            "help": self._cmd_help,
            "add": self._cmd_add,
            "edit": self._cmd_edit,
            "toggle": self._cmd_toggle,
            "rm": self._cmd_rm,
            "status": self._cmd_status,
            "priority": self._cmd_priority,
            "search": self._cmd_search,
            "sort": self._cmd_sort,
            "page": self._cmd_page,
            "next": self._cmd_next,
            "prev": self._cmd_prev,
            "tips": self._cmd_tips,
            "chat": self._cmd_chat,
            "say": self._cmd_say,
            "refresh": self._cmd_refresh,
        }.get(cmd)
        if handler is None and cmd[:1] == "q" and cmd[1:].isdigit():
            self._cmd_quick(int(cmd[1:]))
            return
        if handler is None:
            self.output("Unknown command. Type 'help' for instructions.")
            return
        handler(args)

    def _task_at(self, args: List[str]) -> Optional[Dict[str, Any]]:
        if len(args) != 1 or not args[0].rstrip(".").isdigit():
            self.output("Usage: <command> <n>  (n = number shown in the list)")
            return None
        n = int(args[0].rstrip("."))
        tasks = self.result.tasks
        if not 1 <= n <= len(tasks):
            self.output(f"No task #{n} on this page.")
            return None
        return tasks[n - 1]

    # ---- individual command helpers ----

    def _cmd_help(self, args: List[str]) -> None:
        self.output(HELP)

    def _ask_form(self, current: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        def ask(label: str, key: str) -> str:
            shown = f" [{current.get(key) or ''}]" if current else ""
            return self.input(f"{label}{shown}: ").strip()

        return form_payload(
            title=ask("Title", "title"),
            description=ask("Description", "description"),
            priority=ask(f"Priority ({'/'.join(PRIORITIES)})", "priority"),
            due_date=ask("Due date (YYYY-MM-DD)", "dueDate"),
        )

    def _report_form_errors(self, errors: Dict[str, str]) -> None:
        for field, msg in errors.items():
            self.output(f"  {field}: {msg}")

    def _cmd_add(self, args: List[str]) -> None:
        if args:  # inline shorthand: add <title...>
            payload = form_payload(title=" ".join(args))
        else:
            payload = self._ask_form()
        errors = validate_task_form(payload, creating=True)
        if errors:
            self._report_form_errors(errors)
            return
        self.controller.create_task(payload)

    def _cmd_edit(self, args: List[str]) -> None:
        task = self._task_at(args)
        if task is None:
            return
        payload = self._ask_form(task)
        if not payload:
            self.output("Nothing changed.")
            return
        errors = validate_task_form(payload, creating=False)
        if errors:
            self._report_form_errors(errors)
            return
        self.controller.update_task(task["id"], payload)

    def _cmd_toggle(self, args: List[str]) -> None:
        task = self._task_at(args)
        if task is not None:
            self.controller.set_status(task["id"], next_status(task["status"]))

    def _cmd_rm(self, args: List[str]) -> None:
        task = self._task_at(args)
        if task is None:
            return
        answer = self.input(f"Delete '{task['title']}'? [y/N] ").strip().lower()
        if answer in ("y", "yes"):
            self.controller.delete_task(task["id"])

    def _cmd_status(self, args: List[str]) -> None:
        value = args[0].lower() if args else "all"
        if value != "all" and value not in STATUSES:
            self.output(f"Status must be one of: all, {', '.join(STATUSES)}")
            return
        self.controller.set_filter(status=value)

    def _cmd_priority(self, args: List[str]) -> None:
        value = args[0].lower() if args else "all"
        if value != "all" and value not in PRIORITIES:
            self.output(f"Priority must be one of: all, {', '.join(PRIORITIES)}")
            return
        self.controller.set_filter(priority=value)

    def _cmd_search(self, args: List[str]) -> None:
        self.controller.search(" ".join(args))
        # a whole line was typed at once; no more keystrokes are coming
        self.controller.flush_search()

    def _cmd_sort(self, args: List[str]) -> None:
        if not args or args[0] not in SORT_FIELDS:
            self.output(f"Usage: sort <{'|'.join(SORT_FIELDS)}> [asc|desc]")
            return
        order = args[1].lower() if len(args) > 1 else "desc"
        if order not in ("asc", "desc"):
            self.output("Order must be asc or desc.")
            return
        self.controller.set_filter(sort_by=args[0], sort_order=order)

    def _cmd_page(self, args: List[str]) -> None:
        if len(args) != 1 or not args[0].isdigit():
            self.output("Usage: page <n>")
            return
        self.controller.set_page(int(args[0]))

    def _cmd_next(self, args: List[str]) -> None:
        pagination = self.result.pagination or {}
        if self.controller.filters.page < pagination.get("pages", 1):
            self.controller.set_page(self.controller.filters.page + 1)

    def _cmd_prev(self, args: List[str]) -> None:
        if self.controller.filters.page > 1:
            self.controller.set_page(self.controller.filters.page - 1)

    def _cmd_tips(self, args: List[str]) -> None:
        for s in self.controller.suggestions():
            self.output(f"* {s}")
        self.input(color("\nPress Enter to return...", DIM))

    def _ensure_chat(self) -> ChatWidget:
        if self.chat is None:
            self.chat = ChatWidget(task_count=self.result.stats.get("total", 0))
        return self.chat

    def _cmd_chat(self, args: List[str]) -> None:
        chat = self._ensure_chat()
        sub = args[0].lower() if args else ""
        if sub == "close":
            chat.close()
        elif sub in ("min", "minimize"):
            chat.toggle_minimized()
        else:
            chat.open()

    def _cmd_say(self, args: List[str]) -> None:
        chat = self._ensure_chat()
        chat.open()
        chat.send(self.controller, " ".join(args))

    def _cmd_quick(self, n: int) -> None:
        chat = self._ensure_chat()
        if not chat.show_quick_prompts:
            self.output("Quick prompts are only offered before the first message.")
            return
        chat.open()
        chat.send_quick_prompt(self.controller, n - 1)

    def _cmd_refresh(self, args: List[str]) -> None:
        self.controller.cache.invalidate()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="taskmanager-console",
        description="Console front-end for the task manager API.",
    )
    p.add_argument("--api-url", help="API base URL (default: TASKMANAGER_API_URL or http://localhost:<port>/api)")
    p.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout in seconds.")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    ns = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(log_dir=settings.log_dir, console_level=logging.WARNING, log_name="console.log")

    api_url = ns.api_url or settings.api_url
    logger.info("Console starting api=%s", api_url)
    with TaskApiClient(api_url, timeout=ns.timeout) as api:
        ConsoleApp(TaskController(api)).run()
    return 0
