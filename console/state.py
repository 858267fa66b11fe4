# console/state.py

"""
Client-side state: query cache keyed by filter set, debounced search,
mutations with cache invalidation, transient notifications.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .api import ApiError, TaskApiClient

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
STALE_TIME_SECONDS = 30.0
SEARCH_DEBOUNCE_SECONDS = 0.3


@dataclass(frozen=True)
class TaskFilters:
    status: str = "all"
    priority: str = "all"
    search: str = ""
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 50

    def to_params(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "priority": self.priority,
            "search": self.search,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
            "page": self.page,
            "limit": self.limit,
        }

    def key(self) -> Tuple[Any, ...]:
        return (TASKS_KEY, *asdict(self).values())


@dataclass
class QueryEntry:
    data: Dict[str, Any]
    fetched_at: float
    invalidated: bool = False
    revalidating: bool = False


class QueryCache:
    """One entry per key. Last write wins."""

    def __init__(self, stale_time: float = STALE_TIME_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.stale_time = stale_time
        self._clock = clock
        self._entries: Dict[Tuple[Any, ...], QueryEntry] = {}

    def get(self, key: Tuple[Any, ...]) -> Optional[QueryEntry]:
        return self._entries.get(key)

    def put(self, key: Tuple[Any, ...], data: Dict[str, Any]) -> QueryEntry:
        entry = QueryEntry(data=data, fetched_at=self._clock())
        self._entries[key] = entry
        return entry

    def needs_fetch(self, key: Tuple[Any, ...]) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.invalidated:
            return True
        return self._clock() - entry.fetched_at >= self.stale_time

    def mark_revalidating(self, key: Tuple[Any, ...]) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.revalidating = True

    def invalidate(self, prefix: str = TASKS_KEY) -> int:
        n = 0
        for key, entry in self._entries.items():
            if key and key[0] == prefix:
                entry.invalidated = True
                n += 1
        return n

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class Notification:
    kind: str  # "success" | "error"
    text: str
    expires_at: float


class Notifications:
    SUCCESS_SECONDS = 3.0
    ERROR_SECONDS = 4.0

    def __init__(self, clock: Callable[[], float] = time.monotonic, maxlen: int = 20) -> None:
        self._clock = clock
        self._items: Deque[Notification] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def _push(self, kind: str, text: str, ttl: float) -> None:
        with self._lock:
            self._items.append(Notification(kind=kind, text=text, expires_at=self._clock() + ttl))

    def success(self, text: str) -> None:
        self._push("success", text, self.SUCCESS_SECONDS)

    def error(self, text: str) -> None:
        logger.info("Notification (error): %s", text)
        self._push("error", text, self.ERROR_SECONDS)

    def active(self) -> List[Notification]:
        now = self._clock()
        with self._lock:
            while self._items and self._items[0].expires_at <= now:
                self._items.popleft()
            return [n for n in self._items if n.expires_at > now]


class Debouncer:
    """Run `fn` with the latest arguments once `delay` seconds pass without a new call."""

    def __init__(
        self,
        delay: float,
        fn: Callable[..., None],
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.delay = delay
        self._fn = fn
        self._timer_factory = timer_factory
        self._timer: Any = None
        self._pending: Optional[tuple] = None
        self._lock = threading.Lock()

    def __call__(self, *args: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = args
            self._timer = self._timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            args = self._pending
            self._pending = None
            self._timer = None
        if args is not None:
            self._fn(*args)

    def flush(self) -> None:
        """Run the pending call now, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
        self._fire()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    @property
    def pending(self) -> bool:
        return self._pending is not None


@dataclass
class QueryResult:
    data: Optional[Dict[str, Any]]
    stale: bool = False
    error: Optional[str] = None

    @property
    def tasks(self) -> List[Dict[str, Any]]:
        return list((self.data or {}).get("data") or [])

    @property
    def stats(self) -> Dict[str, int]:
        return dict((self.data or {}).get("stats") or {"total": 0, "todo": 0, "in-progress": 0, "completed": 0})

    @property
    def pagination(self) -> Optional[Dict[str, int]]:
        return (self.data or {}).get("pagination")


class TaskController:
    """
    Owns the filter set and the query cache.

    Mutations invalidate every cached task query on success; all failures
    end up as error notifications, never as exceptions to the caller.
    """

    def __init__(
        self,
        api: TaskApiClient,
        *,
        cache: Optional[QueryCache] = None,
        notifications: Optional[Notifications] = None,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.api = api
        self.cache = cache if cache is not None else QueryCache()
        self.notifications = notifications if notifications is not None else Notifications()
        self._filters = TaskFilters()
        self._last_data: Optional[Dict[str, Any]] = None
        self._lock = threading.RLock()
        self._search = Debouncer(debounce_seconds, self._apply_search, timer_factory=timer_factory)

    # ---- filters ----

    @property
    def filters(self) -> TaskFilters:
        with self._lock:
            return self._filters

    def set_filter(self, **changes: Any) -> TaskFilters:
        """Change any filter; always back to page 1 (use set_page to move between pages)."""
        changes.pop("page", None)
        with self._lock:
            self._filters = replace(self._filters, **changes, page=1)
            return self._filters

    def set_page(self, page: int) -> TaskFilters:
        with self._lock:
            self._filters = replace(self._filters, page=max(1, int(page)))
            return self._filters

    def search(self, term: str) -> None:
        self._search(term)

    def flush_search(self) -> None:
        self._search.flush()

    def _apply_search(self, term: str) -> None:
        self.set_filter(search=term.strip())

    # ---- queries ----

    def query(self) -> QueryResult:
        filters = self.filters
        key = filters.key()
        entry = self.cache.get(key)

        if not self.cache.needs_fetch(key) and entry is not None:
            self._last_data = entry.data
            return QueryResult(entry.data)

        if entry is not None:
            self.cache.mark_revalidating(key)

        try:
            data = self.api.get_tasks(filters.to_params())
        except ApiError as e:
            self.notifications.error(e.message or "Failed to fetch tasks")
            previous = entry.data if entry is not None else self._last_data
            return QueryResult(previous, stale=True, error=e.message)

        self.cache.put(key, data)
        self._last_data = data
        return QueryResult(data)

    # ---- mutations ----

    def _mutate(self, call: Callable[[], Dict[str, Any]], success_text: str, error_text: str) -> Optional[Dict[str, Any]]:
        try:
            body = call()
        except ApiError as e:
            self.notifications.error(e.message or error_text)
            return None
        self.cache.invalidate(TASKS_KEY)
        self.notifications.success(body.get("message") or success_text)
        return body

    def create_task(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._mutate(lambda: self.api.create_task(data), "Task created successfully", "Failed to create task")

    def update_task(self, task_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._mutate(
            lambda: self.api.update_task(task_id, data), "Task updated successfully", "Failed to update task"
        )

    def set_status(self, task_id: str, status: str) -> Optional[Dict[str, Any]]:
        return self._mutate(
            lambda: self.api.update_task_status(task_id, status),
            "Task status updated",
            "Failed to update task status",
        )

    def delete_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        return self._mutate(lambda: self.api.delete_task(task_id), "Task deleted successfully", "Failed to delete task")

    # ---- chat ----

    def send_chat(self, message: str, history: List[Dict[str, str]]) -> Optional[Dict[str, Any]]:
        try:
            return self.api.send_message(message, history)["data"]
        except ApiError as e:
            self.notifications.error(e.message or "Failed to send message")
            return None

    def suggestions(self) -> List[str]:
        try:
            return list(self.api.get_suggestions()["data"]["suggestions"])
        except ApiError as e:
            self.notifications.error(e.message or "Failed to load suggestions")
            return []
