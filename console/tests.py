import json
from datetime import datetime, timedelta, timezone

import httpx
from django.test import SimpleTestCase

from .api import ApiError, TaskApiClient
from .cli import ConsoleApp, build_parser
from .state import Debouncer, Notifications, QueryCache, TaskController, TaskFilters
from .views import (
    QUICK_PROMPTS,
    ChatWidget,
    WidgetState,
    form_payload,
    next_status,
    render_stats,
    render_task_list,
    validate_task_form,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""

    created = []

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.cancelled = False
        self.started = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn()


def _task(n, **extra):
    task = {
        "id": f"id-{n}",
        "title": f"Task {n}",
        "description": "",
        "priority": "medium",
        "status": "todo",
        "dueDate": None,
        "createdAt": "2030-01-01T00:00:00Z",
        "updatedAt": "2030-01-01T00:00:00Z",
        "isOverdue": False,
    }
    task.update(extra)
    return task


class FakeServer:
    """Minimal in-memory API behind httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.tasks = [_task(1), _task(2, status="in-progress")]
        self.fail_next = None

    def stats(self):
        out = {"total": len(self.tasks), "todo": 0, "in-progress": 0, "completed": 0}
        for t in self.tasks:
            out[t["status"]] += 1
        return out

    def __call__(self, request):
        self.requests.append(request)
        if self.fail_next is not None:
            status, error = self.fail_next
            self.fail_next = None
            return httpx.Response(status, json={"success": False, "error": error})

        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        if request.method == "GET" and path == "/api/tasks":
            return httpx.Response(200, json={
                "success": True,
                "data": self.tasks,
                "pagination": {"page": 1, "limit": 50, "total": len(self.tasks), "pages": 1},
                "stats": self.stats(),
            })
        if request.method == "POST" and path == "/api/tasks":
            task = _task(len(self.tasks) + 1, **body)
            self.tasks.append(task)
            return httpx.Response(201, json={"success": True, "data": task, "message": "Task created successfully"})
        if request.method == "PATCH" and path.endswith("/status"):
            task_id = path.split("/")[-2]
            for t in self.tasks:
                if t["id"] == task_id:
                    t["status"] = body["status"]
                    return httpx.Response(200, json={
                        "success": True, "data": t, "message": "Task status updated successfully",
                    })
            return httpx.Response(404, json={"success": False, "error": "Task not found"})
        if request.method == "DELETE":
            task_id = path.split("/")[-1]
            self.tasks = [t for t in self.tasks if t["id"] != task_id]
            return httpx.Response(200, json={
                "success": True, "data": {"id": task_id}, "message": "Task deleted successfully",
            })
        if request.method == "POST" and path == "/api/chat":
            return httpx.Response(200, json={
                "success": True, "data": {"message": f"echo: {body['message']}", "timestamp": "now"},
            })
        if request.method == "GET" and path == "/api/chat/suggestions":
            return httpx.Response(200, json={
                "success": True,
                "data": {"suggestions": ["Focus on your 1 high-priority task(s) today."], "stats": {}},
            })
        return httpx.Response(404, json={"success": False, "error": "Route not found"})

    def task_fetches(self):
        return [r for r in self.requests if r.method == "GET" and r.url.path == "/api/tasks"]


def _controller(server, clock=None):
    clock = clock or FakeClock()
    api = TaskApiClient("http://api.test/api", transport=httpx.MockTransport(server))
    return TaskController(
        api,
        cache=QueryCache(stale_time=30, clock=clock),
        notifications=Notifications(clock=clock),
        timer_factory=FakeTimer,
    )


class ApiClientTests(SimpleTestCase):

    def test_params_and_paths(self):
        server = FakeServer()
        api = TaskApiClient("http://api.test/api/", transport=httpx.MockTransport(server))
        body = api.get_tasks({"status": "todo", "search": "", "page": 2, "priority": None})
        self.assertTrue(body["success"])
        url = server.requests[-1].url
        self.assertEqual(url.path, "/api/tasks")
        self.assertEqual(dict(url.params), {"status": "todo", "page": "2"})

        api.update_task_status("id-1", "completed")
        self.assertEqual(server.requests[-1].method, "PATCH")
        self.assertEqual(server.requests[-1].url.path, "/api/tasks/id-1/status")

    def test_failure_envelope_becomes_api_error(self):
        server = FakeServer()
        server.fail_next = (400, "Validation failed")
        api = TaskApiClient("http://api.test/api", transport=httpx.MockTransport(server))
        with self.assertRaises(ApiError) as ctx:
            api.create_task({"title": ""})
        self.assertEqual(ctx.exception.message, "Validation failed")
        self.assertEqual(ctx.exception.status, 400)

    def test_transport_error(self):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        api = TaskApiClient("http://api.test/api", transport=httpx.MockTransport(boom))
        with self.assertRaises(ApiError) as ctx:
            api.get_tasks()
        self.assertIsNone(ctx.exception.status)


class QueryCacheTests(SimpleTestCase):

    def test_staleness_and_invalidation(self):
        clock = FakeClock()
        cache = QueryCache(stale_time=30, clock=clock)
        key = TaskFilters().key()
        self.assertTrue(cache.needs_fetch(key))
        cache.put(key, {"data": []})
        self.assertFalse(cache.needs_fetch(key))
        clock.now += 30
        self.assertTrue(cache.needs_fetch(key))

        cache.put(key, {"data": []})
        cache.put(TaskFilters(status="todo").key(), {"data": []})
        self.assertEqual(cache.invalidate("tasks"), 2)
        self.assertTrue(cache.needs_fetch(key))

    def test_keys_differ_per_filter_set(self):
        self.assertNotEqual(TaskFilters().key(), TaskFilters(page=2).key())
        self.assertEqual(TaskFilters().key()[0], "tasks")


class NotificationTests(SimpleTestCase):

    def test_expiry(self):
        clock = FakeClock()
        notes = Notifications(clock=clock)
        notes.success("saved")
        notes.error("broken")
        self.assertEqual([n.text for n in notes.active()], ["saved", "broken"])
        clock.now += 3
        self.assertEqual([n.text for n in notes.active()], ["broken"])
        clock.now += 1
        self.assertEqual(notes.active(), [])


class DebouncerTests(SimpleTestCase):

    def setUp(self):
        FakeTimer.created = []

    def test_only_last_call_fires(self):
        calls = []
        debounce = Debouncer(0.3, calls.append, timer_factory=FakeTimer)
        debounce("r")
        debounce("re")
        debounce("rep")
        self.assertEqual(len(FakeTimer.created), 3)
        self.assertTrue(FakeTimer.created[0].cancelled)
        self.assertTrue(FakeTimer.created[1].cancelled)
        self.assertEqual(FakeTimer.created[-1].delay, 0.3)
        self.assertTrue(debounce.pending)

        for timer in FakeTimer.created:
            timer.fire()
        self.assertEqual(calls, ["rep"])
        self.assertFalse(debounce.pending)

    def test_flush_and_cancel(self):
        calls = []
        debounce = Debouncer(0.3, calls.append, timer_factory=FakeTimer)
        debounce("a")
        debounce.flush()
        self.assertEqual(calls, ["a"])

        debounce("b")
        debounce.cancel()
        FakeTimer.created[-1].fire()
        self.assertEqual(calls, ["a"])


class ControllerTests(SimpleTestCase):

    def setUp(self):
        FakeTimer.created = []
        self.server = FakeServer()
        self.clock = FakeClock()
        self.controller = _controller(self.server, self.clock)

    def test_fresh_cache_is_reused(self):
        first = self.controller.query()
        second = self.controller.query()
        self.assertEqual(len(self.server.task_fetches()), 1)
        self.assertEqual(first.tasks, second.tasks)
        self.assertEqual(second.stats["total"], 2)

        self.clock.now += 31
        self.controller.query()
        self.assertEqual(len(self.server.task_fetches()), 2)

    def test_mutation_invalidates_and_notifies(self):
        self.controller.query()
        self.assertIsNotNone(self.controller.create_task({"title": "New"}))
        result = self.controller.query()
        self.assertEqual(len(self.server.task_fetches()), 2)
        self.assertEqual(result.stats["total"], 3)
        self.assertEqual([n.text for n in self.controller.notifications.active()], ["Task created successfully"])

    def test_mutation_failure_keeps_cache(self):
        self.controller.query()
        self.server.fail_next = (404, "Task not found")
        self.assertIsNone(self.controller.set_status("missing", "completed"))
        notes = self.controller.notifications.active()
        self.assertEqual([(n.kind, n.text) for n in notes], [("error", "Task not found")])
        self.controller.query()
        self.assertEqual(len(self.server.task_fetches()), 1)

    def test_fetch_failure_keeps_previous_data(self):
        self.controller.query()
        self.clock.now += 31
        self.server.fail_next = (500, "Failed to fetch tasks")
        result = self.controller.query()
        self.assertTrue(result.stale)
        self.assertEqual(len(result.tasks), 2)
        self.assertEqual(self.controller.notifications.active()[0].text, "Failed to fetch tasks")

    def test_filter_change_resets_page(self):
        self.controller.set_page(3)
        self.assertEqual(self.controller.filters.page, 3)
        self.controller.set_filter(status="todo")
        self.assertEqual(self.controller.filters.page, 1)
        self.assertEqual(self.controller.filters.status, "todo")

    def test_search_is_debounced(self):
        self.controller.search("rep")
        self.controller.search("report ")
        self.assertEqual(self.controller.filters.search, "")
        FakeTimer.created[-1].fire()
        self.assertEqual(self.controller.filters.search, "report")

        self.controller.query()
        params = self.server.task_fetches()[-1].url.params
        self.assertEqual(params["search"], "report")

    def test_chat_and_suggestions(self):
        self.assertEqual(self.controller.send_chat("hi", [])["message"], "echo: hi")
        self.assertEqual(len(self.controller.suggestions()), 1)

        self.server.fail_next = (429, "API quota exceeded. Please try again later.")
        self.assertIsNone(self.controller.send_chat("hi", []))
        self.assertEqual(self.controller.notifications.active()[-1].kind, "error")


class ViewTests(SimpleTestCase):

    def test_status_cycle(self):
        self.assertEqual(next_status("todo"), "in-progress")
        self.assertEqual(next_status("in-progress"), "completed")
        self.assertEqual(next_status("completed"), "todo")

    def test_form_validation(self):
        now = datetime(2030, 1, 10, tzinfo=timezone.utc)
        self.assertEqual(validate_task_form({"title": "ok"}, creating=True, now=now), {})
        self.assertIn("title", validate_task_form({}, creating=True, now=now))
        self.assertEqual(validate_task_form({}, creating=False, now=now), {})
        self.assertIn("title", validate_task_form({"title": "x" * 101}, creating=True, now=now))
        self.assertIn("description", validate_task_form({"title": "t", "description": "d" * 501}, creating=True))
        self.assertIn("priority", validate_task_form({"title": "t", "priority": "urgent"}, creating=True))
        self.assertIn("dueDate", validate_task_form({"title": "t", "dueDate": "tomorrow"}, creating=True))

        past = {"title": "t", "dueDate": "2030-01-01"}
        self.assertIn("dueDate", validate_task_form(past, creating=True, now=now))
        self.assertEqual(validate_task_form(past, creating=False, now=now), {})

    def test_form_payload_drops_blanks(self):
        self.assertEqual(form_payload(title=" T ", description="", priority="HIGH"), {"title": "T", "priority": "high"})

    def test_render(self):
        self.assertIn("No tasks found.", render_task_list([]))
        text = render_task_list(
            [_task(1, isOverdue=True, dueDate="2020-01-01T00:00:00Z"), _task(2, status="completed")],
            {"page": 1, "pages": 2, "total": 3, "limit": 2},
        )
        self.assertIn("Task 1", text)
        self.assertIn("2020-01-01 !", text)
        self.assertIn("DONE", text)
        self.assertIn("page 1/2 (3 tasks)", text)
        self.assertIn("To do", render_stats({"total": 1, "todo": 1}))


class ChatWidgetTests(SimpleTestCase):

    def setUp(self):
        FakeTimer.created = []
        self.server = FakeServer()
        self.controller = _controller(self.server)

    def test_visibility(self):
        widget = ChatWidget(task_count=2)
        self.assertEqual(widget.state, WidgetState.CLOSED)
        widget.toggle_minimized()
        self.assertEqual(widget.state, WidgetState.CLOSED)
        widget.open()
        widget.toggle_minimized()
        self.assertEqual(widget.state, WidgetState.MINIMIZED)
        widget.toggle_minimized()
        self.assertEqual(widget.state, WidgetState.OPEN)
        widget.close()
        self.assertEqual(widget.state, WidgetState.CLOSED)

    def test_welcome_mentions_task_count(self):
        widget = ChatWidget(task_count=7)
        self.assertIn("You currently have 7 tasks", widget.messages[0]["content"])

    def test_history_excludes_welcome_and_quick_prompts_hide(self):
        widget = ChatWidget()
        self.assertTrue(widget.show_quick_prompts)
        self.assertEqual(widget.send_quick_prompt(self.controller, 0), f"echo: {QUICK_PROMPTS[0]}")
        self.assertFalse(widget.show_quick_prompts)
        self.assertEqual(widget.history(), [
            {"role": "user", "content": QUICK_PROMPTS[0]},
            {"role": "assistant", "content": f"echo: {QUICK_PROMPTS[0]}"},
        ])

        widget.send(self.controller, "next")
        sent = json.loads(self.server.requests[-1].content)
        self.assertEqual(len(sent["conversationHistory"]), 2)
        self.assertEqual(sent["message"], "next")

    def test_blank_message_is_not_sent(self):
        widget = ChatWidget()
        self.assertIsNone(widget.send(self.controller, "   "))
        self.assertEqual(self.server.requests, [])

    def test_failed_reply_keeps_user_message(self):
        widget = ChatWidget()
        self.server.fail_next = (500, "Failed to process chat message")
        self.assertIsNone(widget.send(self.controller, "hello"))
        self.assertEqual(widget.messages[-1]["role"], "user")
        self.assertFalse(widget.busy)


class ConsoleAppTests(SimpleTestCase):

    def setUp(self):
        FakeTimer.created = []
        self.server = FakeServer()
        self.controller = _controller(self.server)
        self.answers = []
        self.output = []
        self.app = ConsoleApp(
            self.controller,
            input_fn=lambda prompt: self.answers.pop(0),
            output_fn=self.output.append,
        )
        self.app.refresh()

    def test_toggle_cycles_status(self):
        self.app.handle("toggle 1")
        self.assertEqual(self.server.tasks[0]["status"], "in-progress")

    def test_rm_asks_for_confirmation(self):
        self.answers = ["n"]
        self.app.handle("rm 1")
        self.assertEqual(len(self.server.tasks), 2)
        self.answers = ["y"]
        self.app.handle("rm 1")
        self.assertEqual(len(self.server.tasks), 1)

    def test_add_inline(self):
        self.app.handle("add Buy milk")
        self.assertEqual(self.server.tasks[-1]["title"], "Buy milk")

    def test_add_rejects_invalid_form_without_request(self):
        self.answers = ["", "", "", ""]
        self.app.handle("add")
        self.assertIn("  title: Title is required", self.output)
        self.assertFalse(any(r.method == "POST" for r in self.server.requests))

    def test_filters_and_unknown_command(self):
        self.app.handle("status done")
        self.assertEqual(self.controller.filters.status, "all")
        self.app.handle("status completed")
        self.assertEqual(self.controller.filters.status, "completed")
        self.app.handle("search report")
        self.assertEqual(self.controller.filters.search, "report")
        self.app.handle("sort title asc")
        self.assertEqual((self.controller.filters.sort_by, self.controller.filters.sort_order), ("title", "asc"))
        self.app.handle("frobnicate")
        self.assertEqual(self.output[-1], "Unknown command. Type 'help' for instructions.")

    def test_failed_refetch_is_flagged(self):
        clock = FakeClock()
        controller = _controller(self.server, clock)
        app = ConsoleApp(controller, input_fn=lambda prompt: "", output_fn=self.output.append)
        app.refresh()
        self.assertNotIn("revalidating", app.render())

        clock.now += 31
        self.server.fail_next = (500, "Failed to fetch tasks")
        app.refresh()
        self.assertTrue(controller.cache.get(controller.filters.key()).revalidating)
        self.assertIn("(stale, revalidating)", app.render())
        self.assertIn("Task 1", app.render())

        app.refresh()
        self.assertNotIn("revalidating", app.render())
        self.assertNotIn("stale", app.render())

    def test_render_and_run(self):
        self.assertIn("Task 1", self.app.render())
        self.answers = ["help", "exit"]
        self.app.run()
        self.assertEqual(self.output[-1], "Goodbye.")

    def test_chat_commands(self):
        self.app.handle("q1")
        self.assertEqual(self.app.chat.state, WidgetState.OPEN)
        self.assertIn("echo: Help me prioritize my tasks", self.app.render())
        self.app.handle("chat min")
        self.assertEqual(self.app.chat.state, WidgetState.MINIMIZED)
        self.app.handle("q2")
        self.assertEqual(self.output[-1], "Quick prompts are only offered before the first message.")

    def test_parser(self):
        ns = build_parser().parse_args(["--api-url", "http://x/api", "--timeout", "3"])
        self.assertEqual((ns.api_url, ns.timeout), ("http://x/api", 3.0))
