import json
import math
import uuid
from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from taskmanager.errors import NotFound, ValidationFailed

from .models import Task
from .store import TaskQuery, TaskStore
from .validation import parse_due_date, parse_list_query, validate_status, validate_task_payload


class TaskModelTests(TestCase):

    def test_is_overdue_only_for_open_tasks_with_past_due_date(self):
        past = timezone.now() - timedelta(days=1)
        task = Task.objects.create(title="late", due_date=past)
        self.assertTrue(task.is_overdue)

        task.status = Task.Status.COMPLETED
        self.assertFalse(task.is_overdue)

        task.status = Task.Status.IN_PROGRESS
        task.due_date = None
        self.assertFalse(task.is_overdue)

    def test_to_dict_uses_wire_names(self):
        task = Task.objects.create(title="x")
        d = task.to_dict()
        self.assertEqual(d["id"], str(task.id))
        self.assertEqual(d["status"], "todo")
        self.assertEqual(d["priority"], "medium")
        self.assertIsNone(d["dueDate"])
        self.assertIn("createdAt", d)
        self.assertIn("updatedAt", d)
        self.assertFalse(d["isOverdue"])


class ValidationTests(SimpleTestCase):

    def test_title_bounds(self):
        self.assertEqual(validate_task_payload({"title": "  ok  "}, partial=False)["title"], "ok")
        self.assertEqual(len(validate_task_payload({"title": "a" * 100}, partial=False)["title"]), 100)
        for bad in ("", "   ", "a" * 101, None, 12):
            with self.assertRaises(ValidationFailed) as ctx:
                validate_task_payload({"title": bad}, partial=False)
            self.assertEqual(ctx.exception.errors[0]["field"], "title")

    def test_title_required_on_create_only(self):
        with self.assertRaises(ValidationFailed):
            validate_task_payload({"description": "d"}, partial=False)
        self.assertEqual(validate_task_payload({"description": "d"}, partial=True), {"description": "d"})

    def test_description_limit(self):
        validate_task_payload({"title": "t", "description": "d" * 500}, partial=False)
        with self.assertRaises(ValidationFailed) as ctx:
            validate_task_payload({"title": "t", "description": "d" * 501}, partial=False)
        self.assertEqual(ctx.exception.errors[0]["field"], "description")

    def test_enums(self):
        with self.assertRaises(ValidationFailed):
            validate_task_payload({"title": "t", "priority": "urgent"}, partial=False)
        with self.assertRaises(ValidationFailed):
            validate_task_payload({"title": "t", "status": "done"}, partial=False)
        with self.assertRaises(ValidationFailed) as ctx:
            validate_status({"status": "archived"})
        self.assertEqual(ctx.exception.message, "Invalid status value")
        self.assertEqual(validate_status({"status": "in-progress"}), "in-progress")

    def test_errors_are_collected_per_field(self):
        with self.assertRaises(ValidationFailed) as ctx:
            validate_task_payload({"title": "", "priority": "x", "dueDate": "soon"}, partial=False)
        fields = {e["field"] for e in ctx.exception.errors}
        self.assertEqual(fields, {"title", "priority", "dueDate"})

    def test_due_date_formats(self):
        d = parse_due_date("2030-05-01")
        self.assertEqual((d.year, d.month, d.day, d.hour), (2030, 5, 1, 0))
        self.assertIsNotNone(d.tzinfo)
        self.assertIsNotNone(parse_due_date("2030-05-01T10:30:00Z"))
        self.assertIsNotNone(parse_due_date("2030-05-01T10:30:00+02:00"))
        self.assertIsNone(parse_due_date("05/01/2030"))
        self.assertIsNone(parse_due_date("2030-13-45"))
        self.assertIsNone(parse_due_date(20300501))

    def test_null_due_date_clears_on_update(self):
        self.assertEqual(validate_task_payload({"dueDate": None}, partial=True), {"due_date": None})

    def test_list_query_defaults_and_errors(self):
        q = parse_list_query({})
        self.assertEqual((q.status, q.priority, q.search), (None, None, None))
        self.assertEqual((q.sort_by, q.sort_order, q.page, q.limit), ("createdAt", "desc", 1, 50))
        self.assertIsNone(parse_list_query({"status": "all", "priority": "all"}).status)

        q = parse_list_query({"page": "3", "limit": "10"})
        self.assertEqual(q.skip, 20)

        for params in ({"status": "nope"}, {"sortBy": "owner"}, {"page": "0"}, {"limit": "abc"}, {"limit": "101"}):
            with self.assertRaises(ValidationFailed):
                parse_list_query(params)


class TaskStoreTests(TestCase):

    def setUp(self):
        self.store = TaskStore()

    def _make(self, title, **fields):
        return Task.objects.create(title=title, **fields)

    def test_create_assigns_id_and_timestamps(self):
        task = self.store.create({"title": "Write report", "priority": "high"})
        self.assertIsInstance(task.id, uuid.UUID)
        self.assertEqual(task.status, "todo")
        self.assertIsNotNone(task.created_at)
        self.assertIsNotNone(task.updated_at)

    def test_create_rejects_past_due_date(self):
        now = timezone.now()
        with self.assertRaises(ValidationFailed) as ctx:
            self.store.create({"title": "t", "due_date": now - timedelta(seconds=1)}, now=now)
        self.assertEqual(ctx.exception.errors[0]["field"], "dueDate")
        self.assertEqual(Task.objects.count(), 0)

        task = self.store.create({"title": "t", "due_date": now + timedelta(hours=1)}, now=now)
        self.assertFalse(task.is_overdue)

    def test_model_constraints_checked_before_persisting(self):
        with self.assertRaises(ValidationFailed):
            self.store.create({"title": "t", "priority": "urgent"})
        with self.assertRaises(ValidationFailed):
            self.store.create({"title": "   "})
        self.assertEqual(Task.objects.count(), 0)

    def test_update_refreshes_updated_at_and_accepts_past_due(self):
        task = self.store.create({"title": "t"})
        before = task.updated_at
        past = timezone.now() - timedelta(days=2)
        updated = self.store.update_by_id(task.id, {"title": "t2", "due_date": past})
        self.assertEqual(updated.title, "t2")
        self.assertGreaterEqual(updated.updated_at, before)
        self.assertTrue(updated.is_overdue)

    def test_update_status(self):
        task = self.store.create({"title": "t"})
        before = task.updated_at
        updated = self.store.update_status(str(task.id), "completed")
        self.assertEqual(Task.objects.get(pk=task.pk).status, "completed")
        self.assertGreaterEqual(updated.updated_at, before)
        with self.assertRaises(ValidationFailed):
            self.store.update_status(task.id, "done")

    def test_not_found_paths(self):
        missing = uuid.uuid4()
        for call in (
            lambda: self.store.get_by_id(missing),
            lambda: self.store.get_by_id("not-a-uuid"),
            lambda: self.store.update_by_id(missing, {"title": "x"}),
            lambda: self.store.update_status(missing, "todo"),
            lambda: self.store.delete_by_id(missing),
        ):
            with self.assertRaises(NotFound):
                call()

    def test_delete_twice(self):
        task = self.store.create({"title": "t"})
        self.store.delete_by_id(task.id)
        with self.assertRaises(NotFound):
            self.store.delete_by_id(task.id)

    def test_filters_are_anded_and_search_is_ored(self):
        self._make("Alpha report", status="todo", priority="high")
        self._make("beta", description="contains REPORT text", status="todo", priority="low")
        self._make("gamma", status="completed", priority="high")
        self._make("delta report", status="completed", priority="low")

        page = self.store.list(TaskQuery(status="todo"))
        self.assertEqual({t.status for t in page.tasks}, {"todo"})
        self.assertEqual(page.total, 2)

        page = self.store.list(TaskQuery(status="completed", priority="high"))
        self.assertEqual([t.title for t in page.tasks], ["gamma"])

        page = self.store.list(TaskQuery(search="report"))
        self.assertEqual({t.title for t in page.tasks}, {"Alpha report", "beta", "delta report"})

        page = self.store.list(TaskQuery(search="Report", status="todo"))
        self.assertEqual({t.title for t in page.tasks}, {"Alpha report", "beta"})

    def test_pagination_windows(self):
        for i in range(7):
            self._make(f"task {i}")
        everything = [t.id for t in self.store.list(TaskQuery(limit=100)).tasks]

        limit = 3
        collected = []
        first = self.store.list(TaskQuery(page=1, limit=limit))
        self.assertEqual(first.pages, math.ceil(7 / limit))
        for page_no in range(1, first.pages + 1):
            page = self.store.list(TaskQuery(page=page_no, limit=limit))
            start = (page_no - 1) * limit
            self.assertEqual([t.id for t in page.tasks], everything[start : min(page_no * limit, 7)])
            collected.extend(t.id for t in page.tasks)
        self.assertEqual(collected, everything)

        beyond = self.store.list(TaskQuery(page=5, limit=limit))
        self.assertEqual(beyond.tasks, [])
        self.assertEqual(beyond.total, 7)

    def test_sorting(self):
        self._make("b", priority="low")
        self._make("a", priority="high")
        self._make("c", priority="medium")

        titles = [t.title for t in self.store.list(TaskQuery(sort_by="title", sort_order="asc")).tasks]
        self.assertEqual(titles, ["a", "b", "c"])

        prios = [t.priority for t in self.store.list(TaskQuery(sort_by="priority", sort_order="desc")).tasks]
        self.assertEqual(prios, ["high", "medium", "low"])

    def test_stats_and_aggregates(self):
        now = timezone.now()
        self._make("a", status="todo", priority="high", due_date=now - timedelta(days=1))
        self._make("b", status="in-progress", priority="high")
        self._make("c", status="completed", priority="high", due_date=now - timedelta(days=1))
        self._make("d", status="todo")

        self.assertEqual(self.store.status_counts(), {"todo": 2, "in-progress": 1, "completed": 1})
        self.assertEqual(self.store.overdue_count(now), 1)
        self.assertEqual(self.store.open_high_priority_count(), 2)

        page = self.store.list(TaskQuery(status="todo"))
        self.assertEqual(page.stats, {"total": 2, "todo": 2, "in-progress": 1, "completed": 1})

    def test_recent_returns_newest_five(self):
        base = timezone.now()
        for i in range(7):
            t = self._make(f"t{i}")
            Task.objects.filter(pk=t.pk).update(created_at=base + timedelta(minutes=i))
        self.assertEqual([t.title for t in self.store.recent()], ["t6", "t5", "t4", "t3", "t2"])


class TaskApiTests(TestCase):

    def setUp(self):
        cache.clear()

    def _send(self, method, url, payload):
        return getattr(self.client, method)(url, data=json.dumps(payload), content_type="application/json")

    def _create(self, **payload):
        resp = self._send("post", "/api/tasks", payload)
        self.assertEqual(resp.status_code, 201, resp.content)
        return resp.json()["data"]

    def test_end_to_end_lifecycle(self):
        resp = self._send("post", "/api/tasks", {"title": "Write report", "priority": "high"})
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "Task created successfully")
        task = body["data"]
        self.assertEqual(task["status"], "todo")
        self.assertEqual(task["priority"], "high")
        self.assertTrue(task["id"])
        self.assertTrue(task["createdAt"])

        past = (timezone.now() - timedelta(days=3)).isoformat()
        resp = self._send("put", f"/api/tasks/{task['id']}", {"dueDate": past})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["data"]["isOverdue"])

        resp = self._send("patch", f"/api/tasks/{task['id']}/status", {"status": "completed"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["status"], "completed")
        self.assertFalse(resp.json()["data"]["isOverdue"])

        resp = self.client.delete(f"/api/tasks/{task['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "Task deleted successfully")

        resp = self.client.get(f"/api/tasks/{task['id']}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"success": False, "error": "Task not found"})

        resp = self.client.delete(f"/api/tasks/{task['id']}")
        self.assertEqual(resp.status_code, 404)

    def test_create_validation_envelope(self):
        resp = self._send("post", "/api/tasks", {"title": "", "description": "x" * 501})
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "Validation failed")
        self.assertEqual({d["field"] for d in body["details"]}, {"title", "description"})
        self.assertEqual(Task.objects.count(), 0)

    def test_create_rejects_past_due_date(self):
        past = (timezone.now() - timedelta(minutes=5)).isoformat()
        resp = self._send("post", "/api/tasks", {"title": "t", "dueDate": past})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["details"][0]["field"], "dueDate")

    def test_invalid_json_body(self):
        resp = self.client.post("/api/tasks", data="{nope", content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid JSON body")

    def test_server_fields_are_ignored_on_create(self):
        task = self._create(title="t", id="abc", createdAt="2000-01-01T00:00:00Z", isOverdue=True)
        self.assertNotEqual(task["id"], "abc")
        self.assertFalse(task["createdAt"].startswith("2000"))

    def test_patch_status_rejects_unknown_value(self):
        task = self._create(title="t")
        resp = self._send("patch", f"/api/tasks/{task['id']}/status", {"status": "archived"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid status value")
        self.assertEqual(Task.objects.get(pk=task["id"]).status, "todo")

    def test_list_with_filters_pagination_and_stats(self):
        for i in range(5):
            self._create(title=f"todo {i}")
        done = self._create(title="finished", priority="low")
        self._send("patch", f"/api/tasks/{done['id']}/status", {"status": "completed"})

        resp = self.client.get("/api/tasks", {"status": "todo", "limit": 2, "page": 3})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(len(body["data"]), 1)
        self.assertEqual(body["pagination"], {"page": 3, "limit": 2, "total": 5, "pages": 3})
        self.assertEqual(body["stats"], {"total": 5, "todo": 5, "in-progress": 0, "completed": 1})

        resp = self.client.get("/api/tasks", {"search": "FINISH"})
        self.assertEqual([t["title"] for t in resp.json()["data"]], ["finished"])

    def test_list_rejects_bad_params(self):
        resp = self.client.get("/api/tasks", {"sortOrder": "sideways"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["details"][0]["field"], "sortOrder")

    def test_put_updates_subset_of_fields(self):
        task = self._create(title="t", description="keep me")
        resp = self._send("put", f"/api/tasks/{task['id']}", {"priority": "low"})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["priority"], "low")
        self.assertEqual(data["description"], "keep me")
        self.assertEqual(resp.json()["message"], "Task updated successfully")

    def test_malformed_id_is_not_found(self):
        resp = self.client.get("/api/tasks/not-a-real-id")
        self.assertEqual(resp.status_code, 404)

    def test_wrong_method(self):
        resp = self.client.patch("/api/tasks")
        self.assertEqual(resp.status_code, 405)
        self.assertFalse(resp.json()["success"])

    def test_unexpected_failure_is_generic(self):
        with mock.patch("tasks.views.TaskStore.list", side_effect=RuntimeError("db down")):
            resp = self.client.get("/api/tasks")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"success": False, "error": "Failed to fetch tasks"})
