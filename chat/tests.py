import json
from dataclasses import replace
from datetime import timedelta
from types import SimpleNamespace
from unittest import mock

import httpx
import openai
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from taskmanager.config import get_settings
from taskmanager.errors import ValidationFailed
from tasks.models import Task
from tasks.store import TaskStore

from .context import (
    SYSTEM_INSTRUCTION,
    build_context,
    build_messages,
    build_suggestions,
    parse_history,
    take_snapshot,
)
from .llm import CompletionAuthError, CompletionClient, CompletionError, CompletionQuotaError


def _status_error(cls, status, message="error"):
    request = httpx.Request("POST", "https://llm.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=None)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _fake_openai(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class FakeCompletionClient:
    def __init__(self, reply="Do the overdue ones first.", error=None):
        self.reply = reply
        self.error = error
        self.messages = None

    def complete(self, messages):
        self.messages = messages
        if self.error is not None:
            raise self.error
        return self.reply


class ContextTests(TestCase):

    def test_snapshot_and_context_text(self):
        Task.objects.create(title="Write report", priority="high", due_date=timezone.now() + timedelta(days=1))
        Task.objects.create(title="Ship it", status="in-progress")
        Task.objects.create(title="Old", status="completed")

        snap = take_snapshot(TaskStore())
        self.assertEqual((snap.total, snap.todo, snap.in_progress, snap.completed), (3, 1, 1, 1))

        text = build_context(snap)
        self.assertTrue(text.startswith("Current Task Statistics:\n- Total Tasks: 3\n- Todo: 1"))
        self.assertIn("- In Progress: 1\n- Completed: 1", text)
        self.assertIn("Recent Tasks:\n", text)
        self.assertIn("- Write report (todo, high priority, due ", text)
        self.assertIn("- Ship it (in-progress, medium priority)", text)
        self.assertTrue(text.endswith(SYSTEM_INSTRUCTION))

    def test_context_with_no_tasks(self):
        text = build_context(take_snapshot(TaskStore()))
        self.assertIn("- Total Tasks: 0", text)
        self.assertIn("- (no tasks yet)", text)

    def test_recent_is_capped_at_five(self):
        for i in range(8):
            Task.objects.create(title=f"t{i}")
        self.assertEqual(len(take_snapshot(TaskStore()).recent), 5)


class HistoryTests(SimpleTestCase):

    def test_roles_are_mapped_and_trimmed(self):
        raw = [
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "b"},
            {"role": "user", "content": "c"},
        ]
        self.assertEqual(parse_history(raw, 20), [
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "b"},
            {"role": "user", "content": "c"},
        ])
        self.assertEqual([t["content"] for t in parse_history(raw, 2)], ["b", "c"])

    def test_missing_history_is_empty(self):
        self.assertEqual(parse_history(None, 20), [])

    def test_malformed_history(self):
        for raw in ("nope", [{"role": "system", "content": "x"}], [{"role": "user"}], ["text"]):
            with self.assertRaises(ValidationFailed):
                parse_history(raw, 20)

    def test_messages_order(self):
        history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        messages = build_messages("CTX", history, "help")
        self.assertEqual(messages[0], {"role": "system", "content": "CTX"})
        self.assertEqual(messages[1:3], history)
        self.assertEqual(messages[-1], {"role": "user", "content": "help"})


class SuggestionTests(SimpleTestCase):

    def test_each_rule(self):
        self.assertEqual(
            build_suggestions(2, 0, 0),
            ["You have 2 overdue task(s). Consider prioritizing these first."],
        )
        self.assertEqual(build_suggestions(0, 3, 0), ["Focus on your 3 high-priority task(s) today."])
        self.assertEqual(
            build_suggestions(0, 0, 11),
            ["You have many pending tasks. Consider breaking them down into smaller, manageable chunks."],
        )

    def test_backlog_threshold_is_strict(self):
        self.assertEqual(len(build_suggestions(0, 0, 10)), 1)
        self.assertTrue(build_suggestions(0, 0, 10)[0].startswith("Great job"))

    def test_rules_combine_in_order(self):
        out = build_suggestions(1, 1, 12)
        self.assertEqual(len(out), 3)
        self.assertIn("overdue", out[0])
        self.assertIn("high-priority", out[1])
        self.assertIn("many pending", out[2])


class CompletionClientTests(SimpleTestCase):

    def _client(self, completions):
        return CompletionClient(model="test-model", max_tokens=50, temperature=0.1, client=_fake_openai(completions))

    def test_complete_passes_generation_settings(self):
        completions = FakeCompletions(result=_completion("answer"))
        reply = self._client(completions).complete([{"role": "user", "content": "q"}])
        self.assertEqual(reply, "answer")
        call = completions.calls[0]
        self.assertEqual(call["model"], "test-model")
        self.assertEqual(call["max_tokens"], 50)
        self.assertEqual(call["temperature"], 0.1)

    def test_error_mapping(self):
        cases = [
            (_status_error(openai.AuthenticationError, 401), CompletionAuthError),
            (_status_error(openai.PermissionDeniedError, 403), CompletionAuthError),
            (_status_error(openai.BadRequestError, 400, "API key not valid"), CompletionAuthError),
            (_status_error(openai.RateLimitError, 429), CompletionQuotaError),
            (_status_error(openai.BadRequestError, 400, "Quota exceeded for metric"), CompletionQuotaError),
            (RuntimeError("boom"), CompletionError),
        ]
        for error, expected in cases:
            with self.subTest(error=error):
                with self.assertRaises(expected):
                    self._client(FakeCompletions(error=error)).complete([])

    def test_empty_content_is_an_error(self):
        with self.assertRaises(CompletionError):
            self._client(FakeCompletions(result=_completion(""))).complete([])
        with self.assertRaises(CompletionError):
            self._client(FakeCompletions(result=SimpleNamespace(choices=[]))).complete([])

    def test_missing_key(self):
        with self.assertRaises(CompletionAuthError):
            CompletionClient.from_settings(replace(get_settings(), llm_api_key=""))


class ChatApiTests(TestCase):

    def setUp(self):
        cache.clear()

    def _post(self, payload):
        return self.client.post("/api/chat", data=json.dumps(payload), content_type="application/json")

    def test_chat_reply_uses_task_context(self):
        Task.objects.create(title="Write report", priority="high")
        fake = FakeCompletionClient()
        with mock.patch("chat.views.get_client", return_value=fake):
            resp = self._post({
                "message": "What first?",
                "conversationHistory": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hey"}],
            })

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["message"], "Do the overdue ones first.")
        self.assertTrue(body["data"]["timestamp"])

        system, *rest = fake.messages
        self.assertEqual(system["role"], "system")
        self.assertIn("- Total Tasks: 1", system["content"])
        self.assertIn("Write report", system["content"])
        self.assertEqual([m["role"] for m in rest], ["user", "assistant", "user"])
        self.assertEqual(rest[-1]["content"], "What first?")

    def test_message_required(self):
        for payload in ({}, {"message": ""}, {"message": 42}):
            resp = self._post(payload)
            self.assertEqual(resp.status_code, 400)
            self.assertEqual(resp.json()["error"], "Message is required and must be a string")

    def test_auth_failure(self):
        with mock.patch("chat.views.get_client", side_effect=CompletionAuthError("no key")):
            resp = self._post({"message": "hi"})
        self.assertEqual(resp.status_code, 401)
        self.assertFalse(resp.json()["success"])

    def test_quota_failure(self):
        fake = FakeCompletionClient(error=CompletionQuotaError("quota"))
        with mock.patch("chat.views.get_client", return_value=fake):
            resp = self._post({"message": "hi"})
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["error"], "API quota exceeded. Please try again later.")

    def test_other_failure(self):
        fake = FakeCompletionClient(error=CompletionError("down"))
        with mock.patch("chat.views.get_client", return_value=fake):
            resp = self._post({"message": "hi"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["error"], "Failed to process chat message")

    def test_chat_is_post_only(self):
        self.assertEqual(self.client.get("/api/chat").status_code, 405)

    def test_suggestions(self):
        now = timezone.now()
        Task.objects.create(title="late", priority="high", due_date=now - timedelta(days=1))
        Task.objects.create(title="done", priority="high", status="completed", due_date=now - timedelta(days=1))

        resp = self.client.get("/api/chat/suggestions")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["stats"], {"overdue": 1, "highPriority": 1, "todo": 1})
        self.assertEqual(data["suggestions"], [
            "You have 1 overdue task(s). Consider prioritizing these first.",
            "Focus on your 1 high-priority task(s) today.",
        ])

    def test_suggestions_when_all_clear(self):
        resp = self.client.get("/api/chat/suggestions")
        self.assertEqual(resp.json()["data"]["suggestions"], [
            "Great job staying on top of your tasks! Consider planning ahead for upcoming deadlines.",
        ])
