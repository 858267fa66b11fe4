import os
from pathlib import Path
from unittest import mock

from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings

from .config import Settings, _env_int, _env_list, _first_env
from .middleware import RATE_LIMIT_MESSAGE


class HealthTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_health(self):
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["status"], "OK")
        self.assertTrue(body["data"]["timestamp"])
        self.assertEqual(body["message"], "Task Manager API is running")

    def test_unknown_route(self):
        resp = self.client.get("/api/nowhere")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"success": False, "error": "Route not found"})

    @override_settings(DEBUG=True)
    def test_unknown_route_with_debug_on(self):
        resp = self.client.get("/api/nowhere/deeper")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp["Content-Type"], "application/json")
        self.assertEqual(resp.json(), {"success": False, "error": "Route not found"})


@override_settings(RATE_LIMIT_REQUESTS=3, RATE_LIMIT_WINDOW_SECONDS=60)
class RateLimitTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_limit_per_window(self):
        with mock.patch("taskmanager.middleware.time") as fake_time:
            fake_time.time.return_value = 6000.0
            for expected_remaining in ("2", "1", "0"):
                resp = self.client.get("/api/health")
                self.assertEqual(resp.status_code, 200)
                self.assertEqual(resp["X-RateLimit-Limit"], "3")
                self.assertEqual(resp["X-RateLimit-Remaining"], expected_remaining)

            resp = self.client.get("/api/health")
            self.assertEqual(resp.status_code, 429)
            self.assertEqual(resp.json(), {"success": False, "error": RATE_LIMIT_MESSAGE})
            self.assertIn("Retry-After", resp)

            # next window
            fake_time.time.return_value = 6060.0
            self.assertEqual(self.client.get("/api/health").status_code, 200)

    def test_counted_per_client(self):
        with mock.patch("taskmanager.middleware.time") as fake_time:
            fake_time.time.return_value = 6000.0
            for _ in range(3):
                self.client.get("/api/health", REMOTE_ADDR="10.0.0.1")
            self.assertEqual(self.client.get("/api/health", REMOTE_ADDR="10.0.0.1").status_code, 429)
            self.assertEqual(self.client.get("/api/health", REMOTE_ADDR="10.0.0.2").status_code, 200)


@override_settings(CORS_ALLOWED_ORIGIN="http://localhost:5173")
class CorsTests(TestCase):

    def setUp(self):
        cache.clear()

    def test_allowed_origin(self):
        resp = self.client.get("/api/health", HTTP_ORIGIN="http://localhost:5173")
        self.assertEqual(resp["Access-Control-Allow-Origin"], "http://localhost:5173")
        self.assertEqual(resp["Access-Control-Allow-Credentials"], "true")
        self.assertIn("Origin", resp["Vary"])

    def test_other_origin_gets_no_grant(self):
        resp = self.client.get("/api/health", HTTP_ORIGIN="http://evil.test")
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("Access-Control-Allow-Origin", resp)

    def test_preflight(self):
        resp = self.client.options(
            "/api/tasks",
            HTTP_ORIGIN="http://localhost:5173",
            HTTP_ACCESS_CONTROL_REQUEST_METHOD="PATCH",
            HTTP_ACCESS_CONTROL_REQUEST_HEADERS="Content-Type",
        )
        self.assertEqual(resp.status_code, 204)
        self.assertIn("PATCH", resp["Access-Control-Allow-Methods"])
        self.assertEqual(resp["Access-Control-Allow-Headers"], "Content-Type")
        self.assertEqual(resp["Access-Control-Allow-Origin"], "http://localhost:5173")


class ConfigTests(SimpleTestCase):

    def test_env_helpers(self):
        with mock.patch.dict(os.environ, {"TM_A": "", "TM_B": "x", "TM_N": "abc", "TM_L": "a, b c"}):
            self.assertEqual(_first_env("TM_A", "TM_B", default="d"), "x")
            self.assertEqual(_first_env("TM_MISSING", default="d"), "d")
            self.assertEqual(_env_int("TM_N", 7), 7)
            self.assertEqual(_env_list("TM_L", []), ["a", "b", "c"])

    def test_unprefixed_fallbacks(self):
        env = {
            "NODE_ENV": "production",
            "PORT": "8080",
            "FRONTEND_URL": "https://app.test/",
            "GEMINI_API_KEY": "k",
            "DATABASE_PATH": "/tmp/tasks.db",
        }
        with mock.patch.dict(os.environ, env):
            for name in ("TASKMANAGER_ENV", "TASKMANAGER_PORT", "TASKMANAGER_FRONTEND_URL",
                         "TASKMANAGER_LLM_API_KEY", "TASKMANAGER_DB_PATH", "TASKMANAGER_API_URL", "VITE_API_URL"):
                os.environ.pop(name, None)
            s = Settings.from_env()
        self.assertEqual(s.environment, "production")
        self.assertFalse(s.debug)
        self.assertEqual(s.port, 8080)
        self.assertEqual(s.frontend_url, "https://app.test")
        self.assertEqual(s.llm_api_key, "k")
        self.assertEqual(s.db_path, Path("/tmp/tasks.db"))
        self.assertEqual(s.api_url, "http://localhost:8080/api")

    def test_prefixed_names_win(self):
        with mock.patch.dict(os.environ, {"PORT": "8080", "TASKMANAGER_PORT": "9000", "TASKMANAGER_LOG_DIR": ""}):
            s = Settings.from_env()
        self.assertEqual(s.port, 9000)
        self.assertIsNone(s.log_dir)
