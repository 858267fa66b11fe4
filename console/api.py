# console/api.py

"""HTTP client for the task manager API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ApiError(Exception):
    """A failure envelope, a non-JSON error, or a transport failure."""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details


def _log_request(request: httpx.Request) -> None:
    logger.debug("Making %s request to %s", request.method, request.url)


def _log_response(response: httpx.Response) -> None:
    if response.status_code >= 400:
        logger.debug("API error %s for %s %s", response.status_code, response.request.method, response.request.url)


class TaskApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TaskApiClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("API request failed: %s %s (%s)", method, path, e)
            raise ApiError(f"Network error: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_error or not isinstance(body, dict) or not body.get("success"):
            if isinstance(body, dict) and body.get("error"):
                raise ApiError(str(body["error"]), resp.status_code, body.get("details"))
            raise ApiError(f"Unexpected response ({resp.status_code})", resp.status_code)
        return body

    # ---- tasks ----

    def get_tasks(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        clean = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        return self._request("GET", "tasks", params=clean)

    def get_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"tasks/{task_id}")

    def create_task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "tasks", json=data)

    def update_task(self, task_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"tasks/{task_id}", json=data)

    def update_task_status(self, task_id: str, status: str) -> Dict[str, Any]:
        return self._request("PATCH", f"tasks/{task_id}/status", json={"status": status})

    def delete_task(self, task_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"tasks/{task_id}")

    # ---- chat ----

    def send_message(self, message: str, history: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
        return self._request("POST", "chat", json={"message": message, "conversationHistory": history or []})

    def get_suggestions(self) -> Dict[str, Any]:
        return self._request("GET", "chat/suggestions")
