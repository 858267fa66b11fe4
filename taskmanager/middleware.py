# taskmanager/middleware.py

from __future__ import annotations

import logging
import time

from django.conf import settings
from django.core.cache import cache
from django.http import HttpRequest, HttpResponse
from django.utils.cache import patch_vary_headers

from .responses import fail

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class RateLimitMiddleware:
    """
    Fixed-window request counter per client address.

    The window index is floor(now / window); the counter lives in the
    default cache under a key that includes it, so it expires with the window.
    """

    def __init__(self, get_response) -> None:
        self.get_response = get_response

    @staticmethod
    def _client_addr(request: HttpRequest) -> str:
        return request.META.get("REMOTE_ADDR") or "unknown"

    def __call__(self, request: HttpRequest) -> HttpResponse:
        limit = int(settings.RATE_LIMIT_REQUESTS)
        window = int(settings.RATE_LIMIT_WINDOW_SECONDS)
        if limit <= 0 or window <= 0:
            return self.get_response(request)

        now = time.time()
        window_idx = int(now // window)
        addr = self._client_addr(request)
        key = f"ratelimit:{addr}:{window_idx}"

        cache.add(key, 0, timeout=window)
        try:
            count = cache.incr(key)
        except ValueError:
            # expired between add() and incr()
            cache.set(key, 1, timeout=window)
            count = 1

        remaining = max(0, limit - count)
        if count > limit:
            retry_after = int((window_idx + 1) * window - now) + 1
            logger.warning("Rate limit exceeded addr=%s count=%s limit=%s", addr, count, limit)
            response = fail(RATE_LIMIT_MESSAGE, status=429)
            response["Retry-After"] = str(retry_after)
        else:
            response = self.get_response(request)

        response["X-RateLimit-Limit"] = str(limit)
        response["X-RateLimit-Remaining"] = str(remaining)
        return response


class CorsMiddleware:
    """Allow the configured frontend origin (with credentials); answer preflights."""

    allow_methods = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    allow_headers = "Content-Type, Authorization"

    def __init__(self, get_response) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        origin = request.headers.get("Origin")
        allowed = bool(origin) and origin.rstrip("/") == settings.CORS_ALLOWED_ORIGIN

        if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
            response = HttpResponse(status=204)
            if allowed:
                response["Access-Control-Allow-Methods"] = self.allow_methods
                response["Access-Control-Allow-Headers"] = request.headers.get(
                    "Access-Control-Request-Headers", self.allow_headers
                )
                response["Access-Control-Max-Age"] = "600"
        else:
            response = self.get_response(request)

        if allowed:
            response["Access-Control-Allow-Origin"] = origin
            response["Access-Control-Allow-Credentials"] = "true"
        patch_vary_headers(response, ("Origin",))
        return response
