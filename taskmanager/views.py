from django.utils import timezone

from .responses import fail, ok


def health(request):
    """GET /api/health"""
    return ok({"status": "OK", "timestamp": timezone.now()}, message="Task Manager API is running")


def route_not_found(request, exception=None):
    return fail("Route not found", status=404)


def server_error(request):
    return fail("Internal server error", status=500)
