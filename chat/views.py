import logging

from django.conf import settings
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from taskmanager.errors import ValidationFailed, field_error
from taskmanager.responses import api_view, fail, method_not_allowed, ok, parse_json_body
from tasks.models import Task
from tasks.store import TaskStore

from .context import build_context, build_messages, build_suggestions, parse_history, take_snapshot
from .llm import CompletionAuthError, CompletionQuotaError, get_client

logger = logging.getLogger(__name__)


@csrf_exempt
@api_view("Failed to process chat message")
def chat(request):
    """
    POST /api/chat
    body: {"message": "...", "conversationHistory": [{"role", "content"}, ...]}
    """
    if request.method != "POST":
        return method_not_allowed(request, ["POST"])

    payload = parse_json_body(request)
    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationFailed(
            [field_error("message", "Message is required and must be a string", message)],
            message="Message is required and must be a string",
        )
    history = parse_history(payload.get("conversationHistory"), settings.TASKMANAGER.chat_max_history)

    context = build_context(take_snapshot(TaskStore()))
    messages = build_messages(context, history, message.strip())

    try:
        reply = get_client().complete(messages)
    except CompletionAuthError:
        logger.warning("Chat: completion API key missing or rejected")
        return fail("Invalid or missing completion API key", status=401)
    except CompletionQuotaError:
        logger.warning("Chat: completion API quota exceeded")
        return fail("API quota exceeded. Please try again later.", status=429)

    return ok({"message": reply, "timestamp": timezone.now()})


@api_view("Failed to generate suggestions")
def suggestions(request):
    """GET /api/chat/suggestions"""
    if request.method != "GET":
        return method_not_allowed(request, ["GET"])

    store = TaskStore()
    overdue = store.overdue_count(timezone.now())
    high_priority = store.open_high_priority_count()
    todo = store.status_counts()[Task.Status.TODO]

    return ok(
        {
            "suggestions": build_suggestions(overdue, high_priority, todo),
            "stats": {"overdue": overdue, "highPriority": high_priority, "todo": todo},
        }
    )
