from django.views.decorators.csrf import csrf_exempt

from taskmanager.responses import api_view, method_not_allowed, ok, parse_json_body

from .store import TaskStore
from .validation import parse_list_query, validate_status, validate_task_payload


def get_store():
    return TaskStore()


@csrf_exempt
def task_collection(request):
    """
    GET  /api/tasks   ?status=&priority=&search=&sortBy=&sortOrder=&page=&limit=
    POST /api/tasks   body: {"title", "description"?, "priority"?, "dueDate"?}
    """
    if request.method == "GET":
        return list_tasks(request)
    if request.method == "POST":
        return create_task(request)
    return method_not_allowed(request, ["GET", "POST"])


@csrf_exempt
def task_detail(request, task_id):
    """GET / PUT / DELETE /api/tasks/<id>"""
    if request.method == "GET":
        return get_task(request, task_id)
    if request.method == "PUT":
        return update_task(request, task_id)
    if request.method == "DELETE":
        return delete_task(request, task_id)
    return method_not_allowed(request, ["GET", "PUT", "DELETE"])


@csrf_exempt
def task_status(request, task_id):
    """PATCH /api/tasks/<id>/status   body: {"status": "todo" | "in-progress" | "completed"}"""
    if request.method != "PATCH":
        return method_not_allowed(request, ["PATCH"])
    return update_task_status(request, task_id)


@api_view("Failed to fetch tasks")
def list_tasks(request):
    query = parse_list_query(request.GET)
    page = get_store().list(query)
    return ok(
        [t.to_dict() for t in page.tasks],
        pagination=page.pagination(),
        stats=page.stats,
    )


@api_view("Failed to fetch task")
def get_task(request, task_id):
    task = get_store().get_by_id(task_id)
    return ok(task.to_dict())


@api_view("Failed to create task")
def create_task(request):
    fields = validate_task_payload(parse_json_body(request), partial=False)
    task = get_store().create(fields)
    return ok(task.to_dict(), status=201, message="Task created successfully")


@api_view("Failed to update task")
def update_task(request, task_id):
    fields = validate_task_payload(parse_json_body(request), partial=True)
    task = get_store().update_by_id(task_id, fields)
    return ok(task.to_dict(), message="Task updated successfully")


@api_view("Failed to update task status")
def update_task_status(request, task_id):
    status = validate_status(parse_json_body(request))
    task = get_store().update_status(task_id, status)
    return ok(task.to_dict(), message="Task status updated successfully")


@api_view("Failed to delete task")
def delete_task(request, task_id):
    get_store().delete_by_id(task_id)
    return ok({"id": str(task_id)}, message="Task deleted successfully")
