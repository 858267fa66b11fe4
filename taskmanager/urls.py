from django.urls import include, path, re_path

from . import views

urlpatterns = [
    path("api/health", views.health, name="health"),
    path("api/", include("tasks.urls")),
    path("api/", include("chat.urls")),
    # JSON 404 even when DEBUG bypasses handler404
    re_path(r"^.*$", views.route_not_found),
]

handler404 = "taskmanager.views.route_not_found"
handler500 = "taskmanager.views.server_error"
