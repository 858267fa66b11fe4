from django.urls import path

from . import views

urlpatterns = [
    path("tasks", views.task_collection, name="task-collection"),
    path("tasks/<str:task_id>", views.task_detail, name="task-detail"),
    path("tasks/<str:task_id>/status", views.task_status, name="task-status"),
]
