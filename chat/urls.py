from django.urls import path

from . import views

urlpatterns = [
    path("chat", views.chat, name="chat"),
    path("chat/suggestions", views.suggestions, name="chat-suggestions"),
]
