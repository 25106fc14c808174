"""
URL configuration for chat API.

URL Structure:
    Chats:
        /chats/                                  GET
        /chats/individual/                       POST
        /chats/group/                            POST
        /chats/{id}/                             GET, PATCH
        /chats/{id}/participants/                POST
        /chats/{id}/participants/{user_id}/      DELETE
        /chats/{id}/leave/                       POST
        /chats/{id}/messages/                    GET, POST
        /chats/{id}/messages/attachments/        POST
        /chats/{id}/read/                        POST

    Messages:
        /messages/unread/                        GET
        /messages/{id}/                          PATCH, DELETE
        /messages/{id}/read/                     POST

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from chat.views import ChatViewSet, MessageViewSet

router = SimpleRouter()
router.register(r"chats", ChatViewSet, basename="chat")
router.register(r"messages", MessageViewSet, basename="message")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
]
