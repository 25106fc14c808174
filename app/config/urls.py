"""
URL configuration for the messaging backend.

URL Structure:
    /                              - ReDoc API documentation
    /api/v1/health/                - Health check (document store round trip)
    /api/v1/schema/                - OpenAPI schema (YAML)
    /api/v1/docs/                  - Swagger UI
    /api/v1/auth/                  - Registration, login, own profile
    /api/v1/contacts/              - Contact book
        lookup/{handle}/           - Find an identity by virtual number
        search/                    - Search entries by name
        {ref}/                     - Rename / remove
        {ref}/block/, {ref}/unblock/
    /api/v1/chats/                 - Chats
        individual/, group/        - Create
        {id}/                      - Detail / group metadata
        {id}/participants/         - Add participant
        {id}/participants/{user}/  - Remove participant
        {id}/leave/                - Leave group
        {id}/messages/             - History / send
        {id}/messages/attachments/ - Send a file
        {id}/read/                 - Mark messages read
    /api/v1/messages/              - Single messages
        unread/                    - Unread across my chats
        {id}/                      - Edit / delete
        {id}/read/                 - Mark read

WebSocket:
    /ws/chat/                      - Realtime events (see chat.routing)
"""

from django.conf import settings
from django.conf.urls.static import static
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("health/", health_check, name="health_check"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="docs"),
    path("auth/", include("authentication.urls")),
    path("contacts/", include("contacts.urls")),
    path("", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# Serve uploaded attachments in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
