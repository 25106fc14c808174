"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - The single realtime connection of a session

Authentication:
    JWT token passed as query parameter (?token=<jwt_access_token>) or as
    the ["jwt", <token>] subprotocol pair. JWTAuthMiddleware validates it
    and attaches the identity to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path("ws/chat/", consumers.RealtimeConsumer.as_asgi()),
]
