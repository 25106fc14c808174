"""
WebSocket authentication middleware.

Provides JWT authentication for WebSocket connections.
Supports token via query string or subprotocol.

Related files:
    - routing.py: WebSocket URL patterns
    - consumers.py: WebSocket handlers
    - config/asgi.py: ASGI configuration

Token Passing Methods:
    1. Query string: ws://host/ws/chat/?token=<jwt_token>
    2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>

Usage in config/asgi.py:
    from chat.middleware import JWTAuthMiddleware

    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        ),
    })
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.middleware import BaseMiddleware

from authentication.services import IdentityDirectory
from authentication.tokens import read_token
from core.documents import get_document_store
from core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

JWT_SUBPROTOCOL = "jwt"


class JWTAuthMiddleware(BaseMiddleware):
    """
    JWT authentication middleware for WebSocket connections.

    Extracts the token, validates it and attaches the identity to
    ``scope["identity"]`` (None when absent or invalid). Rejecting
    unauthenticated connections is the consumer's job, so it can close
    with its own code.

    Token sources (in order of precedence):
        1. Query string: ?token=<jwt_token>
        2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = self._get_token_from_query(scope) or self._get_token_from_subprotocol(scope)
        scope["identity"] = await self._get_identity_from_token(token) if token else None
        return await super().__call__(scope, receive, send)

    def _get_token_from_query(self, scope) -> str | None:
        query_string = scope.get("query_string", b"").decode()
        token_list = parse_qs(query_string).get("token", [])
        return token_list[0] if token_list else None

    def _get_token_from_subprotocol(self, scope) -> str | None:
        subprotocols = scope.get("subprotocols", [])
        if len(subprotocols) >= 2 and subprotocols[0] == JWT_SUBPROTOCOL:
            return subprotocols[1]
        return None

    async def _get_identity_from_token(self, token: str):
        try:
            identity_id = read_token(token)
        except AuthenticationError as e:
            logger.warning(f"Rejected websocket token: {e.message}")
            return None

        identity = await IdentityDirectory(get_document_store()).get_by_id(identity_id)
        if identity is None:
            logger.warning(f"Websocket token for unknown identity {identity_id}")
        return identity
