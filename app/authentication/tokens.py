"""
Bearer credential issuing and verification.

Tokens are simplejwt access tokens carrying the identity id in the
``user_id`` claim. Lifetime comes from SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"]
(seven days by default).

The same token authenticates REST calls (Authorization: Bearer <token>) and
the realtime connection (?token=<token> or the ["jwt", <token>] subprotocol).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from core.exceptions import AuthenticationError

if TYPE_CHECKING:
    from authentication.documents import Identity


def issue_token(identity: Identity) -> str:
    """Issue an access token for ``identity``."""
    token = AccessToken()
    token[api_settings.USER_ID_CLAIM] = identity.id
    return str(token)


def read_token(raw_token: str) -> str:
    """
    Validate a raw token and return the identity id it carries.

    Raises:
        AuthenticationError: If the token is malformed, expired or has no id
    """
    try:
        token = AccessToken(raw_token)
    except TokenError as exc:
        raise AuthenticationError("Invalid or expired token", error_code="TOKEN_INVALID") from exc

    user_id = token.get(api_settings.USER_ID_CLAIM)
    if not user_id:
        raise AuthenticationError("Token has no user id", error_code="TOKEN_INVALID")
    return str(user_id)
