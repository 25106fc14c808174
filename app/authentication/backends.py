"""
DRF authentication resolving bearer tokens to Identity principals.

Registered in REST_FRAMEWORK["DEFAULT_AUTHENTICATION_CLASSES"]. Token
parsing and validation are simplejwt's; only the user lookup differs, since
identities live in the document store rather than the auth user table.
"""

from __future__ import annotations

from asgiref.sync import async_to_sync
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.settings import api_settings

from authentication.services import IdentityDirectory
from core.documents import get_document_store


class IdentityJWTAuthentication(JWTAuthentication):
    """
    Authenticate ``Authorization: Bearer <token>`` against the Identity Directory.

    A missing header leaves the request anonymous (IsAuthenticated then
    answers 401); an invalid token or an unknown identity fails with 401.
    """

    def get_user(self, validated_token):
        try:
            identity_id = validated_token[api_settings.USER_ID_CLAIM]
        except KeyError as exc:
            raise InvalidToken("Token contained no recognizable user identification") from exc

        directory = IdentityDirectory(get_document_store())
        identity = async_to_sync(directory.get_by_id)(str(identity_id))
        if identity is None:
            raise AuthenticationFailed("User not found", code="user_not_found")
        return identity
