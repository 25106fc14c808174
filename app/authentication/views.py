"""
Authentication views.

This module provides API views for:
- Registration: POST /api/v1/auth/register/
- Login: POST /api/v1/auth/login/
- Profile: GET/PUT/PATCH /api/v1/auth/profile/
- User search: GET /api/v1/auth/users/search/?q=

Related files:
    - serializers.py: Request/response serialization
    - services.py: Business logic (AccountService, IdentityDirectory)
    - backends.py: Bearer token authentication
    - urls.py: URL routing

Register and login both answer with ``{"token": ..., "user": {...}}``; the
token authenticates REST calls and the realtime connection alike.
"""

from asgiref.sync import async_to_sync
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    AuthResponseSerializer,
    IdentitySerializer,
    IdentitySummarySerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
)
from authentication.services import AccountService, IdentityDirectory
from core.documents import get_document_store


def _auth_payload(identity, token) -> dict:
    return {"token": token, "user": IdentitySerializer(identity).data}


# =============================================================================
# Registration & Login Views
# =============================================================================


class RegisterView(APIView):
    """
    POST: Create an account and return its first token.

    URL: /api/v1/auth/register/

    Request body:
        {
            "name": "Ana",
            "email": "ana@example.com",
            "password": "secret1",
            "avatar": ""              // optional
        }
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Register",
        description="Create an account with a generated virtual number.",
        tags=["Auth"],
        request=RegisterSerializer,
        responses={
            201: AuthResponseSerializer,
            400: OpenApiResponse(description="Invalid registration data"),
            409: OpenApiResponse(description="Email already registered"),
        },
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        accounts = AccountService(get_document_store())
        identity, token = async_to_sync(accounts.register)(**serializer.validated_data)
        return Response(_auth_payload(identity, token), status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    POST: Exchange email and password for a token.

    URL: /api/v1/auth/login/
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Log in",
        tags=["Auth"],
        request=LoginSerializer,
        responses={
            200: AuthResponseSerializer,
            401: OpenApiResponse(description="Invalid credentials"),
        },
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        accounts = AccountService(get_document_store())
        identity, token = async_to_sync(accounts.login)(
            serializer.validated_data["email"],
            serializer.validated_data["password"],
        )
        return Response(_auth_payload(identity, token))


# =============================================================================
# Profile View
# =============================================================================


class ProfileView(APIView):
    """
    API view for the caller's own profile.

    GET: Retrieve the profile
    PUT/PATCH: Update name, avatar and/or status

    URL: /api/v1/auth/profile/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user's profile",
        tags=["Auth - Profile"],
        responses={200: IdentitySerializer},
    )
    def get(self, request):
        accounts = AccountService(get_document_store())
        identity = async_to_sync(accounts.get_profile)(request.user.id)
        return Response(IdentitySerializer(identity).data)

    @extend_schema(
        summary="Update profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: IdentitySerializer},
    )
    def put(self, request):
        return self._update_profile(request)

    @extend_schema(
        summary="Partially update profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: IdentitySerializer},
    )
    def patch(self, request):
        return self._update_profile(request)

    def _update_profile(self, request):
        serializer = ProfileUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        accounts = AccountService(get_document_store())
        identity = async_to_sync(accounts.update_profile)(request.user.id, **serializer.validated_data)
        return Response(IdentitySerializer(identity).data)


# =============================================================================
# User Search View
# =============================================================================


class UserSearchView(APIView):
    """
    GET: Find other users by name, email or virtual number.

    URL: /api/v1/auth/users/search/?q=<term>

    The caller is never part of the results. A blank term returns an
    empty list.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Search users",
        tags=["Auth - Users"],
        parameters=[OpenApiParameter("q", str, description="Case-insensitive search term")],
        responses={200: IdentitySummarySerializer(many=True)},
    )
    def get(self, request):
        directory = IdentityDirectory(get_document_store())
        identities = async_to_sync(directory.search)(
            request.query_params.get("q", ""),
            exclude_id=request.user.id,
        )
        return Response(IdentitySummarySerializer(identities, many=True).data)
