"""
Contact book views.

Endpoints:
    GET    /api/v1/contacts/                    - List (?blocked=true|false)
    POST   /api/v1/contacts/                    - Add by handle or identity id
    GET    /api/v1/contacts/lookup/<handle>/    - Find an identity by virtual number
    GET    /api/v1/contacts/search/?q=          - Search unblocked entries by name
    PATCH  /api/v1/contacts/<ref>/              - Rename
    DELETE /api/v1/contacts/<ref>/              - Remove
    POST   /api/v1/contacts/<ref>/block/        - Block
    POST   /api/v1/contacts/<ref>/unblock/      - Unblock

``<ref>`` is the entry id or the target identity id.
"""

from asgiref.sync import async_to_sync
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from authentication.serializers import IdentitySummarySerializer
from contacts.serializers import (
    ContactCreateSerializer,
    ContactRenameSerializer,
    ContactSerializer,
)
from contacts.services import ContactBook
from core.documents import get_document_store
from core.helpers import parse_bool


@extend_schema_view(
    list=extend_schema(
        summary="List contacts",
        tags=["Contacts"],
        parameters=[
            OpenApiParameter(
                name="blocked",
                type=bool,
                required=False,
                description="true: only blocked, false: only unblocked, omitted: all",
            )
        ],
    ),
    create=extend_schema(summary="Add contact", tags=["Contacts"], request=ContactCreateSerializer),
    partial_update=extend_schema(
        summary="Rename contact", tags=["Contacts"], request=ContactRenameSerializer
    ),
    destroy=extend_schema(summary="Remove contact", tags=["Contacts"]),
)
class ContactViewSet(viewsets.ViewSet):
    """
    ViewSet over the caller's contact book.

    All operations are scoped to request.user; there is no way to read
    another identity's contacts.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[^/]+"

    def get_book(self) -> ContactBook:
        return ContactBook(get_document_store())

    def list(self, request):
        book = self.get_book()
        blocked = request.query_params.get("blocked")
        if blocked is None:
            contacts = async_to_sync(book.list)(request.user.id)
        elif parse_bool(blocked):
            contacts = async_to_sync(book.list_blocked)(request.user.id)
        else:
            contacts = async_to_sync(book.list_unblocked)(request.user.id)
        return Response(ContactSerializer(contacts, many=True).data)

    def create(self, request):
        serializer = ContactCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        contact = async_to_sync(self.get_book().add)(
            request.user.id,
            serializer.validated_data["reference"],
            serializer.validated_data.get("name"),
        )
        return Response(ContactSerializer(contact).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = ContactRenameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        contact = async_to_sync(self.get_book().rename)(
            request.user.id, pk, serializer.validated_data["name"]
        )
        return Response(ContactSerializer(contact).data)

    def destroy(self, request, pk=None):
        async_to_sync(self.get_book().remove)(request.user.id, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(summary="Block contact", tags=["Contacts"], request=None, responses=ContactSerializer)
    @action(detail=True, methods=["post"])
    def block(self, request, pk=None):
        contact = async_to_sync(self.get_book().block)(request.user.id, pk)
        return Response(ContactSerializer(contact).data)

    @extend_schema(summary="Unblock contact", tags=["Contacts"], request=None, responses=ContactSerializer)
    @action(detail=True, methods=["post"])
    def unblock(self, request, pk=None):
        contact = async_to_sync(self.get_book().unblock)(request.user.id, pk)
        return Response(ContactSerializer(contact).data)

    @extend_schema(
        summary="Search contacts by name",
        tags=["Contacts"],
        parameters=[OpenApiParameter(name="q", type=str, required=True)],
        responses=ContactSerializer(many=True),
    )
    @action(detail=False, methods=["get"])
    def search(self, request):
        contacts = async_to_sync(self.get_book().search)(
            request.user.id, request.query_params.get("q", "")
        )
        return Response(ContactSerializer(contacts, many=True).data)

    @extend_schema(
        summary="Find a user by virtual number",
        tags=["Contacts"],
        responses=IdentitySummarySerializer,
    )
    @action(detail=False, methods=["get"], url_path=r"lookup/(?P<handle>[^/]+)")
    def lookup(self, request, handle=None):
        identity = async_to_sync(self.get_book().lookup)(handle)
        return Response(IdentitySummarySerializer(identity).data)
