"""
Serializers for contact book entries.
"""

from rest_framework import serializers

from authentication.serializers import IdentitySummarySerializer
from contacts.constants import CONTACT_CONFIG


class ContactSerializer(serializers.Serializer):
    """Contact entry with the target identity's public summary."""

    id = serializers.CharField(read_only=True)
    contact_id = serializers.CharField(source="contact", read_only=True)
    name = serializers.CharField(read_only=True)
    is_blocked = serializers.BooleanField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)
    contact = IdentitySummarySerializer(source="identity", read_only=True, allow_null=True)


class ContactCreateSerializer(serializers.Serializer):
    """
    Add-contact request.

    Either ``handle`` (virtual number) or ``contact_id`` identifies the target.
    """

    handle = serializers.CharField(required=False, allow_blank=True)
    contact_id = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(
        required=False, allow_blank=True, max_length=CONTACT_CONFIG.MAX_NAME_LENGTH
    )

    def validate(self, attrs):
        reference = (attrs.get("handle") or attrs.get("contact_id") or "").strip()
        if not reference:
            raise serializers.ValidationError("Provide either handle or contact_id.")
        attrs["reference"] = reference
        return attrs


class ContactRenameSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=CONTACT_CONFIG.MAX_NAME_LENGTH)
