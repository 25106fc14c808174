"""
Serializers for accounts and identities.

This module provides DRF serializers for:
- Registration and login requests
- Identity representations (own profile vs. public summary)
- Profile updates

Identities are dataclasses rather than models, so every serializer here is a
plain ``serializers.Serializer``.

Security:
    - Password fields are write-only
    - The password hash never appears in any representation
"""

from rest_framework import serializers


class IdentitySummarySerializer(serializers.Serializer):
    """
    Public view of an identity.

    Used wherever another user is shown: chat participants, message
    senders, contact targets, presence events.
    """

    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    avatar = serializers.CharField(read_only=True)
    virtual_number = serializers.CharField(read_only=True)
    status = serializers.CharField(read_only=True)
    is_online = serializers.BooleanField(read_only=True)
    last_seen = serializers.DateTimeField(read_only=True, allow_null=True)


class IdentitySerializer(IdentitySummarySerializer):
    """Own profile: the public summary plus email and timestamps."""

    email = serializers.EmailField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)
    updated_at = serializers.DateTimeField(read_only=True, allow_null=True)


class RegisterSerializer(serializers.Serializer):
    """
    Registration request.

    The email is normalized (trimmed, lowercased); uniqueness is checked by
    AccountService so the check and the insert share one code path.
    """

    name = serializers.CharField(max_length=100, trim_whitespace=True)
    email = serializers.EmailField()
    password = serializers.CharField(
        write_only=True,
        min_length=6,
        style={"input_type": "password"},
        help_text="Password must be at least 6 characters.",
    )
    avatar = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_email(self, value):
        return value.strip().lower()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})


class ProfileUpdateSerializer(serializers.Serializer):
    """Partial profile update; any subset of name, avatar and status."""

    name = serializers.CharField(required=False, max_length=100)
    avatar = serializers.CharField(required=False, allow_blank=True)
    status = serializers.CharField(required=False, allow_blank=True, max_length=140)


class AuthResponseSerializer(serializers.Serializer):
    """Response body of register and login."""

    token = serializers.CharField()
    user = IdentitySerializer()
