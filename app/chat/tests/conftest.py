"""
Test configuration and fixtures for chat tests.

This module provides:
- Chat fixtures (an individual chat and a group)
- Client fixtures per identity
- An upload helper for attachment tests

Identities (alice, bob, carol, dave) and the Synced service fixtures come
from the project conftest.

Usage:
    def test_example(direct_chat, alice_client):
        response = alice_client.get(f"/api/v1/chats/{direct_chat.id}/")
        assert response.status_code == 200
"""

import io

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image

# Minimal PDF structure that libmagic recognises
SAMPLE_PDF = b"""%PDF-1.4
1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj
2 0 obj << /Type /Pages /Kids [] /Count 0 >> endobj
xref
0 3
0000000000 65535 f
0000000009 00000 n
0000000058 00000 n
trailer << /Size 3 /Root 1 0 R >>
startxref
110
%%EOF"""

# Start of a Linux executable
SAMPLE_ELF = b"\x7fELF\x02\x01\x01\x00" + b"\x00" * 8 + b"\x02\x00\x3e\x00\x01\x00\x00\x00" + b"\x00" * 48


def image_bytes(image_format="PNG"):
    """Encode a small solid image with Pillow."""
    mode = "P" if image_format == "GIF" else "RGB"
    image = Image.new(mode, (32, 32), color=1 if mode == "P" else "red")
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


# =============================================================================
# Chat Fixtures
# =============================================================================


@pytest.fixture
def direct_chat(chat_registry, alice, bob):
    """Individual chat between alice and bob."""
    return chat_registry.create_individual(alice.id, bob.id)


@pytest.fixture
def group_chat(chat_registry, alice, bob, carol):
    """Group named "Weekend Trip": alice is admin, bob and carol are members."""
    return chat_registry.create_group(alice.id, "Weekend Trip", [bob.id, carol.id])


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture
def alice_client(auth_client, alice):
    return auth_client(alice)


@pytest.fixture
def bob_client(auth_client, bob):
    return auth_client(bob)


@pytest.fixture
def carol_client(auth_client, carol):
    return auth_client(carol)


@pytest.fixture
def dave_client(auth_client, dave):
    return auth_client(dave)


# =============================================================================
# Uploads
# =============================================================================


@pytest.fixture
def make_upload():
    """
    Factory fixture for in-memory uploads; a real PNG unless content is given.

    Usage:
        upload = make_upload("report.pdf", SAMPLE_PDF, "application/pdf")
    """

    def _make_upload(name="photo.png", content=None, content_type="image/png"):
        if content is None:
            content = image_bytes("PNG")
        return SimpleUploadedFile(name=name, content=content, content_type=content_type)

    return _make_upload


@pytest.fixture
def media_root(settings, tmp_path):
    """Write uploads under a temporary MEDIA_ROOT."""
    settings.MEDIA_ROOT = str(tmp_path)
    settings.MEDIA_URL = "/media/"
    return tmp_path


# =============================================================================
# Sample File Contents
# =============================================================================


@pytest.fixture
def sample_jpeg():
    return image_bytes("JPEG")


@pytest.fixture
def sample_gif():
    return image_bytes("GIF")


@pytest.fixture
def sample_pdf():
    return SAMPLE_PDF


@pytest.fixture
def sample_elf():
    """An executable header; not an allowed attachment under any name."""
    return SAMPLE_ELF
