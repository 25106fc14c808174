"""
DRF exception handler rendering the application error taxonomy.

Configured through REST_FRAMEWORK["EXCEPTION_HANDLER"].

Rendering:
    - BaseApplicationError: ``to_dict()`` with the class status code
    - DRF's own exceptions (validation, authentication, throttling): DRF's
      default rendering
    - ExternalServiceError and anything unexpected: logged with traceback;
      when DEBUG is off the body carries a generic message only

Example response (404):
    {
        "error": "Chat not found",
        "error_code": "CHAT_NOT_FOUND",
        "details": {"chat_id": "65f0c2..."}
    }
"""

from __future__ import annotations

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.exceptions import BaseApplicationError, ExternalServiceError

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An unexpected error occurred. Please try again later."


def exception_handler(exc, context):
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else "unknown view"

    if isinstance(exc, ExternalServiceError):
        logger.exception(f"Storage backend failure in {view_name}: {exc}")
        body = exc.to_dict()
        if not settings.DEBUG:
            body = {"error": GENERIC_MESSAGE, "error_code": exc.error_code}
        return Response(body, status=exc.status_code)

    if isinstance(exc, BaseApplicationError):
        logger.info(f"{view_name} answered {exc.status_code}: {exc}")
        return Response(exc.to_dict(), status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is not None:
        return response

    logger.exception(f"Unhandled error in {view_name}")
    body = {"error": GENERIC_MESSAGE, "error_code": "INTERNAL_ERROR"}
    if settings.DEBUG:
        body["details"] = {"exception": exc.__class__.__name__, "message": str(exc)}
    return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
