"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks.
"""

import logging

from asgiref.sync import async_to_sync
from django.http import JsonResponse

from core.documents import get_document_store
from core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    This endpoint is used by:
    - Docker health checks
    - Kubernetes liveness/readiness probes
    - Load balancers

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - document_store: "connected" or "disconnected"
        - backend: the configured document store adapter

    HTTP Status Codes:
        200: All systems operational
        503: The document store did not answer

    Example Response:
        {
            "status": "healthy",
            "document_store": "connected",
            "backend": "orm"
        }
    """
    store = get_document_store()
    health_status = {
        "status": "healthy",
        "document_store": "unknown",
        "backend": store.backend_name,
    }

    try:
        async_to_sync(store.ping)()
        health_status["document_store"] = "connected"
    except ExternalServiceError as e:
        logger.warning(f"Health check failed: {e}")
        health_status["document_store"] = "disconnected"
        health_status["status"] = "unhealthy"

    return JsonResponse(health_status, status=200 if health_status["status"] == "healthy" else 503)
