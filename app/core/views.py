"""
Core views providing infrastructure endpoints and shared error mapping.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks, plus the
helper every API view uses to turn application errors into responses.
"""

from __future__ import annotations

import logging

from django.db import connection
from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific classes first; subclasses inherit their parent's status
ERROR_STATUS_MAP: tuple[tuple[type[BaseApplicationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def error_response(exc: BaseApplicationError) -> Response:
    """
    Build a DRF response for an application error.

    Args:
        exc: Any BaseApplicationError raised by a service

    Returns:
        Response with exc.to_dict() as body and the mapped HTTP status
        (500 for unmapped application errors)
    """
    for error_class, status_code in ERROR_STATUS_MAP:
        if isinstance(exc, error_class):
            return Response(exc.to_dict(), status=status_code)

    logger.error("Unmapped application error: %r", exc)
    return Response(exc.to_dict(), status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Used by container health checks and load balancers. The database is
    required; the cache (also the lock backend) is reported but a cache
    outage alone does not mark the service unhealthy.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check database probe failed")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        logger.warning("Health check cache probe failed", exc_info=True)
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
