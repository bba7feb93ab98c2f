"""Health check endpoints for production monitoring."""

import logging

from django.db import connection
from django.db.utils import OperationalError
from django.http import JsonResponse
from django.utils import timezone

logger = logging.getLogger(__name__)


def _no_cache(response: JsonResponse) -> JsonResponse:
    response["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return response


def health_check(request):
    """Liveness: the process is up and serving requests."""
    return _no_cache(JsonResponse({"status": "ok", "timestamp": timezone.now().isoformat()}))


def readiness_check(request):
    """Readiness: the database answers a trivial query."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except OperationalError as exc:
        logger.error(f"Readiness check failed: {exc}")
        return _no_cache(JsonResponse({"status": "unavailable", "database": "error"}, status=503))
    return _no_cache(JsonResponse({"status": "ready", "database": "ok"}))
