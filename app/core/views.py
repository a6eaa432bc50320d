"""
Infrastructure endpoints that sit outside the billing API.
"""

import logging

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _database_ok() -> bool:
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        return cursor.fetchone() == (1,)


def _cache_ok() -> bool:
    cache.set("health_check", "ok", timeout=5)
    return cache.get("health_check") == "ok"


# (component, check, required for a healthy response)
HEALTH_CHECKS = (
    ("database", _database_ok, True),
    ("cache", _cache_ok, False),
)


def health_check(request):
    """
    Liveness/readiness check.

    The database is required; the cache only degrades the response because
    settlement and the sweep never depend on it.

    Returns 200 with {"status": "healthy", "database": "connected", ...},
    or 503 with status "unhealthy" when a required component is down.
    """
    body = {"status": "healthy"}
    status_code = 200

    for component, check, required in HEALTH_CHECKS:
        try:
            connected = check()
        except Exception:
            logger.warning(f"Health check failed: {component}", exc_info=True)
            connected = False

        body[component] = "connected" if connected else "disconnected"
        if not connected and required:
            body["status"] = "unhealthy"
            status_code = 503

    return JsonResponse(body, status=status_code)
