"""
Health check endpoints for Kubernetes/Docker probes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

from apps.indexing.embedder import get_embedding_client

logger = logging.getLogger(__name__)

EMBEDDING_HEALTH_CACHE_KEY = 'readyz:embedding'


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_database() -> tuple[str, bool]:
    """Check database connectivity."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        return 'ok', True
    except DatabaseError as e:
        logger.error(f"Database health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_embedding_service() -> tuple[str, bool]:
    """
    Check the embedding service (optional, degrades gracefully).

    Listing and deleting documents still work while it is down. The check
    embeds a short text, so its result is cached for
    EMBEDDING_HEALTH_CACHE_TTL seconds.
    """
    status = cache.get(EMBEDDING_HEALTH_CACHE_KEY)
    if status is None:
        status = 'ok' if get_embedding_client().check_connection() else 'degraded'
        cache.set(EMBEDDING_HEALTH_CACHE_KEY, status, settings.EMBEDDING_HEALTH_CACHE_TTL)
    return status, True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.

    Returns 200 only if all critical dependencies are reachable.
    """
    checks = {}
    all_ok = True

    # Database (critical)
    status, ok = check_database()
    checks['database'] = status
    if not ok:
        all_ok = False

    # Embedding service (optional - doesn't block readiness)
    status, _ = check_embedding_service()
    checks['embedding'] = status

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)
