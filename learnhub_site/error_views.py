# learnhub_site/error_views.py
"""
JSON error handlers used when DEBUG=False.
Every endpoint in this project speaks JSON, so errors use the same
{ok, code, reason} envelope as the services.
"""

import logging
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _error(code, reason, status):
    return JsonResponse({'ok': False, 'code': code, 'reason': reason}, status=status)


def bad_request(request, exception=None):
    return _error('INVALID_REQUEST', 'Bad request.', 400)


def permission_denied(request, exception=None):
    logger.warning(
        f"403 Forbidden: {request.path} - User: {request.user} - IP: {request.META.get('REMOTE_ADDR')}"
    )
    return _error('FORBIDDEN', 'You do not have permission to access this resource.', 403)


def page_not_found(request, exception=None):
    return _error('NOT_FOUND', 'The requested resource was not found.', 404)


def server_error(request):
    """
    Handle 500 Internal Server errors.

    Django calls this without the exception; the traceback has already been
    logged by django.request.
    """
    logger.error(f"500 Server Error: {request.path} - IP: {request.META.get('REMOTE_ADDR')}")
    return _error('SERVER_ERROR', 'An unexpected error occurred. Please try again later.', 500)
