"""
API middleware: CORS fallback for the till SPA and a one-line access log per
API request. API views are csrf_exempt themselves.
"""
import logging
import time

from django.conf import settings

logger = logging.getLogger('tillbook.requests')

API_PREFIX = '/api/'


class CorsFallbackMiddleware:
    """
    Put CORS headers on API responses for allowed origins when corsheaders did not
    (e.g. a 500 rendered before corsheaders ran). Leaves existing headers alone.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.allowed_origins = set(getattr(settings, 'CORS_ALLOWED_ORIGINS', []))

    def __call__(self, request):
        response = self.get_response(request)
        origin = request.META.get('HTTP_ORIGIN', '').strip()
        if not origin or origin not in self.allowed_origins:
            return response
        if response.get('Access-Control-Allow-Origin'):
            return response
        response['Access-Control-Allow-Origin'] = origin
        response['Vary'] = 'Origin'
        if 'Access-Control-Allow-Methods' not in response:
            response['Access-Control-Allow-Methods'] = 'GET, POST, PATCH, DELETE, OPTIONS'
        return response


class ApiAccessLogMiddleware:
    """Log method, path, status and duration for every /api/ request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith(API_PREFIX):
            return self.get_response(request)
        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level, '%s %s -> %s (%.1f ms)',
            request.method, request.get_full_path(), response.status_code, elapsed_ms,
        )
        return response
