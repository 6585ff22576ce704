"""
Request correlation.

Every API call gets a request ID: the caller's X-Request-ID when it is a
UUID, a fresh one otherwise. The ID is echoed back in the response, stamped
on every log line through RequestIDFilter, and forwarded to the Celery tasks
the call dispatches so a discovery run can be traced back to its trigger.

Imported by the LOGGING config; keep it free of model imports.
"""

import logging
import threading
import uuid

_local = threading.local()

HEADER_NAME = 'X-Request-ID'
META_KEY = 'HTTP_X_REQUEST_ID'
CELERY_HEADER = 'request_id'


def _coerce_request_id(value):
    if value:
        try:
            return str(uuid.UUID(str(value)))
        except ValueError:
            pass
    return str(uuid.uuid4())


def get_request_id():
    """Request ID bound to the current thread, or None."""
    return getattr(_local, 'request_id', None)


def set_request_context(request_id, user_id=None, path=None):
    _local.request_id = request_id
    _local.user_id = user_id
    _local.path = path


def clear_request_context():
    for attr in ('request_id', 'user_id', 'path'):
        setattr(_local, attr, None)


class RequestIDMiddleware:
    """Binds a request ID for the lifetime of one request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = _coerce_request_id(request.META.get(META_KEY))
        request.request_id = request_id

        user = getattr(request, 'user', None)
        user_id = str(user.pk) if user is not None and user.is_authenticated else None
        set_request_context(request_id, user_id=user_id, path=request.path)

        try:
            response = self.get_response(request)
        finally:
            clear_request_context()

        response[HEADER_NAME] = request_id
        return response


class RequestIDFilter(logging.Filter):
    """Adds ``request_id`` to records so formatters can print it."""

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        return True


def celery_request_id_headers():
    """Headers for apply_async so the worker logs under the caller's request ID."""
    request_id = get_request_id()
    return {CELERY_HEADER: request_id} if request_id else {}


def setup_celery_request_context(headers):
    """Bind the request ID carried in task headers, minting one for beat-driven tasks."""
    set_request_context(_coerce_request_id((headers or {}).get(CELERY_HEADER)))
