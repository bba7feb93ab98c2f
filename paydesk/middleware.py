"""
Request correlation for paydesk.

Every request carries an ID (taken from a well-formed X-Request-ID header or
generated) that is echoed on the response and stamped on every log record
emitted while the request is being served.
"""
import re
import time
import uuid
import logging
import threading

logger = logging.getLogger('paydesk.requests')

_thread_locals = threading.local()

NO_REQUEST_ID = 'no-id'
REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9._-]{1,64}$')
SLOW_REQUEST_SECONDS = 5.0


def get_current_request_id():
    return getattr(_thread_locals, 'request_id', NO_REQUEST_ID)


class RequestIDFilter(logging.Filter):
    def filter(self, record):
        record.request_id = get_current_request_id()
        return True


class RequestIDMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        incoming = request.headers.get('X-Request-ID', '')
        request_id = incoming if REQUEST_ID_PATTERN.match(incoming) else uuid.uuid4().hex
        request.request_id = request_id
        _thread_locals.request_id = request_id
        started = time.monotonic()

        try:
            response = self.get_response(request)
            self._log_request(request, response.status_code, time.monotonic() - started)
        finally:
            _thread_locals.request_id = NO_REQUEST_ID

        response['X-Request-ID'] = request_id
        return response

    @staticmethod
    def _log_request(request, status, duration):
        if not request.path.startswith('/api/'):
            return
        if status >= 500 or duration > SLOW_REQUEST_SECONDS:
            logger.warning("%s %s -> %s in %.2fs", request.method, request.path, status, duration)
        else:
            logger.info("%s %s -> %s in %.2fs", request.method, request.path, status, duration)
