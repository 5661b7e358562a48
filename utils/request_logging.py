"""
Request/response logging for the Flask app, with optional PII redaction.
"""
import time
from urllib.parse import parse_qsl, urlencode

from flask import g, request

ALLOWED_QUERY_PARAMS = ('page', 'limit')
MAX_USER_AGENT_LENGTH = 100
SLOW_REQUEST_SECONDS = 1.0


def get_client_ip(req):
    """First X-Forwarded-For hop, then X-Real-IP, then the socket address."""
    forwarded_for = req.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = req.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()

    return (req.remote_addr or '').strip()


def get_request_id(req):
    for header in ('X-Request-ID', 'X-Correlation-ID', 'X-Trace-ID'):
        value = req.headers.get(header)
        if value:
            return value
    return f"req_{time.time_ns()}"


def get_status_class(status_code):
    if 200 <= status_code < 300:
        return 'success'
    if 300 <= status_code < 400:
        return 'redirect'
    if 400 <= status_code < 500:
        return 'client_error'
    if status_code >= 500:
        return 'server_error'
    return 'unknown'


def determine_log_level(status_code, duration):
    """ERROR for server errors, WARNING for client errors or slow requests, else INFO."""
    if status_code >= 500:
        return 'ERROR'
    if status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
        return 'WARNING'
    return 'INFO'


def redact_query(raw_query):
    if not raw_query:
        return ''
    pairs = parse_qsl(raw_query, keep_blank_values=True)
    sanitized = [
        (key, value if key in ALLOWED_QUERY_PARAMS else '<redacted>')
        for key, value in pairs
    ]
    return urlencode(sorted(sanitized))


def redact_ip(client_ip):
    """Keep only the first octet of an IPv4 address."""
    if '.' in client_ip and ':' not in client_ip:
        parts = client_ip.split('.')
        if len(parts) == 4:
            return f"{parts[0]}.0.0.0"
    return 'redacted'


def redact_user_agent(user_agent):
    sanitized = user_agent[:MAX_USER_AGENT_LENGTH]
    return sanitized or '<redacted>'


def redact_request_fields(req, enable_redaction):
    """
    Returns:
        tuple: (query, client_ip, user_agent), sanitized when redaction is on
    """
    raw_query = req.query_string.decode('latin-1')
    user_agent = req.headers.get('User-Agent', '')
    client_ip = get_client_ip(req)

    if not enable_redaction:
        return raw_query, client_ip, user_agent

    return redact_query(raw_query), redact_ip(client_ip), redact_user_agent(user_agent)


def register_request_logging(app, logger, enable_redaction=False):
    """Log the start and completion of every request handled by `app`."""

    @app.before_request
    def _log_request_start():
        query, client_ip, user_agent = redact_request_fields(request, enable_redaction)
        g.request_log = {
            'start': time.monotonic(),
            'query': query,
            'client_ip': client_ip,
            'user_agent': user_agent,
            'request_id': get_request_id(request),
        }
        logger.info(
            "HTTP request started",
            type='request_start',
            method=request.method,
            path=request.path,
            query=query,
            client_ip=client_ip,
            user_agent=user_agent,
            request_id=g.request_log['request_id'],
            content_length=request.content_length or 0,
        )

    @app.after_request
    def _log_request_complete(response):
        info = g.pop('request_log', None)
        if info is None:
            return response

        duration = time.monotonic() - info['start']
        status = response.status_code
        message = f"HTTP {request.method} {request.path} - {status} - {duration * 1000:.3f}ms - {info['client_ip']}"
        logger.log(
            determine_log_level(status, duration),
            message,
            type='request_complete',
            method=request.method,
            path=request.path,
            query=info['query'],
            status=status,
            status_class=get_status_class(status),
            duration_ms=duration * 1000,
            response_size=response.calculate_content_length() or 0,
            client_ip=info['client_ip'],
            user_agent=info['user_agent'],
            request_id=info['request_id'],
        )
        return response
