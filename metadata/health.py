"""
Health checks for the metadata service.
"""
import datetime
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from metadata.client import CLUSTER_NAME_URL
from metadata.context import DEADLINE_EXCEEDED
from utils.logging_utils import ServiceLogger

# Upper bound on the metadata check, independent of the caller's deadline
CHECK_TIMEOUT = 3.0
# Checks slower than this are reported as degraded
SLOW_THRESHOLD = 1.0

DEFAULT_VERSION = '1.0.0'

# Clock used for check timing
_clock = time.monotonic

START_TIME = time.monotonic()

_default_logger = ServiceLogger(logging.getLogger(__name__))


class HealthStatus(str, Enum):
    HEALTHY = 'healthy'
    DEGRADED = 'degraded'
    UNHEALTHY = 'unhealthy'

    @property
    def severity(self):
        return _SEVERITY[self]


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}

HTTP_STATUS_FOR_HEALTH = {
    HealthStatus.HEALTHY: 200,
    HealthStatus.DEGRADED: 200,
    HealthStatus.UNHEALTHY: 503,
}


def utc_now():
    return datetime.datetime.now(datetime.timezone.utc)


def format_duration(seconds):
    """Human-readable elapsed time, e.g. "1.234s" or "12.5ms"."""
    if seconds >= 1:
        return f"{seconds:.3f}s"
    return f"{seconds * 1000:.3f}ms"


def uptime():
    return str(datetime.timedelta(seconds=time.monotonic() - START_TIME))


@dataclass
class HealthCheck:
    status: HealthStatus
    message: str = ''
    duration: float = 0.0
    last_checked: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self):
        data = {
            'status': self.status.value,
            'duration': format_duration(self.duration),
            'last_checked': self.last_checked.isoformat(),
        }
        if self.message:
            data['message'] = self.message
        return data


@dataclass
class HealthResponse:
    status: HealthStatus
    timestamp: datetime.datetime
    uptime: str
    version: str
    checks: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat(),
            'uptime': self.uptime,
            'version': self.version,
            'checks': {name: check.to_dict() for name, check in self.checks.items()},
        }


def check_metadata_service(ctx, fetcher, timeout=None, slow_threshold=None):
    """
    Check the metadata server by fetching the cluster name.

    The check runs under its own child context bounded by CHECK_TIMEOUT;
    running out of that budget is unhealthy, any other failure or a slow
    answer is degraded.
    """
    timeout = CHECK_TIMEOUT if timeout is None else timeout
    slow_threshold = SLOW_THRESHOLD if slow_threshold is None else slow_threshold

    check_start = _clock()
    check_ctx = ctx.with_timeout(timeout)
    try:
        fetcher.fetch_metadata(check_ctx, CLUSTER_NAME_URL)
    except Exception as e:
        duration = _clock() - check_start
        if check_ctx.err() == DEADLINE_EXCEEDED:
            return HealthCheck(HealthStatus.UNHEALTHY, "Metadata service timeout", duration, utc_now())
        return HealthCheck(HealthStatus.DEGRADED, f"Metadata service error: {e}", duration, utc_now())
    finally:
        check_ctx.cancel()

    duration = _clock() - check_start
    if duration > slow_threshold:
        return HealthCheck(HealthStatus.DEGRADED, "Metadata service responding slowly", duration, utc_now())
    return HealthCheck(HealthStatus.HEALTHY, "Metadata service is responsive", duration, utc_now())


def determine_overall_health(checks):
    """Worst status across all checks; healthy when there are none."""
    return max(
        (check.status for check in checks.values()),
        key=lambda status: status.severity,
        default=HealthStatus.HEALTHY,
    )


def build_health_response(ctx, fetcher, version=DEFAULT_VERSION, logger=None):
    """
    Run every check and encode the result.

    Returns:
        tuple: (body, status, headers); the body is fully encoded before a
        status is chosen so an encoding failure still yields a clean 500.
    """
    logger = logger or _default_logger
    start_check = time.monotonic()

    health = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utc_now(),
        uptime=uptime(),
        version=version,
    )
    health.checks['metadata_service'] = check_metadata_service(ctx, fetcher)
    health.checks['http_server'] = HealthCheck(
        HealthStatus.HEALTHY,
        "HTTP server is responding",
        time.monotonic() - start_check,
        utc_now(),
    )
    health.status = determine_overall_health(health.checks)

    try:
        body = json.dumps(health.to_dict())
    except (TypeError, ValueError) as e:
        logger.error(f"Error encoding health response: {e}")
        return "Failed to encode health response", 500, {'Content-Type': 'text/plain; charset=utf-8'}

    logger.info(
        f"Health check completed: {health.status.value} "
        f"(took {format_duration(time.monotonic() - start_check)})"
    )
    return body, HTTP_STATUS_FOR_HEALTH[health.status], {'Content-Type': 'application/json'}


def basic_health():
    """Liveness check; never touches the metadata server."""
    return "OK", 200, {'Content-Type': 'text/plain; charset=utf-8'}
