"""
Logging utilities for the metadata service.
"""
import datetime
import json
import logging
import sys

import google.cloud.logging

SERVICE_NAME = 'istio-test'

LOG_LEVELS = {
    'trace': logging.DEBUG,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
    'panic': logging.CRITICAL,
}


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def format(self, record):
        fields = getattr(record, 'fields', None)
        entry = dict(fields) if fields else {}
        # core keys win over caller-supplied fields
        entry.update({
            'time': datetime.datetime.fromtimestamp(record.created, datetime.timezone.utc).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        })
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def parse_log_level(level_name):
    """Map a level name such as "info" or "WARN" to a logging level, defaulting to INFO."""
    if not level_name:
        return logging.INFO
    return LOG_LEVELS.get(level_name.strip().lower(), logging.INFO)


def log_to_cloud(cloud_logger, severity, message, use_cloud_logging=True, **kwargs):
    """Log to Cloud Logging with structured data."""
    if not use_cloud_logging or cloud_logger is None:
        return

    try:
        struct_data = {
            "message": message,
            "component": SERVICE_NAME,
            **kwargs
        }
        cloud_logger.log_struct(struct_data, severity=severity)
    except Exception as e:
        # Cloud Logging is a mirror only; stdout logging already has the entry.
        print(f"Failed to log to Cloud Logging: {str(e)}", file=sys.stderr)


def log_message(severity, message, logger=None, cloud_logger=None, use_cloud_logging=False, **kwargs):
    """Log a message to both standard logging and Cloud Logging."""
    if logger:
        extra = {'fields': kwargs} if kwargs else None
        if severity == "ERROR":
            logger.error(message, extra=extra)
        elif severity == "WARNING":
            logger.warning(message, extra=extra)
        elif severity == "DEBUG":
            logger.debug(message, extra=extra)
        else:
            logger.info(message, extra=extra)

    if cloud_logger:
        log_to_cloud(cloud_logger, severity, message, use_cloud_logging, **kwargs)


class ServiceLogger:
    """
    Logging capability handed to the client, handlers and health checks.

    Wraps a standard logger and, when enabled, a Cloud Logging logger so
    callers do not reach into module-level state.
    """

    def __init__(self, logger, cloud_logger=None, use_cloud_logging=False):
        self.logger = logger
        self.cloud_logger = cloud_logger
        self.use_cloud_logging = use_cloud_logging

    def log(self, severity, message, **fields):
        log_message(severity, message, logger=self.logger, cloud_logger=self.cloud_logger,
                    use_cloud_logging=self.use_cloud_logging, **fields)

    def debug(self, message, **fields):
        self.log("DEBUG", message, **fields)

    def info(self, message, **fields):
        self.log("INFO", message, **fields)

    def warning(self, message, **fields):
        self.log("WARNING", message, **fields)

    def error(self, message, **fields):
        self.log("ERROR", message, **fields)


def setup_logging(log_level='info', use_cloud_logging=False):
    """Set up logging for the application."""
    cloud_logger = None
    if use_cloud_logging:
        try:
            cloud_logger_client = google.cloud.logging.Client()
            cloud_logger = cloud_logger_client.logger(SERVICE_NAME)
            print("Cloud Logging initialized successfully", file=sys.stderr)
        except Exception as e:
            print(f"Failed to initialize Cloud Logging: {str(e)}", file=sys.stderr)
            cloud_logger = None
            use_cloud_logging = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(
        level=parse_log_level(log_level),
        handlers=[handler],
        force=True,
    )
    logger = logging.getLogger(SERVICE_NAME)

    return ServiceLogger(logger, cloud_logger, use_cloud_logging)


def shutdown_logging():
    """Flush and close every logging handler."""
    logging.shutdown()
