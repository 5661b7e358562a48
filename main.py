#!/usr/bin/env python3
"""
Metadata Service Application
Exposes selected GCE instance metadata (cluster name, cluster location,
instance zone) over HTTP, together with basic and detailed health checks.
"""

import signal
import sys
import threading

from flask import Flask
from werkzeug.serving import WSGIRequestHandler, make_server

from metadata.client import MetadataClient
from metadata.routes import MetadataService, register_metadata_routes
from security.headers import apply_security_headers, custom_security_options, text_response
from utils.config_utils import Config, load_config
from utils.logging_utils import setup_logging, shutdown_logging
from utils.request_logging import register_request_logging


class TimeoutRequestHandler(WSGIRequestHandler):
    """
    Request handler applying the server read and idle timeouts.

    The read timeout covers receiving a request; on a kept-alive
    connection the wait for the next request line uses the idle timeout.
    """
    protocol_version = 'HTTP/1.1'
    read_timeout = 5.0
    idle_timeout = 60.0
    timeout = read_timeout

    def setup(self):
        super().setup()
        self.requests_handled = 0

    def next_timeout(self):
        return self.idle_timeout if self.requests_handled else self.read_timeout

    def handle_one_request(self):
        self.connection.settimeout(self.next_timeout())
        super().handle_one_request()
        self.requests_handled += 1

    def parse_request(self):
        self.connection.settimeout(self.read_timeout)
        return super().parse_request()


def make_request_handler(server_config):
    """Build a request handler class bound to the configured timeouts."""
    return type('ConfiguredRequestHandler', (TimeoutRequestHandler,), {
        'read_timeout': server_config.read_timeout,
        'idle_timeout': server_config.idle_timeout,
        'timeout': server_config.read_timeout,
    })


def create_app(config=None, client=None, service_logger=None):
    """
    Build the Flask application.

    Args:
        config (Config, optional): configuration, defaults to built-in values
        client (optional): metadata fetcher, defaults to a MetadataClient from config
        service_logger (ServiceLogger, optional): logging capability
    """
    config = config or Config()
    if service_logger is None:
        service_logger = setup_logging(config.observability.log_level)
    if client is None:
        client = MetadataClient.from_config(config.metadata, logger=service_logger)

    app = Flask(__name__)

    security = config.security
    api_options = custom_security_options(security.api_coep, security.api_coop, security.api_corp)
    default_options = custom_security_options(security.default_coep, security.default_coop, security.default_corp)

    service = MetadataService(
        fetcher=client,
        logger=service_logger,
        prefix=config.server.route_prefix,
        version=config.server.version,
        request_timeout=config.server.write_timeout,
    )
    register_metadata_routes(app, service, api_options)

    @app.errorhandler(404)
    def not_found(error):
        response = text_response('Not Found', 404)
        apply_security_headers(response.headers, default_options)
        return response

    @app.errorhandler(405)
    def method_not_allowed(error):
        response = text_response('Method Not Allowed', 405)
        apply_security_headers(response.headers, default_options)
        return response

    register_request_logging(app, service_logger, config.observability.enable_pii_redaction)

    return app


def main():
    """Main entry point for the application."""
    config = load_config()
    service_logger = setup_logging(config.observability.log_level,
                                   use_cloud_logging=config.observability.enable_cloud_logging)

    try:
        config.validate()
    except ValueError as e:
        service_logger.error(f"Invalid configuration: {e}")
        shutdown_logging()
        sys.exit(1)

    service_logger.info("Application is starting")

    app = create_app(config, service_logger=service_logger)

    try:
        server = make_server('0.0.0.0', int(config.server.port), app, threaded=True,
                             request_handler=make_request_handler(config.server))
    except (OSError, ValueError) as e:
        service_logger.error(f"Failed to start server: {e}")
        shutdown_logging()
        sys.exit(1)

    stop = threading.Event()

    def _handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    server_thread = threading.Thread(target=server.serve_forever, name='http-server', daemon=True)
    service_logger.info(f"Starting server on port {config.server.port}...")
    server_thread.start()

    try:
        stop.wait()
        service_logger.info("Shutting down server...")
        server.shutdown()
        server_thread.join(timeout=config.observability.shutdown_timeout)
        if server_thread.is_alive():
            service_logger.error("Server forced to shutdown")
        server.server_close()
        service_logger.info("Server exiting")
    finally:
        shutdown_logging()


if __name__ == "__main__":
    main()
