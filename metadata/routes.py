"""
Metadata Routes Module
This module provides the Flask routes for metadata lookups and health checks.
"""
from flask import Blueprint, current_app, request

from metadata.context import RequestContext
from metadata.handlers import handle_metadata_request
from metadata.health import basic_health, build_health_response
from security.headers import api_security_options, secure_handler

EXTENSION_KEY = 'metadata_service'

ALL_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


class MetadataService:
    """Per-application state shared by the routes."""

    def __init__(self, fetcher, logger, prefix='istio-test', version='1.0.0', request_timeout=None):
        self.fetcher = fetcher
        self.logger = logger
        self.prefix = prefix
        self.version = version
        self.request_timeout = request_timeout

    def new_context(self):
        return RequestContext(timeout=self.request_timeout)


def _service():
    return current_app.extensions[EXTENSION_KEY]


def create_metadata_blueprint(prefix='istio-test', security_options=None):
    """Create the blueprint serving /<prefix>/metadata/* and /<prefix>/health*."""
    if security_options is None:
        security_options = api_security_options()

    metadata_bp = Blueprint('metadata', __name__, url_prefix=f'/{prefix}')

    @metadata_bp.route('/metadata/', methods=ALL_METHODS, strict_slashes=False)
    @metadata_bp.route('/metadata/<path:subpath>', methods=ALL_METHODS)
    @secure_handler(['GET'], security_options)
    def metadata(subpath=None):
        """Look up a single metadata value"""
        service = _service()
        ctx = service.new_context()
        try:
            return handle_metadata_request(ctx, request.path, service.fetcher,
                                           prefix=service.prefix, logger=service.logger)
        finally:
            ctx.cancel()

    @metadata_bp.route('/health', methods=ALL_METHODS)
    @secure_handler(['GET', 'HEAD'], security_options)
    def health():
        """Detailed health including the metadata server"""
        service = _service()
        ctx = service.new_context()
        try:
            return build_health_response(ctx, service.fetcher, version=service.version,
                                         logger=service.logger)
        finally:
            ctx.cancel()

    @metadata_bp.route('/health/basic', methods=ALL_METHODS)
    @secure_handler(['GET', 'HEAD'], security_options)
    def health_basic():
        """Liveness only"""
        return basic_health()

    return metadata_bp


def register_metadata_routes(app, service, security_options=None):
    """Register metadata routes with the Flask app"""
    app.extensions[EXTENSION_KEY] = service
    app.register_blueprint(create_metadata_blueprint(service.prefix, security_options))
