"""
Metadata request handling.
Turns an inbound path into a metadata fetch and a JSON response body.
"""
import json
import logging

from metadata.client import METADATA_URLS, MetadataKey
from metadata.errors import MalformedResponseFormat
from utils.logging_utils import ServiceLogger

JSON_CONTENT_TYPE = 'application/json'
TEXT_CONTENT_TYPE = 'text/plain; charset=utf-8'

_default_logger = ServiceLogger(logging.getLogger(__name__))


def _text(body, status):
    return body, status, {'Content-Type': TEXT_CONTENT_TYPE}


def extract_zone(raw_zone):
    """Return the zone name from a value such as "projects/123/zones/us-central1-a"."""
    zone = raw_zone.strip().split('/')[-1]
    if not zone:
        raise MalformedResponseFormat(f"Unexpected format for instance-zone metadata: {raw_zone!r}")
    return zone


def handle_metadata_request(ctx, path, fetcher, prefix='istio-test', logger=None):
    """
    Serve /<prefix>/metadata/<type>.

    Args:
        ctx: RequestContext for the outbound call
        path: the request path
        fetcher: object with fetch_metadata(ctx, url)
        prefix: route prefix, only used in the error message
        logger: ServiceLogger

    Returns:
        tuple: (body, status, headers)
    """
    logger = logger or _default_logger
    logger.info(f"Received request for {path}")

    clean_path = path[:-1] if path.endswith('/') else path
    parts = clean_path.split('/')
    if len(parts) != 4:
        logger.error(f"Invalid request: {path}")
        return _text(f"Invalid request: expected /{prefix}/metadata/{{type}}", 400)

    metadata_type = parts[3]
    try:
        key = MetadataKey(metadata_type)
    except ValueError:
        logger.error(f"Unknown metadata type: {metadata_type}")
        return _text("Unknown metadata type", 400)

    try:
        value = fetcher.fetch_metadata(ctx, METADATA_URLS[key])
    except Exception as e:
        # fetcher is any object with fetch_metadata; every failure is a bad gateway
        logger.error(f"Failed to fetch metadata: {e}", metadata_type=metadata_type)
        return _text("Failed to fetch metadata", 502)

    if key is MetadataKey.INSTANCE_ZONE:
        try:
            value = extract_zone(value)
        except MalformedResponseFormat as e:
            logger.error(str(e))
            return _text("Unexpected format for instance-zone metadata", 500)

    try:
        body = json.dumps({metadata_type: value})
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode response: {e}")
        return _text("Failed to encode response", 500)

    return body, 200, {'Content-Type': JSON_CONTENT_TYPE}
