"""
Metadata Package
This package fetches GCE instance metadata and exposes it over HTTP,
together with the service health checks.
"""

from metadata.client import MetadataClient, MetadataFetcher, fetch_metadata
from metadata.context import RequestContext
from metadata.errors import MetadataError

__all__ = ['MetadataClient', 'MetadataFetcher', 'fetch_metadata', 'RequestContext', 'MetadataError']
