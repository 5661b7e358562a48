"""
Error types raised while fetching instance metadata.
"""


class MetadataError(RuntimeError):
    """Base class for metadata fetch failures."""


class ContextCancelled(MetadataError):
    """The caller's context was cancelled or its deadline passed."""

    def __init__(self, reason):
        super().__init__(f"context cancelled: {reason}")
        self.reason = reason


class RequestConstructionError(MetadataError):
    """The outbound request could not be built (e.g. malformed URL)."""


class TransportError(MetadataError):
    """Network-level failure talking to the metadata server."""


class UpstreamStatusError(MetadataError):
    """The metadata server answered with a non-2xx status."""

    def __init__(self, url, status_code, body):
        super().__init__(
            f"failed to get metadata from {url}, status code: {status_code}, response: {body}"
        )
        self.url = url
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self):
        return 500 <= self.status_code < 600 or self.status_code == 429


class ExhaustedRetries(MetadataError):
    """Every attempt failed; `last_error` holds the final cause."""

    def __init__(self, attempts, last_error):
        super().__init__(f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class MalformedResponseFormat(MetadataError):
    """The metadata value did not have the expected shape."""
