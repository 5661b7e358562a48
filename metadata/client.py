"""
Metadata client for the GCE metadata server.
Fetches a single metadata value with bounded retries and exponential
backoff, honouring the caller's RequestContext.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import requests
from tenacity import RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from metadata.context import RequestContext
from metadata.errors import (
    ContextCancelled,
    ExhaustedRetries,
    RequestConstructionError,
    TransportError,
    UpstreamStatusError,
)
from utils.logging_utils import ServiceLogger

METADATA_BASE_URL = "http://metadata.google.internal/computeMetadata/v1/instance"
CLUSTER_NAME_URL = f"{METADATA_BASE_URL}/attributes/cluster-name"
CLUSTER_LOCATION_URL = f"{METADATA_BASE_URL}/attributes/cluster-location"
INSTANCE_ZONE_URL = f"{METADATA_BASE_URL}/zone"

METADATA_HEADERS = {"Metadata-Flavor": "Google"}

# urllib3 rejects non-positive timeouts
MIN_REQUEST_TIMEOUT = 0.001
BODY_CHUNK_SIZE = 8192


class MetadataKey(str, Enum):
    CLUSTER_NAME = "cluster-name"
    CLUSTER_LOCATION = "cluster-location"
    INSTANCE_ZONE = "instance-zone"


METADATA_URLS = {
    MetadataKey.CLUSTER_NAME: CLUSTER_NAME_URL,
    MetadataKey.CLUSTER_LOCATION: CLUSTER_LOCATION_URL,
    MetadataKey.INSTANCE_ZONE: INSTANCE_ZONE_URL,
}


class MetadataFetcher(Protocol):
    """Anything that can fetch a metadata value for a URL."""

    def fetch_metadata(self, ctx: RequestContext, url: str) -> str:
        ...


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")

    def delay_before(self, attempt):
        """Backoff slept before `attempt` (1-based, attempt >= 2)."""
        return min(self.base_delay * self.multiplier ** (attempt - 2), self.max_delay)


def _is_retryable(exception):
    if isinstance(exception, TransportError):
        return True
    if isinstance(exception, UpstreamStatusError):
        return exception.retryable
    return False


class MetadataClient:
    """Retrying HTTP client for the metadata server."""

    def __init__(self, http_timeout: float = 10.0, max_retries: int = 3,
                 base_retry_delay: float = 0.1, max_retry_delay: float = 2.0,
                 retry_multiplier: float = 2.0, logger: ServiceLogger = None,
                 session: requests.Session = None):
        self.http_timeout = http_timeout
        self.policy = RetryPolicy(
            max_attempts=max_retries,
            base_delay=base_retry_delay,
            max_delay=max_retry_delay,
            multiplier=retry_multiplier,
        )
        self.logger = logger or ServiceLogger(logging.getLogger(__name__))
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, metadata_config, logger=None):
        return cls(
            http_timeout=metadata_config.http_timeout,
            max_retries=metadata_config.max_retries,
            base_retry_delay=metadata_config.base_retry_delay,
            max_retry_delay=metadata_config.max_retry_delay,
            retry_multiplier=metadata_config.retry_multiplier,
            logger=logger,
        )

    def fetch_metadata(self, ctx: RequestContext, url: str) -> str:
        """
        Fetch a metadata value, retrying transport errors, 5xx and 429.

        Raises:
            ContextCancelled: the context finished before or between attempts.
            RequestConstructionError: the URL could not be turned into a request.
            UpstreamStatusError: a non-retryable status was returned.
            ExhaustedRetries: every attempt failed with a retryable error.
        """
        policy = self.policy

        def _sleep(seconds):
            if ctx.wait(seconds):
                raise ContextCancelled(ctx.err())

        def _before_sleep(retry_state):
            error = retry_state.outcome.exception()
            self.logger.info(
                f"Metadata fetch attempt {retry_state.attempt_number} failed, "
                f"retrying in {retry_state.next_action.sleep:.3f}s: {error}",
                url=url,
            )

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.multiplier,
                max=policy.max_delay,
            ),
            retry=retry_if_exception(_is_retryable),
            sleep=_sleep,
            before_sleep=_before_sleep,
        )

        try:
            for attempt in retrying:
                with attempt:
                    value = self._fetch_once(ctx, url)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise ExhaustedRetries(policy.max_attempts, last_error) from last_error

        attempt_number = attempt.retry_state.attempt_number
        if attempt_number > 1:
            self.logger.info(f"Metadata fetch succeeded on attempt {attempt_number}", url=url)
        return value

    def _fetch_once(self, ctx, url):
        """Perform exactly one GET against the metadata server."""
        if ctx.done():
            raise ContextCancelled(ctx.err())

        try:
            prepared = self.session.prepare_request(
                requests.Request("GET", url, headers=METADATA_HEADERS)
            )
        except (requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            raise RequestConstructionError(f"error creating request: {e}") from e

        timeout = self.http_timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = max(min(timeout, remaining), MIN_REQUEST_TIMEOUT)

        # requests applies the timeout per connect and per socket read,
        # so the body is streamed and the deadline checked between chunks.
        try:
            response = self.session.send(prepared, timeout=timeout, stream=True)
        except (requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            raise RequestConstructionError(f"error creating request: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"error executing request: {e}") from e

        try:
            body = self._read_body(ctx, response)
            if not 200 <= response.status_code < 300:
                raise UpstreamStatusError(url, response.status_code, body)
            return body
        finally:
            response.close()

    def _read_body(self, ctx, response):
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                if ctx.done():
                    raise ContextCancelled(ctx.err())
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"error reading response body: {e}") from e
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")


_default_client = None


def get_default_client():
    """Lazily build the process-wide client with the stock settings."""
    global _default_client
    if _default_client is None:
        _default_client = MetadataClient()
    return _default_client


def fetch_metadata(ctx, url):
    """Fetch metadata using the default client."""
    return get_default_client().fetch_metadata(ctx, url)
