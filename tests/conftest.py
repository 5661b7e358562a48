import logging

import pytest
import requests

from metadata.client import CLUSTER_LOCATION_URL, CLUSTER_NAME_URL, INSTANCE_ZONE_URL
from metadata.context import RequestContext
from metadata.errors import TransportError
from utils.logging_utils import ServiceLogger


def make_response(status_code, text=""):
    r = requests.Response()
    r.status_code = status_code
    r.url = "http://metadata.test"
    r._content = text.encode("utf-8")  # type: ignore[attr-defined]
    r._content_consumed = True  # type: ignore[attr-defined]
    r.encoding = "utf-8"
    return r


class ScriptedSession(requests.Session):
    """Session whose send() replays a script of responses or exceptions."""

    def __init__(self, script, on_send=None):
        super().__init__()
        self.script = list(script)
        self.sent = []
        self.on_send = on_send

    def send(self, request, **kwargs):
        self.sent.append((request, kwargs))
        if self.on_send is not None:
            self.on_send(request)
        outcome = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingContext(RequestContext):
    """Context that records backoff sleeps instead of sleeping."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sleeps = []

    def wait(self, seconds):
        self.sleeps.append(seconds)
        return self.done()


class RecordingLogger(ServiceLogger):
    def __init__(self):
        super().__init__(logging.getLogger("tests"))
        self.records = []

    def log(self, severity, message, **fields):
        self.records.append((severity, message, fields))

    def messages(self, severity=None):
        return [m for s, m, _ in self.records if severity is None or s == severity]


class FakeFetcher:
    """Stand-in for MetadataClient that answers from a fixed table."""

    values = {
        CLUSTER_NAME_URL: "test-cluster-name",
        CLUSTER_LOCATION_URL: "test-cluster-location",
        INSTANCE_ZONE_URL: "projects/1234567890/zones/us-central1-a",
    }

    def __init__(self, values=None, error=None):
        if values is not None:
            self.values = values
        self.error = error
        self.calls = []

    def fetch_metadata(self, ctx, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if url not in self.values:
            raise TransportError(f"unknown URL: {url}")
        return self.values[url]


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()
