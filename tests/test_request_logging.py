from __future__ import annotations

import pytest
from werkzeug.test import EnvironBuilder
from werkzeug.wrappers import Request

from utils.request_logging import (
    determine_log_level,
    get_client_ip,
    get_request_id,
    get_status_class,
    redact_ip,
    redact_query,
    redact_request_fields,
    redact_user_agent,
)


def _request(headers=None, query_string="", remote_addr="192.0.2.10"):
    builder = EnvironBuilder(path="/", headers=headers or {}, query_string=query_string,
                             environ_base={"REMOTE_ADDR": remote_addr})
    return Request(builder.get_environ())


def test_client_ip_prefers_forwarded_for():
    req = _request({"X-Forwarded-For": " 198.51.100.1 , 10.0.0.1", "X-Real-IP": "10.9.9.9"})
    assert get_client_ip(req) == "198.51.100.1"


def test_client_ip_falls_back_to_real_ip_then_remote_addr():
    assert get_client_ip(_request({"X-Real-IP": "10.9.9.9"})) == "10.9.9.9"
    assert get_client_ip(_request()) == "192.0.2.10"


def test_request_id_headers_in_order():
    assert get_request_id(_request({"X-Trace-ID": "t", "X-Correlation-ID": "c"})) == "c"
    assert get_request_id(_request({"X-Request-ID": "r", "X-Trace-ID": "t"})) == "r"
    assert get_request_id(_request()).startswith("req_")


@pytest.mark.parametrize("code,klass", [
    (200, "success"), (204, "success"), (301, "redirect"), (404, "client_error"),
    (503, "server_error"), (100, "unknown"),
])
def test_status_class(code, klass):
    assert get_status_class(code) == klass


@pytest.mark.parametrize("code,duration,level", [
    (200, 0.1, "INFO"),
    (200, 1.5, "WARNING"),
    (404, 0.1, "WARNING"),
    (500, 0.1, "ERROR"),
    (503, 2.0, "ERROR"),
])
def test_log_level(code, duration, level):
    assert determine_log_level(code, duration) == level


def test_redaction_helpers():
    assert redact_query("") == ""
    assert redact_query("page=1&email=a%40b.c") == "email=%3Credacted%3E&page=1"
    assert redact_ip("203.0.113.7") == "203.0.0.0"
    assert redact_ip("2001:db8::1") == "redacted"
    assert redact_ip("") == "redacted"
    assert redact_user_agent("") == "<redacted>"
    assert redact_user_agent("a" * 120) == "a" * 100


def test_redact_request_fields_disabled_returns_raw_values():
    req = _request({"User-Agent": "curl/8"}, query_string="token=abc")
    assert redact_request_fields(req, False) == ("token=abc", "192.0.2.10", "curl/8")


def test_redact_request_fields_enabled():
    req = _request({"User-Agent": "curl/8"}, query_string="token=abc&limit=10")
    assert redact_request_fields(req, True) == ("limit=10&token=%3Credacted%3E", "192.0.0.0", "curl/8")
