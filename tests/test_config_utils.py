from __future__ import annotations

import pytest

from utils.config_utils import (
    Config,
    SecurityConfig,
    get_bool,
    get_duration,
    get_env_var,
    get_float,
    get_int,
    load_config,
    parse_duration,
)

ENV_KEYS = [
    "PORT", "SERVER_READ_TIMEOUT", "SERVER_WRITE_TIMEOUT", "SERVER_IDLE_TIMEOUT",
    "METADATA_HTTP_TIMEOUT", "METADATA_MAX_RETRIES", "METADATA_BASE_RETRY_DELAY",
    "METADATA_MAX_RETRY_DELAY", "METADATA_RETRY_MULTIPLIER", "LOG_LEVEL",
    "ENABLE_CLOUD_LOGGING", "ENABLE_PII_REDACTION", "SHUTDOWN_TIMEOUT", "ROUTE_PREFIX",
    "APP_VERSION", "SECURITY_DEFAULT_COEP", "SECURITY_DEFAULT_COOP", "SECURITY_DEFAULT_CORP",
    "SECURITY_API_COEP", "SECURITY_API_COOP", "SECURITY_API_CORP",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = load_config(dotenv=False)

    assert config == Config()
    assert config.server.port == "8080"
    assert config.metadata.http_timeout == 10.0
    assert config.metadata.max_retries == 3
    assert config.metadata.base_retry_delay == pytest.approx(0.1)
    assert config.metadata.max_retry_delay == 2.0
    assert config.metadata.retry_multiplier == 2.0
    assert config.observability.log_level == "info"
    assert config.security.api_coep == ""
    assert config.security.default_coep == "require-corp"


def test_overrides(clean_env):
    clean_env.setenv("PORT", "9090")
    clean_env.setenv("METADATA_HTTP_TIMEOUT", "2.5s")
    clean_env.setenv("METADATA_MAX_RETRIES", "5")
    clean_env.setenv("METADATA_BASE_RETRY_DELAY", "250ms")
    clean_env.setenv("METADATA_MAX_RETRY_DELAY", "1m")
    clean_env.setenv("METADATA_RETRY_MULTIPLIER", "1.5")
    clean_env.setenv("ENABLE_PII_REDACTION", "true")
    clean_env.setenv("ROUTE_PREFIX", "/gateway/")
    clean_env.setenv("SECURITY_API_CORP", "same-site")

    config = load_config(dotenv=False)

    assert config.server.port == "9090"
    assert config.server.route_prefix == "gateway"
    assert config.metadata.http_timeout == 2.5
    assert config.metadata.max_retries == 5
    assert config.metadata.base_retry_delay == pytest.approx(0.25)
    assert config.metadata.max_retry_delay == 60.0
    assert config.metadata.retry_multiplier == 1.5
    assert config.observability.enable_pii_redaction is True
    assert config.security.api_corp == "same-site"


@pytest.mark.parametrize("text,seconds", [
    ("100ms", 0.1),
    ("1.5s", 1.5),
    ("2m", 120.0),
    ("1h30m", 5400.0),
    ("500us", 0.0005),
    ("3", 3.0),
    ("-1s", -1.0),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "abc", "10 s", "5x", "1s2"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


@pytest.mark.parametrize("value,expected", [("3s", 3.0), ("nope", 7.0), ("-2s", 7.0), ("0s", 7.0), (None, 7.0)])
def test_get_duration(clean_env, value, expected):
    if value is not None:
        clean_env.setenv("SHUTDOWN_TIMEOUT", value)
    assert get_duration("SHUTDOWN_TIMEOUT", 7.0) == expected


@pytest.mark.parametrize("value,expected", [("4", 4), ("0", 0), ("-1", 3), ("x", 3)])
def test_get_int(clean_env, value, expected):
    clean_env.setenv("METADATA_MAX_RETRIES", value)
    assert get_int("METADATA_MAX_RETRIES", 3) == expected


@pytest.mark.parametrize("value,expected", [("3.5", 3.5), ("0", 2.0), ("-1", 2.0), ("x", 2.0)])
def test_get_float(clean_env, value, expected):
    clean_env.setenv("METADATA_RETRY_MULTIPLIER", value)
    assert get_float("METADATA_RETRY_MULTIPLIER", 2.0) == expected


@pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("FALSE", False), ("0", False), ("maybe", True)])
def test_get_bool(clean_env, value, expected):
    clean_env.setenv("ENABLE_CLOUD_LOGGING", value)
    assert get_bool("ENABLE_CLOUD_LOGGING", True) == expected


def test_get_env_var_required(clean_env):
    with pytest.raises(ValueError):
        get_env_var("APP_VERSION", required=True)
    clean_env.setenv("APP_VERSION", "")
    assert get_env_var("APP_VERSION", default="1.0.0") == "1.0.0"


def test_security_validation():
    SecurityConfig().validate()
    with pytest.raises(ValueError, match="default_coop"):
        SecurityConfig(default_coop="everything").validate()
    with pytest.raises(ValueError, match="api_corp"):
        SecurityConfig(api_corp="nowhere").validate()


def test_config_validation_rejects_zero_retries(clean_env):
    clean_env.setenv("METADATA_MAX_RETRIES", "0")
    with pytest.raises(ValueError):
        load_config(dotenv=False).validate()
