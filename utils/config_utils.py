"""
Configuration utilities for the metadata service.
Values come from environment variables (optionally via a .env file) with
sensible defaults.
"""
import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?|\.\d+)(ns|us|µs|ms|s|m|h)')
_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}

_TRUE_VALUES = {'1', 't', 'true', 'yes', 'y', 'on'}
_FALSE_VALUES = {'0', 'f', 'false', 'no', 'n', 'off'}

VALID_COEP = ('', 'require-corp', 'credentialless')
VALID_COOP = ('', 'same-origin', 'same-origin-allow-popups', 'unsafe-none')
VALID_CORP = ('', 'same-origin', 'same-site', 'cross-origin')


def get_env_var(var_name, default=None, required=False):
    """Get an environment variable, treating empty values as unset."""
    value = os.environ.get(var_name)

    if not value:
        if required and default is None:
            error_msg = f"Required variable {var_name} is not set in environment"
            raise ValueError(error_msg)
        value = default

    return value


def parse_duration(value):
    """
    Parse a duration such as "100ms", "1.5s" or "1h30m" into seconds.
    A bare number is taken as seconds.

    Raises:
        ValueError: if the string is not a valid duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text[0] in '+-':
        sign = -1.0 if text[0] == '-' else 1.0
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return sign * total


def get_duration(key, default):
    """Positive duration in seconds from the environment, or the default."""
    value = os.environ.get(key)
    if value:
        try:
            duration = parse_duration(value)
        except ValueError:
            return default
        if duration > 0:
            return duration
    return default


def get_int(key, default):
    """Non-negative integer from the environment, or the default."""
    value = os.environ.get(key)
    if value:
        try:
            int_value = int(value)
        except ValueError:
            return default
        if int_value >= 0:
            return int_value
    return default


def get_float(key, default):
    """Positive float from the environment, or the default."""
    value = os.environ.get(key)
    if value:
        try:
            float_value = float(value)
        except ValueError:
            return default
        if float_value > 0:
            return float_value
    return default


def get_bool(key, default):
    value = os.environ.get(key)
    if value:
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return default


@dataclass(frozen=True)
class ServerConfig:
    port: str = '8080'
    read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 60.0
    route_prefix: str = 'istio-test'
    version: str = '1.0.0'


@dataclass(frozen=True)
class MetadataConfig:
    http_timeout: float = 10.0
    max_retries: int = 3
    base_retry_delay: float = 0.1
    max_retry_delay: float = 2.0
    retry_multiplier: float = 2.0


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = 'info'
    enable_cloud_logging: bool = False
    enable_pii_redaction: bool = False
    shutdown_timeout: float = 5.0


@dataclass(frozen=True)
class SecurityConfig:
    # Strict policies for everything that is not an API endpoint
    default_coep: str = 'require-corp'
    default_coop: str = 'same-origin'
    default_corp: str = 'same-origin'

    # API endpoints; an empty value leaves the header unset
    api_coep: str = ''
    api_coop: str = 'same-origin-allow-popups'
    api_corp: str = 'cross-origin'

    def validate(self):
        """Raise ValueError if any cross-origin policy has an unsupported value."""
        _validate_policy('default_coep', self.default_coep, VALID_COEP)
        _validate_policy('default_coop', self.default_coop, VALID_COOP)
        _validate_policy('default_corp', self.default_corp, VALID_CORP)
        _validate_policy('api_coep', self.api_coep, VALID_COEP)
        _validate_policy('api_coop', self.api_coop, VALID_COOP)
        _validate_policy('api_corp', self.api_corp, VALID_CORP)


def _validate_policy(name, value, allowed):
    if value not in allowed:
        raise ValueError(f"invalid {name} value '{value}', allowed values: {', '.join(allowed)}")


@dataclass(frozen=True)
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    def validate(self):
        self.security.validate()
        if self.metadata.max_retries < 1:
            raise ValueError("METADATA_MAX_RETRIES must be at least 1")
        if self.metadata.max_retry_delay < self.metadata.base_retry_delay:
            raise ValueError("METADATA_MAX_RETRY_DELAY must not be smaller than METADATA_BASE_RETRY_DELAY")


def load_config(dotenv=True):
    """Build a Config from the environment, loading a .env file first if present."""
    if dotenv:
        load_dotenv()

    return Config(
        server=ServerConfig(
            port=get_env_var('PORT', default='8080'),
            read_timeout=get_duration('SERVER_READ_TIMEOUT', 5.0),
            write_timeout=get_duration('SERVER_WRITE_TIMEOUT', 10.0),
            idle_timeout=get_duration('SERVER_IDLE_TIMEOUT', 60.0),
            route_prefix=get_env_var('ROUTE_PREFIX', default='istio-test').strip('/'),
            version=get_env_var('APP_VERSION', default='1.0.0'),
        ),
        metadata=MetadataConfig(
            http_timeout=get_duration('METADATA_HTTP_TIMEOUT', 10.0),
            max_retries=get_int('METADATA_MAX_RETRIES', 3),
            base_retry_delay=get_duration('METADATA_BASE_RETRY_DELAY', 0.1),
            max_retry_delay=get_duration('METADATA_MAX_RETRY_DELAY', 2.0),
            retry_multiplier=get_float('METADATA_RETRY_MULTIPLIER', 2.0),
        ),
        observability=ObservabilityConfig(
            log_level=get_env_var('LOG_LEVEL', default='info'),
            enable_cloud_logging=get_bool('ENABLE_CLOUD_LOGGING', False),
            enable_pii_redaction=get_bool('ENABLE_PII_REDACTION', False),
            shutdown_timeout=get_duration('SHUTDOWN_TIMEOUT', 5.0),
        ),
        security=SecurityConfig(
            default_coep=get_env_var('SECURITY_DEFAULT_COEP', default='require-corp'),
            default_coop=get_env_var('SECURITY_DEFAULT_COOP', default='same-origin'),
            default_corp=get_env_var('SECURITY_DEFAULT_CORP', default='same-origin'),
            api_coep=get_env_var('SECURITY_API_COEP', default=''),
            api_coop=get_env_var('SECURITY_API_COOP', default='same-origin-allow-popups'),
            api_corp=get_env_var('SECURITY_API_CORP', default='cross-origin'),
        ),
    )
