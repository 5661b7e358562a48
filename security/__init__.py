"""
Security Package
Security headers and method validation applied to every endpoint.
"""

from security.headers import (
    SecurityHeadersOptions,
    apply_security_headers,
    api_security_options,
    custom_security_options,
    secure_handler,
    strict_security_options,
)

__all__ = [
    'SecurityHeadersOptions',
    'apply_security_headers',
    'api_security_options',
    'custom_security_options',
    'secure_handler',
    'strict_security_options',
]
