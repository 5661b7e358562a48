"""
Security headers and HTTP method validation for the metadata service.
"""
from dataclasses import dataclass
from functools import wraps

from flask import make_response, request

SERVER_HEADER = 'istio-test'
STRICT_CSP = "default-src 'none'; frame-ancestors 'none'"
API_CSP = "default-src 'self'; frame-ancestors 'none'"
DEFAULT_CACHE_CONTROL = 'no-cache, no-store, must-revalidate, private'
PLAIN_TEXT = 'text/plain; charset=utf-8'


@dataclass(frozen=True)
class SecurityHeadersOptions:
    """
    Configurable parts of the security header set.

    Attributes:
        coep: Cross-Origin-Embedder-Policy ("", "require-corp", "credentialless")
        coop: Cross-Origin-Opener-Policy ("", "same-origin", "same-origin-allow-popups", "unsafe-none")
        corp: Cross-Origin-Resource-Policy ("", "same-origin", "same-site", "cross-origin")
        enable_strict_csp: use the locked-down Content-Security-Policy
        cache_control: custom Cache-Control value, empty for the default
    """
    coep: str = ''
    coop: str = ''
    corp: str = ''
    enable_strict_csp: bool = False
    cache_control: str = ''


def strict_security_options():
    """The most restrictive header set."""
    return SecurityHeadersOptions(
        coep='require-corp',
        coop='same-origin',
        corp='same-origin',
        enable_strict_csp=True,
    )


def api_security_options():
    """Header set for public API endpoints; COEP is left unset so cross-origin callers work."""
    return SecurityHeadersOptions(
        coep='',
        coop='same-origin-allow-popups',
        corp='cross-origin',
        enable_strict_csp=False,
    )


def custom_security_options(coep, coop, corp):
    return SecurityHeadersOptions(coep=coep, coop=coop, corp=corp, enable_strict_csp=False)


def apply_security_headers(headers, options):
    """Set the security headers described by `options` on a header mapping."""
    headers['X-Content-Type-Options'] = 'nosniff'
    headers['X-Frame-Options'] = 'DENY'
    headers['X-XSS-Protection'] = '1; mode=block'
    headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    headers['X-Permitted-Cross-Domain-Policies'] = 'none'
    headers['Server'] = SERVER_HEADER

    headers['Content-Security-Policy'] = STRICT_CSP if options.enable_strict_csp else API_CSP

    headers['Cache-Control'] = options.cache_control or DEFAULT_CACHE_CONTROL
    headers['Pragma'] = 'no-cache'
    headers['Expires'] = '0'

    if options.coep:
        headers['Cross-Origin-Embedder-Policy'] = options.coep
    if options.coop:
        headers['Cross-Origin-Opener-Policy'] = options.coop
    if options.corp:
        headers['Cross-Origin-Resource-Policy'] = options.corp
    return headers


def join_methods(methods):
    return ', '.join(methods)


def text_response(body, status):
    """Plain-text Flask response, used for every error body."""
    response = make_response(body, status)
    response.headers['Content-Type'] = PLAIN_TEXT
    response.headers['X-Content-Type-Options'] = 'nosniff'
    return response


def secure_handler(allowed_methods, options=None):
    """
    Decorate a Flask view so that only `allowed_methods` reach it and every
    response, including the 405, carries the security headers.
    """
    if options is None:
        options = strict_security_options()
    allowed = tuple(allowed_methods)

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if request.method not in allowed:
                response = text_response('Method Not Allowed', 405)
                response.headers['Allow'] = join_methods(allowed)
            else:
                response = make_response(view(*args, **kwargs))
            apply_security_headers(response.headers, options)
            return response
        return wrapped

    return decorator
