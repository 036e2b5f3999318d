"""Middleware for bearer-token authentication."""
from functools import wraps

import requests
from flask import current_app, g, request

from lumenr.exceptions import ServiceUnavailableError, UnauthorizedError


def load_principal():
    """
    Resolve the request's bearer token into g.principal.

    Called before each request. g.principal stays None when the header is
    missing or the token is rejected. If the identity provider cannot be
    reached, g.auth_error is set so protected views answer 503.
    """
    g.principal = None
    g.auth_error = None

    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return

    token = header[len('Bearer '):].strip()
    auth_client = current_app.extensions.get('lumenr_auth')
    if not token or auth_client is None:
        return

    try:
        g.principal = auth_client.get_principal(token)
    except requests.RequestException as e:
        current_app.logger.error(f"[AUTH] Identity provider unavailable: {e}")
        g.auth_error = ServiceUnavailableError('Authentication service unavailable')


def require_auth(f):
    """
    Decorator: Require an authenticated principal.

    The principal is handed to the view as the ``principal`` keyword so
    views pass it on explicitly to the service layer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = g.get('principal')
        if principal is None:
            if g.get('auth_error') is not None:
                raise g.auth_error
            raise UnauthorizedError()
        return f(*args, principal=principal, **kwargs)
    return decorated_function
