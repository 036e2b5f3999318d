"""
Identity provider client.

Bearer tokens are verified by Supabase Auth; the result is an explicit
Principal that is passed into every service call.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated account making the request."""
    user_id: str
    email: Optional[str] = None


class SupabaseAuthClient:
    """Resolves access tokens through the Supabase Auth ``/user`` endpoint."""

    def __init__(self, base_url: str, anon_key: str, timeout: int = 10):
        if not base_url or not anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")
        self.base_url = base_url.rstrip('/')
        self.anon_key = anon_key
        self.timeout = timeout

    def get_principal(self, token: str) -> Optional[Principal]:
        """
        Return the Principal for ``token``, or None if the token is rejected.

        Raises:
            requests.RequestException: if the identity provider is unreachable.
        """
        if not token:
            return None

        url = f"{self.base_url}/auth/v1/user"
        headers = {
            'apikey': self.anon_key,
            'Authorization': f'Bearer {token}',
        }

        response = requests.get(url, headers=headers, timeout=self.timeout)
        if response.status_code in (401, 403):
            logger.info("[AUTH] Invalid or expired token")
            return None
        response.raise_for_status()

        data = response.json()
        user_id = data.get('id')
        if not user_id:
            logger.warning("[AUTH] Identity provider returned a user without id")
            return None
        return Principal(user_id=str(user_id), email=data.get('email'))


def init_auth(app):
    """Register the identity provider client on the app (tests may replace it)."""
    if 'lumenr_auth' in app.extensions:
        return
    try:
        app.extensions['lumenr_auth'] = SupabaseAuthClient(
            app.config.get('SUPABASE_URL', ''),
            app.config.get('SUPABASE_ANON_KEY', ''),
            timeout=app.config.get('AUTH_TIMEOUT_SECONDS', 10),
        )
    except ValueError as e:
        app.logger.error(f"[AUTH] Authentication service not configured: {e}")
        app.extensions['lumenr_auth'] = None
