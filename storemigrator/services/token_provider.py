"""
Access tokens for store instances.

The platform mints a short-lived bearer token per store instance via an
OAuth client_credentials grant.
"""
import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class TokenProvider:
    """
    Resolves bearer tokens for store instances.

    Tokens are cached for the lifetime of the provider, which the
    orchestrator scopes to one migration run.
    """

    def __init__(self, oauth_url: str, client_id: str, client_secret: str, timeout: int = 30):
        self.oauth_url = oauth_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._cache: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config) -> 'TokenProvider':
        return cls(
            oauth_url=config.get('PLATFORM_OAUTH_URL'),
            client_id=config.get('PLATFORM_APP_ID'),
            client_secret=config.get('PLATFORM_APP_SECRET'),
            timeout=config.get('PLATFORM_HTTP_TIMEOUT', 30),
        )

    def get_access_token(self, instance_id: str) -> Optional[str]:
        """
        Get a bearer token for one store instance.

        Args:
            instance_id: Store instance identifier

        Returns:
            Access token, or None when the grant fails for any reason
        """
        if not instance_id:
            return None
        if instance_id in self._cache:
            return self._cache[instance_id]

        if not self.client_id or not self.client_secret:
            logger.error('Platform app credentials not configured')
            return None

        try:
            response = requests.post(
                self.oauth_url,
                json={
                    'grant_type': 'client_credentials',
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'instance_id': instance_id,
                },
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Token request failed for instance {instance_id}: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"Token request for instance {instance_id} returned {response.status_code}: {response.text}")
            return None

        try:
            token = response.json().get('access_token')
        except ValueError:
            token = None

        if token:
            self._cache[instance_id] = token
        return token
