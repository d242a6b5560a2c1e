"""WordPress Authentication Provider.

WordPress application passwords are sent as HTTP Basic credentials on
every request. Requests are sent unauthenticated when no credentials are
configured; only published content is visible in that case.
"""

from dataclasses import dataclass
from typing import Optional

import aiohttp

from core.config import SiteCredentials


@dataclass
class WPAuthConfig:
    """Application-password credentials.

    Attributes:
        username: WordPress user login
        app_password: Application password generated in the user profile
    """
    username: str
    app_password: str

    @classmethod
    def from_credentials(cls, credentials: Optional[SiteCredentials]) -> Optional["WPAuthConfig"]:
        if credentials is None:
            return None
        return cls(credentials.username, credentials.app_password)


class WPAuthProvider:
    """Builds the Authorization header for WordPress REST requests."""

    def __init__(self, config: Optional[WPAuthConfig]):
        self.config = config

    @property
    def has_credentials(self) -> bool:
        return bool(self.config and self.config.username and self.config.app_password)

    def get_authorization_header(self) -> Optional[str]:
        """Get the Authorization header value.

        Returns:
            Header value like "Basic <base64>" if credentials are configured
        """
        if not self.has_credentials:
            return None
        return aiohttp.BasicAuth(self.config.username, self.config.app_password).encode()
