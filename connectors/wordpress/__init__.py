"""WordPress connector - REST client, auth, connector and SEOPress side channel."""

from connectors.wordpress.wp_auth import WPAuthConfig, WPAuthProvider
from connectors.wordpress.wp_client import (
    WPApiClient,
    WPApiConfig,
    WPApiError,
    WPAuthenticationError,
    WPNotFoundError,
    WPRateLimitError,
    WPValidationError,
)
from connectors.wordpress.wp_connector import WordPressConnector
from connectors.wordpress.seopress import SEOPressProvider

__all__ = [
    "WPAuthConfig",
    "WPAuthProvider",
    "WPApiClient",
    "WPApiConfig",
    "WPApiError",
    "WPAuthenticationError",
    "WPNotFoundError",
    "WPRateLimitError",
    "WPValidationError",
    "WordPressConnector",
    "SEOPressProvider",
]
