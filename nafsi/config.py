"""
SDK Configuration
Holds caller-supplied options merged over defaults.
"""
import logging
import os
from typing import Any, Dict, Optional

from .error_handlers import MissingRequiredFieldError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = os.environ.get('NAFSI_API_URL', 'https://apisv2.windeal.co.ke/postdata')

DEFAULTS = {
    'api_url': DEFAULT_API_URL,
    'theme': 'light',
    'language': 'en',
    'debug': False,
    # Branding
    'organization_name': 'Identity Verification',
    'logo': None,  # URL to logo image
    'primary_color': '#00b8ff',
    'secondary_color': '#0d153b',
    'accent_color': '#fa764a',
    # Submission
    'access_token': None,
    'request_timeout': None,  # seconds, None waits indefinitely
}

REQUIRED_FIELDS = ('workflow_id', 'client_id')

# camelCase names used by host pages and query strings
ALIASES = {
    'workflowId': 'workflow_id',
    'clientId': 'client_id',
    'apiUrl': 'api_url',
    'accessToken': 'access_token',
    'organizationName': 'organization_name',
    'primaryColor': 'primary_color',
    'secondaryColor': 'secondary_color',
    'accentColor': 'accent_color',
    'onSuccess': 'on_success',
    'onFailure': 'on_failure',
    'requestTimeout': 'request_timeout',
}


def normalize_options(options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map camelCase option names to their snake_case keys."""
    return {ALIASES.get(key, key): value for key, value in (options or {}).items()}


class Config:
    """SDK configuration handler"""

    def __init__(self, defaults: Optional[Dict[str, Any]] = None):
        self.defaults = dict(defaults if defaults is not None else DEFAULTS)
        self._config = dict(self.defaults)

    def set(self, options: Optional[Dict[str, Any]]):
        """
        Merge options over the current configuration (last write wins).

        Args:
            options: Option mapping, snake_case or camelCase keys
        """
        self._config.update(normalize_options(options))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._config.get(ALIASES.get(key, key), default)

    def get_all(self) -> Dict[str, Any]:
        """Snapshot of the configuration; mutating it does not affect the holder."""
        return dict(self._config)

    def validate(self) -> bool:
        """
        Validate required configuration

        Raises:
            MissingRequiredFieldError: naming the first absent required key
        """
        for field in REQUIRED_FIELDS:
            if not self._config.get(field):
                raise MissingRequiredFieldError(field)
        return True

    def reset(self):
        """Reset configuration to defaults"""
        self._config = dict(self.defaults)
        logger.debug("Configuration reset to defaults")
