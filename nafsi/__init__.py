"""
Nafsi identity verification SDK.

Capture wizard (ID front, ID back, selfie), verification API client and
the CDN server that hosts the browser bundle.
"""
from .sdk import NafsiSDK, VERSION
from .config import Config, DEFAULTS
from .error_handlers import (
    NafsiError,
    ConfigError,
    MissingRequiredFieldError,
    NotInitializedError,
    CameraError,
    InvalidActionError,
    TransportError,
    APIError,
    NetworkError,
)

__version__ = VERSION

__all__ = [
    'NafsiSDK',
    'VERSION',
    'Config',
    'DEFAULTS',
    'NafsiError',
    'ConfigError',
    'MissingRequiredFieldError',
    'NotInitializedError',
    'CameraError',
    'InvalidActionError',
    'TransportError',
    'APIError',
    'NetworkError',
]
