"""
Nafsi SDK
Entry point for the identity verification flow.

Create one NafsiSDK per host integration and pass it around; there is no
module-level instance.
"""
import logging
from typing import Any, Callable, Dict, Optional

from .config import Config, normalize_options
from .layer1_capture import CameraDevice, create_default_camera
from .layer2_wizard import CaptureWizard
from .layer3_submission import APIClient
from .error_handlers import MissingRequiredFieldError, NotInitializedError

logger = logging.getLogger(__name__)

VERSION = '1.0.0'


def default_client_factory(config: Dict[str, Any]) -> APIClient:
    return APIClient(
        config.get('api_url'),
        access_token=config.get('access_token'),
        timeout=config.get('request_timeout'),
    )


class NafsiSDK:
    """
    Owns one configuration and at most one active wizard.
    """

    version = VERSION

    def __init__(self, camera: Optional[CameraDevice] = None,
                 client_factory: Optional[Callable[[Dict[str, Any]], Any]] = None):
        """
        Args:
            camera: Camera capability (OpenCV device from env by default,
                created on first start)
            client_factory: Builds the transport client from a config snapshot
        """
        self.config = Config()
        self.wizard: Optional[CaptureWizard] = None
        self.initialized = False
        self._camera = camera
        self._client_factory = client_factory or default_client_factory
        logger.info(f"Nafsi SDK loaded, version: {self.version}")

    @property
    def camera(self) -> CameraDevice:
        if self._camera is None:
            self._camera = create_default_camera()
        return self._camera

    def init(self, options: Optional[Dict[str, Any]] = None, **kwargs):
        """
        Initialize the SDK and start the verification flow.

        Args:
            options: workflow_id and client_id are required; optional
                api_url, theme, language, debug, organization_name, logo,
                primary_color, secondary_color, accent_color, access_token,
                on_success, on_failure. camelCase names are accepted.
            **kwargs: Same options as keyword arguments

        Raises:
            MissingRequiredFieldError: If workflow_id or client_id is absent
        """
        merged = normalize_options(options)
        merged.update(normalize_options(kwargs))
        # None falls back to the current value
        merged = {key: value for key, value in merged.items() if value is not None}

        candidate = Config()
        candidate.set(merged)
        try:
            candidate.validate()
        except MissingRequiredFieldError as e:
            logger.error(f"Initialization error: {e}")
            raise

        # Callbacks and debug belong to this init call only
        merged.setdefault('debug', False)
        merged.setdefault('on_success', None)
        merged.setdefault('on_failure', None)
        self.config.set(merged)
        self.initialized = True

        # NOTSET defers to the host's logging configuration
        logging.getLogger('nafsi').setLevel(logging.DEBUG if self.config.get('debug') else logging.NOTSET)

        logger.info(
            f"SDK initialized with config: workflow_id={self.config.get('workflow_id')}, "
            f"client_id={self.config.get('client_id')}, api_url={self.config.get('api_url')}, "
            f"theme={self.config.get('theme')}, language={self.config.get('language')}"
        )

        return self.start()

    def start(self) -> CaptureWizard:
        """
        Start a verification session, replacing any active one.

        Raises:
            NotInitializedError: If init() has not been called
        """
        if not self.initialized:
            raise NotInitializedError()

        if self.wizard is not None:
            self.wizard.close()

        snapshot = self.config.get_all()
        self.wizard = CaptureWizard(
            snapshot,
            camera=self.camera,
            client=self._client_factory(snapshot),
            on_success=snapshot.get('on_success'),
            on_failure=snapshot.get('on_failure'),
        )
        self.wizard.start()
        return self.wizard

    def close(self):
        """Close the verification flow if one is active."""
        wizard, self.wizard = self.wizard, None
        if wizard is not None:
            wizard.close()

    def get_version(self) -> str:
        return self.version

    def is_initialized(self) -> bool:
        return self.initialized
