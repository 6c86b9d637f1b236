"""
Error Handling System
Provides consistent error types and responses across all layers
"""
import logging

logger = logging.getLogger(__name__)


class NafsiError(Exception):
    """Base exception for SDK errors"""
    def __init__(self, message, error_code, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


# Configuration / facade errors
class ConfigError(NafsiError):
    """Configuration and initialization errors"""
    pass


class MissingRequiredFieldError(ConfigError):
    """A required option was not supplied"""
    def __init__(self, field):
        self.field = field
        super().__init__(
            message=f"{field} is required",
            error_code="MISSING_REQUIRED_FIELD",
            details={
                "field": field,
                "suggestion": "Pass workflowId and clientId to init()"
            }
        )


class NotInitializedError(ConfigError):
    """SDK used before init()"""
    def __init__(self):
        super().__init__(
            message="SDK not initialized. Call init() first.",
            error_code="NOT_INITIALIZED"
        )


# Layer 1 Errors - Camera
class CameraError(NafsiError):
    """Camera-related errors"""
    def __init__(self, message="Camera access denied", error_code="CAMERA_ERROR", details=None):
        super().__init__(message, error_code, details)


class CameraNotFoundError(CameraError):
    """No camera device available"""
    def __init__(self, camera_index):
        super().__init__(
            message=f"Camera not found at /dev/video{camera_index}",
            error_code="CAMERA_ERROR",
            details={
                "camera_index": camera_index,
                "reason": "not_found",
                "suggestion": "Check camera connection and device index"
            }
        )


class CameraInitError(CameraError):
    """Camera exists but could not be opened"""
    def __init__(self, camera_index, reason=None):
        super().__init__(
            message=f"Failed to initialize camera at /dev/video{camera_index}",
            error_code="CAMERA_ERROR",
            details={
                "camera_index": camera_index,
                "reason": reason,
                "suggestion": "Check camera permissions and ensure no other app is using it"
            }
        )


class FrameCaptureError(CameraError):
    """Failed to read a frame from a live stream"""
    def __init__(self, reason=None):
        super().__init__(
            message="Failed to capture frame from camera",
            error_code="CAMERA_ERROR",
            details={
                "reason": reason,
                "suggestion": "Check camera connection or restart the camera"
            }
        )


# Layer 2 Errors - Wizard
class WizardError(NafsiError):
    """Capture wizard misuse"""
    pass


class InvalidActionError(WizardError):
    """Action not valid for the current step and phase"""
    def __init__(self, action, step, phase):
        super().__init__(
            message=f"Cannot {action} while {step}/{phase}",
            error_code="INVALID_ACTION",
            details={
                "action": action,
                "step": step,
                "phase": phase
            }
        )


# Layer 3 Errors - Submission
class TransportError(NafsiError):
    """Verification API call failed"""
    def __init__(self, message, error_code="API_ERROR", status_code=None):
        self.status_code = status_code
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, error_code, details)


class APIError(TransportError):
    """API responded but rejected the verification"""
    def __init__(self, message, status_code=None):
        super().__init__(message, error_code="API_ERROR", status_code=status_code)


class NetworkError(TransportError):
    """No response received from the API"""
    def __init__(self, message):
        super().__init__(message, error_code="NETWORK_ERROR")


# User-facing copy for errors surfaced inside the widget
FRIENDLY_ERRORS = {
    "CAMERA_ERROR": ("Camera Access Required", "Please enable camera permissions and try again."),
    "API_ERROR": ("Verification Failed", "Unable to process your verification. Please try again later."),
    "NETWORK_ERROR": ("Connection Error", "Please check your internet connection and try again."),
}

DEFAULT_ERROR_TITLE = "Verification Failed"
DEFAULT_ERROR_MESSAGE = "Please try again later."


def get_user_friendly_error(error):
    """
    Map an error to a title/message pair for display

    Args:
        error: NafsiError, other exception, message string or dict
            with 'code' and optional 'error'/'message'

    Returns:
        tuple: (title, message)
    """
    if isinstance(error, str):
        code, message = None, error
    elif isinstance(error, NafsiError):
        code, message = error.error_code, error.message
    elif isinstance(error, dict):
        code = error.get("code")
        message = error.get("error") or error.get("message")
    elif isinstance(error, Exception):
        code, message = None, str(error)
    else:
        code, message = None, None

    if code in FRIENDLY_ERRORS:
        return FRIENDLY_ERRORS[code]
    return DEFAULT_ERROR_TITLE, message or DEFAULT_ERROR_MESSAGE


# Error response helpers
def handle_error(error, log_message=None):
    """
    Handle error consistently across the application

    Args:
        error: Exception that occurred
        log_message: Optional custom log message

    Returns:
        dict: Error response for JSON serialization
    """
    if log_message:
        logger.error(log_message)

    if isinstance(error, NafsiError):
        logger.error(f"{error.error_code}: {error.message}")
        if error.details:
            logger.debug(f"Error details: {error.details}")
        return error.to_dict()
    else:
        logger.error(f"Unexpected error: {error}")
        logger.exception("Full traceback:")
        return {
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "UNEXPECTED_ERROR",
            "details": {
                "error_type": type(error).__name__,
                "error_message": str(error)
            }
        }
