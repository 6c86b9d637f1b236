"""
Kiosk session API
Drives the capture wizard against a camera attached to this server.

The browser (or any other client) renders the WizardView returned by
every call and posts user actions back:

    POST   /kiosk/session              init + start (JSON options)
    GET    /kiosk/session              current view and last result
    POST   /kiosk/session/<action>     capture | retake | continue | retry
    DELETE /kiosk/session              close
    GET    /kiosk/video_feed           MJPEG of the live camera
"""
import logging
import threading
import time

import cv2
from flask import Blueprint, Response, current_app, jsonify, request

from .error_handlers import (
    CameraError,
    InvalidActionError,
    MissingRequiredFieldError,
    NotInitializedError,
    handle_error,
)
from .sdk import NafsiSDK

logger = logging.getLogger(__name__)

kiosk_bp = Blueprint('kiosk', __name__, url_prefix='/kiosk')

WIZARD_ACTIONS = {
    'capture': 'capture',
    'retake': 'retake',
    'continue': 'continue_',
    'retry': 'retry',
}


class KioskSession:
    """One SDK per app plus the outcome reported by its callbacks.

    lock serializes session starts only; actions and close go straight
    to the wizard.
    """

    def __init__(self, sdk: NafsiSDK):
        self.sdk = sdk
        self.last_result = None
        self.lock = threading.Lock()

    def record_success(self, data):
        self.last_result = {'success': True, 'data': data}

    def record_failure(self, failure):
        self.last_result = {'success': False, **failure}

    def state(self):
        wizard = self.sdk.wizard
        return {
            'success': True,
            'active': wizard is not None and not wizard.closed,
            'view': wizard.snapshot().to_dict() if wizard is not None else None,
            'result': self.last_result,
        }


def get_kiosk() -> KioskSession:
    """KioskSession bound to the current app, created on first use."""
    kiosk = current_app.extensions.get('nafsi_kiosk')
    if kiosk is None:
        sdk = NafsiSDK(
            camera=current_app.config.get('NAFSI_CAMERA'),
            client_factory=current_app.config.get('NAFSI_CLIENT_FACTORY'),
        )
        kiosk = KioskSession(sdk)
        current_app.extensions['nafsi_kiosk'] = kiosk
    return kiosk


@kiosk_bp.route('/session', methods=['POST'])
def start_session():
    """Initialize the SDK with the posted options and start capturing"""
    options = request.get_json(silent=True) or {}
    kiosk = get_kiosk()
    logger.info("Kiosk session requested")

    with kiosk.lock:
        kiosk.last_result = None
        try:
            kiosk.sdk.init(
                options,
                on_success=kiosk.record_success,
                on_failure=kiosk.record_failure,
            )
        except MissingRequiredFieldError as e:
            return jsonify(handle_error(e)), 400
        return jsonify(kiosk.state())


@kiosk_bp.route('/session', methods=['GET'])
def session_state():
    """Current wizard view"""
    return jsonify(get_kiosk().state())


@kiosk_bp.route('/session/<action>', methods=['POST'])
def session_action(action):
    """Apply a user action to the active wizard"""
    if action not in WIZARD_ACTIONS:
        return jsonify({
            "success": False,
            "error": f"Unknown action: {action}",
            "error_code": "UNKNOWN_ACTION",
            "details": {"actions": list(WIZARD_ACTIONS)}
        }), 404

    kiosk = get_kiosk()
    wizard = kiosk.sdk.wizard
    if wizard is None:
        return jsonify(handle_error(NotInitializedError())), 409

    # The wizard serializes its own actions; a DELETE may land while this one is in flight
    try:
        getattr(wizard, WIZARD_ACTIONS[action])()
    except InvalidActionError as e:
        return jsonify(handle_error(e)), 409
    logger.info(f"Kiosk action applied: {action}")
    return jsonify(kiosk.state())


@kiosk_bp.route('/session', methods=['DELETE'])
def close_session():
    """Close the active wizard, releasing the camera"""
    kiosk = get_kiosk()
    kiosk.sdk.close()
    return jsonify({"success": True})


@kiosk_bp.route('/video_feed')
def video_feed():
    """MJPEG stream of the wizard's live camera"""
    wizard = get_kiosk().sdk.wizard
    if wizard is None:
        return jsonify(handle_error(NotInitializedError())), 409

    logger.info("Video feed requested")

    def generate():
        while not wizard.closed:
            try:
                frame = wizard.read_live_frame()
            except CameraError as e:
                logger.debug(f"Failed to get preview frame: {e.message}")
                frame = None

            if frame is None:
                time.sleep(0.1)
                continue

            ret, buffer = cv2.imencode('.jpg', frame)
            if not ret:
                continue
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')
        logger.info("Video feed ended")

    return Response(generate(), mimetype='multipart/x-mixed-replace; boundary=frame')
