"""
Layer 2 — Capture Wizard
State machine driving ID front -> ID back -> selfie -> submission.

The wizard owns at most one live camera handle. It is released when a
frame is captured, before every new acquisition and on close. Rendering
is left to whoever subscribes to the WizardView snapshots.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..branding import build_palette
from ..error_handlers import InvalidActionError, TransportError, get_user_friendly_error
from ..layer1_capture import CameraDevice, StreamHandle, encode_frame, format_bytes, get_base64_size
from ..layer3_submission import SubmissionPayload
from .steps import Step, Phase, STEP_SPECS, next_step

logger = logging.getLogger(__name__)

CAMERA_ERROR = "CAMERA_ERROR"
API_ERROR = "API_ERROR"

SLOT_NAMES = {
    Step.ID_FRONT: 'id_front',
    Step.ID_BACK: 'id_back',
    Step.SELFIE: 'selfie',
}

ACTIONS_BY_PHASE = {
    Phase.IDLE: ('start', 'close'),
    Phase.STARTING: ('close',),
    Phase.LIVE: ('capture', 'close'),
    Phase.PREVIEW: ('retake', 'continue', 'close'),
    Phase.PROCESSING: ('close',),
    Phase.ERROR: ('retry', 'close'),
}


@dataclass
class CaptureSet:
    """The three image slots; each is None or a data URI."""
    id_front: Optional[str] = None
    id_back: Optional[str] = None
    selfie: Optional[str] = None

    def get(self, step: Step) -> Optional[str]:
        return getattr(self, SLOT_NAMES[step])

    def put(self, step: Step, image: Optional[str]):
        setattr(self, SLOT_NAMES[step], image)

    def clear(self):
        self.id_front = self.id_back = self.selfie = None

    def filled(self) -> Dict[str, bool]:
        return {step.value: self.get(step) is not None for step in SLOT_NAMES}


@dataclass(frozen=True)
class ErrorInfo:
    """Error overlay contents"""
    code: str
    title: str
    message: str
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'title': self.title,
            'message': self.message,
            'detail': self.detail,
        }


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a submission: API body on success, code + message on failure."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict:
        if self.success:
            return {'success': True, 'data': self.data}
        return {'success': False, 'error': self.error, 'code': self.code}


@dataclass(frozen=True)
class WizardView:
    """Immutable snapshot of the wizard for a rendering layer."""
    step: Step
    phase: Phase
    slots: Dict[str, bool]
    actions: Tuple[str, ...]
    title: Optional[str] = None
    instructions: Optional[str] = None
    camera_class: Optional[str] = None
    preview: Optional[str] = None
    error: Optional[ErrorInfo] = None
    organization_name: Optional[str] = None
    logo: Optional[str] = None
    palette: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'step': self.step.value,
            'phase': self.phase.value,
            'slots': dict(self.slots),
            'actions': list(self.actions),
            'title': self.title,
            'instructions': self.instructions,
            'camera_class': self.camera_class,
            'preview': self.preview,
            'error': self.error.to_dict() if self.error else None,
            'organization_name': self.organization_name,
            'logo': self.logo,
            'palette': dict(self.palette),
        }


class CaptureWizard:
    """
    One verification session.

    Actions (start, capture, retake, continue_, retry) raise
    InvalidActionError when not valid for the current step/phase.
    close() is always valid and idempotent. Camera and submission
    failures never raise; they move the wizard to Phase.ERROR and are
    reported through on_failure.
    """

    def __init__(self, config: Dict[str, Any], camera: CameraDevice, client,
                 on_success: Callable = None, on_failure: Callable = None):
        """
        Args:
            config: Configuration snapshot (Config.get_all())
            camera: Camera capability
            client: Object with submit(payload) -> dict, raising TransportError
            on_success: Called with the API response on success
            on_failure: Called with {'error': ..., 'code': ...} on failure
        """
        self.config = dict(config)
        self.camera = camera
        self.client = client
        self.on_success = on_success or self.config.get('on_success')
        self.on_failure = on_failure or self.config.get('on_failure')

        self.step = Step.ID_FRONT
        self.phase = Phase.IDLE
        self.images = CaptureSet()
        self.error: Optional[ErrorInfo] = None
        self.result: Optional[VerificationResult] = None

        self._handle: Optional[StreamHandle] = None
        self._token = 0
        self._lock = threading.RLock()
        self._listeners: List[Callable[[WizardView], None]] = []
        self._palette = build_palette(self.config)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self.step is Step.CLOSED

    @property
    def has_camera(self) -> bool:
        return self._handle is not None

    def subscribe(self, listener: Callable[[WizardView], None]):
        """Register a callback receiving a WizardView after every transition."""
        self._listeners.append(listener)

    def snapshot(self) -> WizardView:
        with self._lock:
            spec = STEP_SPECS.get(self.step)
            preview = self.images.get(self.step) if self.phase is Phase.PREVIEW else None
            actions = () if self.closed else ACTIONS_BY_PHASE[self.phase]
            return WizardView(
                step=self.step,
                phase=self.phase,
                slots=self.images.filled(),
                actions=actions,
                title=spec.title if spec else None,
                instructions=spec.instructions if spec else None,
                camera_class=spec.camera_class if spec else None,
                preview=preview,
                error=self.error,
                organization_name=self.config.get('organization_name'),
                logo=self.config.get('logo'),
                palette=self._palette,
            )

    def read_live_frame(self):
        """Current camera frame while live, else None. Used for preview streaming."""
        with self._lock:
            if self.phase is not Phase.LIVE or self._handle is None:
                return None
            return self._handle.read()

    def _notify(self):
        view = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"Wizard listener failed: {e}")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _require(self, action, *phases):
        if self.closed or self.phase not in phases:
            raise InvalidActionError(action, self.step.value, self.phase.value)

    def start(self):
        """Enter idFront and acquire the camera."""
        with self._lock:
            self._require('start', Phase.IDLE)
            self._claim_step(Step.ID_FRONT)
            logger.info("Verification flow started")
        self._acquire_camera()

    def capture(self):
        """Freeze the live frame into the current step's slot and release the camera."""
        with self._lock:
            self._require('capture', Phase.LIVE)
            if self._handle is None:
                raise InvalidActionError('capture', self.step.value, self.phase.value)

            spec = STEP_SPECS[self.step]
            try:
                frame = self._handle.read()
                image = encode_frame(frame, spec.capture_size)
            except Exception as e:
                logger.error(f"Capture failed for {self.step.value}: {e}")
                self._release_camera()
                failure = self._set_error(CAMERA_ERROR, str(e))
            else:
                self.images.put(self.step, image)
                self._release_camera()
                self.phase = Phase.PREVIEW
                failure = None
                size = format_bytes(get_base64_size(image.split(',', 1)[1]))
                logger.info(f"Image captured for {self.step.value}: {size}")

        self._notify()
        if failure:
            self._report_failure(failure)

    def retake(self):
        """Discard the current step's image and go live again."""
        with self._lock:
            self._require('retake', Phase.PREVIEW)
            self.images.put(self.step, None)
            self._claim_step(self.step)
            logger.info(f"Retaking photo for: {self.step.value}")
        self._acquire_camera()

    def continue_(self) -> Optional[VerificationResult]:
        """
        Advance one step: idFront -> idBack -> selfie -> submit.

        Returns:
            VerificationResult when this call submitted, else None
        """
        with self._lock:
            self._require('continue', Phase.PREVIEW)
            upcoming = next_step(self.step)
            if upcoming is Step.SUBMITTING:
                self.phase = Phase.PROCESSING
            else:
                self._claim_step(upcoming)

        if upcoming is Step.SUBMITTING:
            return self._submit()

        logger.info(f"Moving to next step: {upcoming.value}")
        self._acquire_camera()
        return None

    def retry(self):
        """Clear every slot and restart from idFront."""
        with self._lock:
            self._require('retry', Phase.ERROR)
            self.images.clear()
            self.error = None
            self.result = None
            self._claim_step(Step.ID_FRONT)
            logger.info("Retrying verification from the first step")
        self._acquire_camera()

    def close(self):
        """Release the camera and end the session. Safe to call at any point."""
        with self._lock:
            if self.closed:
                return
            self._token += 1
            self._release_camera()
            self.step = Step.CLOSED
            logger.info("Verification flow closed")
        self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _claim_step(self, step: Step):
        # Caller holds the lock and has just checked the phase
        self.step = step
        self.phase = Phase.STARTING

    def _release_camera(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                self.camera.stop_stream(handle)
            except Exception as e:
                logger.warning(f"Error stopping camera: {e}")
            logger.debug("Camera stopped")

    def _acquire_camera(self):
        with self._lock:
            if self.closed:
                return
            self._release_camera()
            self.phase = Phase.STARTING
            self._token += 1
            token = self._token
            step = self.step
            constraints = STEP_SPECS[step].constraints
        self._notify()

        try:
            handle = self.camera.request_stream(constraints)
        except Exception as e:
            logger.error(f"Camera access denied: {e}")
            with self._lock:
                if token != self._token:
                    return
                failure = self._set_error(CAMERA_ERROR, 'Camera access denied')
            self._notify()
            self._report_failure(failure)
            return

        with self._lock:
            stale = token != self._token
            if not stale:
                self._handle = handle
                self.phase = Phase.LIVE
                logger.info(f"Camera initialized for step: {step.value}")

        if stale:
            # Session moved on (closed or restarted) while the device was opening
            logger.info("Discarding camera acquired for a stale session")
            try:
                self.camera.stop_stream(handle)
            except Exception as e:
                logger.warning(f"Error stopping camera: {e}")
            return
        self._notify()

    def _build_payload(self) -> SubmissionPayload:
        return SubmissionPayload(
            client_id=self.config.get('client_id'),
            work_flow_id=self.config.get('workflow_id'),
            selfie_image_url=self.images.selfie,
            id_front_image_url=self.images.id_front,
            id_back_image_url=self.images.id_back,
        )

    def _submit(self) -> Optional[VerificationResult]:
        with self._lock:
            if self.closed:
                return None
            self._release_camera()
            self.step = Step.SUBMITTING
            self.phase = Phase.PROCESSING
            self._token += 1
            token = self._token
            payload = self._build_payload()
        self._notify()

        logger.info("Submitting verification...")
        try:
            data = self.client.submit(payload)
        except TransportError as e:
            code, message = e.error_code, e.message
        except Exception as e:
            logger.exception("Unexpected error during submission")
            code, message = API_ERROR, str(e) or 'Verification failed'
        else:
            with self._lock:
                if token != self._token:
                    logger.info("Discarding verification result for a closed session")
                    return None
                self.result = VerificationResult(success=True, data=data)
            logger.info(f"Verification successful: {data}")
            self._call_host(self.on_success, data)
            self.close()
            return self.result

        logger.error(f"Verification failed: {message}")
        with self._lock:
            if token != self._token:
                logger.info("Discarding verification failure for a closed session")
                return None
            self.result = VerificationResult(success=False, error=message, code=code)
            failure = self._set_error(code, message)
        self._notify()
        self._report_failure(failure)
        return self.result

    def _set_error(self, code: str, message: str) -> Dict[str, str]:
        title, friendly = get_user_friendly_error({'code': code, 'error': message})
        self.error = ErrorInfo(code=code, title=title, message=friendly, detail=message)
        self.phase = Phase.ERROR
        return {'error': message or 'Verification failed', 'code': code}

    def _report_failure(self, failure: Dict[str, str]):
        self._call_host(self.on_failure, failure)

    def _call_host(self, callback, argument):
        if not callback:
            return
        try:
            callback(argument)
        except Exception as e:
            logger.exception(f"Host callback failed: {e}")
