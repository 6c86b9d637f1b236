"""
Layer 1 — Camera
Responsibility: Camera acquisition and release, live frame reads
Output: Raw numpy.ndarray frame
"""
import cv2
import logging
import os
import sys
from dataclasses import dataclass

import numpy as np

from ..error_handlers import CameraError, CameraInitError, CameraNotFoundError, FrameCaptureError

logger = logging.getLogger(__name__)

FACING_USER = 'user'
FACING_ENVIRONMENT = 'environment'


@dataclass(frozen=True)
class StreamConstraints:
    """Requested stream settings. The device may deliver something else."""
    width: int
    height: int
    facing: str = FACING_ENVIRONMENT


class StreamHandle:
    """A live camera stream owned by exactly one wizard step."""

    def read(self) -> np.ndarray:
        raise NotImplementedError

    def release(self):
        pass


class CameraDevice:
    """
    Camera capability consumed by the wizard.

    request_stream() either returns a live StreamHandle or raises CameraError;
    stop_stream() releases a handle previously returned by request_stream().
    """

    def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        raise NotImplementedError

    def stop_stream(self, handle: StreamHandle):
        raise NotImplementedError


class OpenCVStream(StreamHandle):
    """StreamHandle backed by cv2.VideoCapture"""

    def __init__(self, capture, camera_index):
        self.capture = capture
        self.camera_index = camera_index

    def read(self) -> np.ndarray:
        """
        Read the current frame

        Raises:
            FrameCaptureError: If the stream is closed or the read fails
        """
        if self.capture is None or not self.capture.isOpened():
            raise FrameCaptureError(reason="stream closed")

        ret, frame = self.capture.read()
        if not ret or frame is None:
            logger.warning(f"Failed to read frame from camera {self.camera_index}")
            raise FrameCaptureError()
        return frame

    def release(self):
        if self.capture is not None:
            self.capture.release()
            self.capture = None


class OpenCVCamera(CameraDevice):
    """
    Local camera devices through OpenCV.

    OpenCV has no notion of facing mode, so facing is mapped to device
    indices. Rear-facing requests fall back to the front device when the
    rear one cannot be opened.
    """

    def __init__(self, front_index=0, rear_index=None, backend=cv2.CAP_ANY):
        """
        Args:
            front_index: Device index of the user-facing camera
            rear_index: Device index of the environment-facing camera
                (defaults to front_index)
            backend: OpenCV capture backend
        """
        self.front_index = front_index
        self.rear_index = front_index if rear_index is None else rear_index
        self.backend = backend
        logger.info(f"OpenCVCamera created (front={self.front_index}, rear={self.rear_index})")

    def _check_camera_exists(self, camera_index):
        if sys.platform.startswith('linux'):
            device_path = f"/dev/video{camera_index}"
            if not os.path.exists(device_path):
                logger.error(f"Camera device not found: {device_path}")
                raise CameraNotFoundError(camera_index)

    def _open(self, camera_index, constraints):
        self._check_camera_exists(camera_index)

        capture = cv2.VideoCapture(camera_index, self.backend)
        if not capture.isOpened():
            capture.release()
            raise CameraInitError(camera_index, reason="isOpened() returned False")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        actual_width = capture.get(cv2.CAP_PROP_FRAME_WIDTH)
        actual_height = capture.get(cv2.CAP_PROP_FRAME_HEIGHT)
        logger.info(f"Camera {camera_index} opened")
        logger.debug(f"Requested {constraints.width}x{constraints.height}, got {actual_width}x{actual_height}")
        return OpenCVStream(capture, camera_index)

    def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        if constraints.facing == FACING_USER:
            return self._open(self.front_index, constraints)

        try:
            return self._open(self.rear_index, constraints)
        except CameraError:
            if self.rear_index == self.front_index:
                raise
            logger.warning(f"Rear camera {self.rear_index} unavailable, falling back to {self.front_index}")
            return self._open(self.front_index, constraints)

    def stop_stream(self, handle: StreamHandle):
        logger.info("Releasing camera")
        handle.release()


def create_default_camera() -> OpenCVCamera:
    """Camera from CAMERA_INDEX / FRONT_CAMERA_INDEX environment variables."""
    rear_index = int(os.environ.get('CAMERA_INDEX', 0))
    front_index = int(os.environ.get('FRONT_CAMERA_INDEX', rear_index))
    return OpenCVCamera(front_index=front_index, rear_index=rear_index)
