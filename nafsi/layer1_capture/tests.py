"""
Tests for camera acquisition and frame encoding.
"""
import base64

import numpy as np
import pytest

from nafsi.error_handlers import CameraError, CameraInitError, FrameCaptureError
from nafsi.layer1_capture import (
    OpenCVCamera,
    StreamConstraints,
    camera as camera_module,
    data_uri_to_frame,
    decode_data_uri,
    encode_frame,
    format_bytes,
    get_base64_size,
)


class FakeVideoCapture:
    """Stands in for cv2.VideoCapture."""

    opened_indices = set()

    def __init__(self, index, backend=None):
        self.index = index
        self.props = {}
        self.released = False

    def isOpened(self):
        return not self.released and self.index in self.opened_indices

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def read(self):
        return True, np.zeros((720, 1280, 3), dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def video_capture(monkeypatch):
    monkeypatch.setattr(camera_module.cv2, 'VideoCapture', FakeVideoCapture)
    monkeypatch.setattr(OpenCVCamera, '_check_camera_exists', lambda self, index: None)
    FakeVideoCapture.opened_indices = set()
    return FakeVideoCapture


class TestOpenCVCamera:
    """Test facing-mode to device mapping."""

    def test_user_facing_opens_front_device(self, video_capture):
        """Test selfie constraints open the front index."""
        video_capture.opened_indices = {0, 2}
        device = OpenCVCamera(front_index=0, rear_index=2)
        stream = device.request_stream(StreamConstraints(640, 640, facing='user'))
        assert stream.camera_index == 0

    def test_environment_prefers_rear_device(self, video_capture):
        """Test ID constraints open the rear index."""
        video_capture.opened_indices = {0, 2}
        device = OpenCVCamera(front_index=0, rear_index=2)
        stream = device.request_stream(StreamConstraints(1280, 720))
        assert stream.camera_index == 2

    def test_environment_falls_back_to_front(self, video_capture):
        """Test a missing rear camera falls back to the front one."""
        video_capture.opened_indices = {0}
        device = OpenCVCamera(front_index=0, rear_index=2)
        stream = device.request_stream(StreamConstraints(1280, 720))
        assert stream.camera_index == 0

    def test_no_device_raises_camera_error(self, video_capture):
        """Test acquisition failure raises CameraError."""
        device = OpenCVCamera(front_index=0)
        with pytest.raises(CameraInitError) as exc_info:
            device.request_stream(StreamConstraints(1280, 720))
        assert exc_info.value.error_code == 'CAMERA_ERROR'

    def test_requested_resolution_is_applied(self, video_capture):
        """Test the stream is configured with the requested size."""
        video_capture.opened_indices = {0}
        stream = OpenCVCamera().request_stream(StreamConstraints(1280, 720))
        assert stream.capture.get(camera_module.cv2.CAP_PROP_FRAME_WIDTH) == 1280
        assert stream.capture.get(camera_module.cv2.CAP_PROP_FRAME_HEIGHT) == 720

    def test_stop_stream_releases_capture(self, video_capture):
        """Test a stopped stream can no longer be read."""
        video_capture.opened_indices = {0}
        device = OpenCVCamera()
        stream = device.request_stream(StreamConstraints(1280, 720))
        assert stream.read().shape == (720, 1280, 3)

        device.stop_stream(stream)

        assert stream.capture is None
        with pytest.raises(FrameCaptureError):
            stream.read()

    def test_missing_device_node(self, monkeypatch):
        """Test a missing /dev/video node is reported as a camera error."""
        monkeypatch.setattr(camera_module.sys, 'platform', 'linux')
        monkeypatch.setattr(camera_module.os.path, 'exists', lambda path: False)
        with pytest.raises(CameraError):
            OpenCVCamera(front_index=7).request_stream(StreamConstraints(640, 640, facing='user'))


class TestFrameEncoding:
    """Test resampling and data URI handling."""

    def test_encode_resamples_to_target(self):
        """Test the encoded raster has the requested size whatever the input."""
        frame = np.full((720, 1280, 3), 128, dtype=np.uint8)
        data_uri = encode_frame(frame, (590, 372))
        assert data_uri.startswith('data:image/jpeg;base64,')
        assert data_uri_to_frame(data_uri).shape == (372, 590, 3)

    def test_encode_rejects_empty_frame(self):
        """Test an empty frame cannot be encoded."""
        with pytest.raises(FrameCaptureError):
            encode_frame(np.zeros((0, 0, 3), dtype=np.uint8), (640, 640))

    def test_decode_data_uri(self):
        """Test mime type and payload are split out."""
        payload = base64.b64encode(b'hello').decode('ascii')
        mime, data = decode_data_uri(f"data:image/png;base64,{payload}")
        assert mime == 'image/png'
        assert data == b'hello'

    def test_decode_rejects_plain_string(self):
        """Test non data URIs are refused."""
        with pytest.raises(ValueError):
            decode_data_uri('not-a-data-uri')

    def test_base64_size(self):
        """Test decoded size accounts for padding."""
        assert get_base64_size(base64.b64encode(b'hello').decode('ascii')) == 5
        assert get_base64_size(base64.b64encode(b'hello!').decode('ascii')) == 6

    def test_format_bytes(self):
        """Test human readable sizes."""
        assert format_bytes(0) == '0 Bytes'
        assert format_bytes(512) == '512 Bytes'
        assert format_bytes(1536) == '1.5 KB'
        assert format_bytes(32 * 1024) == '32 KB'
        assert format_bytes(5 * 1024 * 1024) == '5 MB'
