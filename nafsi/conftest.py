"""
Pytest configuration and fixtures for Nafsi SDK tests.
"""
import os

import numpy as np
import pytest

from nafsi.error_handlers import CameraError, FrameCaptureError
from nafsi.layer1_capture import CameraDevice, StreamHandle
from nafsi.layer2_wizard import CaptureWizard


class FakeStream(StreamHandle):
    """Stream returning a differently shaded frame on every read."""

    def __init__(self, camera, constraints):
        self.camera = camera
        self.constraints = constraints
        self.stopped = False

    def read(self):
        if self.stopped:
            raise FrameCaptureError(reason="stream closed")
        self.camera.reads += 1
        shade = (self.camera.reads * 40) % 256
        return np.full((self.constraints.height, self.constraints.width, 3), shade, dtype=np.uint8)


class FakeCamera(CameraDevice):
    """Camera capability recording every acquisition and release."""

    def __init__(self):
        self.requests = []
        self.streams = []
        self.stop_calls = 0
        self.double_stops = 0
        self.reads = 0
        self.fail = False
        self.on_request = None

    def request_stream(self, constraints):
        self.requests.append(constraints)
        if self.on_request is not None:
            self.on_request()
        if self.fail:
            raise CameraError()
        stream = FakeStream(self, constraints)
        self.streams.append(stream)
        return stream

    def stop_stream(self, handle):
        if handle.stopped:
            self.double_stops += 1
            return
        handle.stopped = True
        self.stop_calls += 1

    @property
    def live_streams(self):
        return [stream for stream in self.streams if not stream.stopped]


class FakeAPIClient:
    """Transport double: returns a canned body or raises a canned error."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {'success': True, 'reference': 'ver-123'}
        self.error = error
        self.payloads = []
        self.on_submit = None

    def submit(self, payload):
        self.payloads.append(payload)
        if self.on_submit is not None:
            self.on_submit()
        if self.error is not None:
            raise self.error
        return self.response


class CallbackRecorder:
    """Collects on_success / on_failure invocations."""

    def __init__(self):
        self.successes = []
        self.failures = []

    def on_success(self, data):
        self.successes.append(data)

    def on_failure(self, failure):
        self.failures.append(failure)


@pytest.fixture
def camera():
    """Fake camera device."""
    return FakeCamera()


@pytest.fixture
def api_client():
    """Fake verification API client that succeeds."""
    return FakeAPIClient()


@pytest.fixture
def callbacks():
    """Recorder for wizard callbacks."""
    return CallbackRecorder()


@pytest.fixture
def session_config():
    """Minimal configuration snapshot for a wizard."""
    return {
        'workflow_id': 'w1',
        'client_id': 'c1',
        'api_url': 'https://api.example.test/postdata',
        'organization_name': 'Acme Bank',
        'primary_color': '#00b8ff',
        'secondary_color': '#0d153b',
        'accent_color': '#fa764a',
    }


@pytest.fixture
def wizard(session_config, camera, api_client, callbacks):
    """Wizard wired to fakes, not yet started."""
    return CaptureWizard(
        session_config,
        camera=camera,
        client=api_client,
        on_success=callbacks.on_success,
        on_failure=callbacks.on_failure,
    )


@pytest.fixture
def app(tmp_path, camera, api_client):
    """Flask test application serving from a temporary public dir."""
    from nafsi.app import app as flask_app

    public_v1 = tmp_path / 'public' / 'v1'
    public_v1.mkdir(parents=True)

    flask_app.config['TESTING'] = True
    flask_app.config['PUBLIC_DIR'] = str(tmp_path / 'public')
    flask_app.config['PRODUCTION'] = False
    flask_app.config['NAFSI_CAMERA'] = camera
    flask_app.config['NAFSI_CLIENT_FACTORY'] = lambda config: api_client
    flask_app.extensions.pop('nafsi_kiosk', None)
    yield flask_app
    flask_app.extensions.pop('nafsi_kiosk', None)


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def public_v1(app):
    """Directory the bundle is served from."""
    return os.path.join(app.config['PUBLIC_DIR'], 'v1')
