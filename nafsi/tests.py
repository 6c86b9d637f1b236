"""
Tests for configuration, the SDK facade, the CDN server and the kiosk API.
"""
import json
import logging
import os
import threading

import pytest

from nafsi import NafsiSDK, Config, VERSION
from nafsi.branding import build_palette, darken_color, lighten_color
from nafsi.config import DEFAULT_API_URL
from nafsi.error_handlers import (
    CameraError,
    MissingRequiredFieldError,
    NotInitializedError,
    get_user_friendly_error,
    handle_error,
)
from nafsi.layer2_wizard import Phase, Step


class TestConfig:
    """Test the configuration holder."""

    def test_defaults(self):
        """Test factory defaults are in place."""
        config = Config()
        assert config.get('api_url') == DEFAULT_API_URL
        assert config.get('theme') == 'light'
        assert config.get('language') == 'en'
        assert config.get('debug') is False

    def test_set_is_shallow_last_write_wins(self):
        """Test later values override earlier ones."""
        config = Config()
        config.set({'theme': 'dark'})
        config.set({'theme': 'contrast', 'language': 'sw'})
        assert config.get('theme') == 'contrast'
        assert config.get('language') == 'sw'

    def test_camel_case_aliases(self):
        """Test host-page option names map onto snake_case keys."""
        config = Config()
        config.set({'workflowId': 'w1', 'clientId': 'c1', 'primaryColor': '#112233'})
        assert config.get('workflow_id') == 'w1'
        assert config.get('clientId') == 'c1'
        assert config.get('primary_color') == '#112233'

    def test_get_all_is_a_copy(self):
        """Test mutating a snapshot leaves the holder untouched."""
        config = Config()
        snapshot = config.get_all()
        snapshot['theme'] = 'dark'
        assert config.get('theme') == 'light'

    def test_validate_names_first_missing_field(self):
        """Test validation reports workflow_id before client_id."""
        config = Config()
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            config.validate()
        assert exc_info.value.field == 'workflow_id'

        config.set({'workflow_id': 'w1'})
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            config.validate()
        assert exc_info.value.field == 'client_id'

        config.set({'client_id': 'c1'})
        assert config.validate() is True

    def test_reset(self):
        """Test reset restores defaults."""
        config = Config()
        config.set({'workflow_id': 'w1', 'theme': 'dark'})
        config.reset()
        assert config.get('workflow_id') is None
        assert config.get('theme') == 'light'


class TestErrors:
    """Test error mapping helpers."""

    def test_friendly_messages_by_code(self):
        """Test each code has its own title."""
        assert get_user_friendly_error({'code': 'CAMERA_ERROR'})[0] == 'Camera Access Required'
        assert get_user_friendly_error({'code': 'API_ERROR'})[0] == 'Verification Failed'
        assert get_user_friendly_error({'code': 'NETWORK_ERROR'})[0] == 'Connection Error'

    def test_unknown_code_uses_own_message(self):
        """Test unrecognized errors fall back to a generic title."""
        title, message = get_user_friendly_error({'code': 'WEIRD', 'error': 'Something odd'})
        assert title == 'Verification Failed'
        assert message == 'Something odd'

    def test_fallbacks(self):
        """Test strings, exceptions and nothing at all."""
        assert get_user_friendly_error('Plain text') == ('Verification Failed', 'Plain text')
        assert get_user_friendly_error(ValueError('bad'))[1] == 'bad'
        assert get_user_friendly_error(None) == ('Verification Failed', 'Please try again later.')

    def test_string_is_always_a_message(self):
        """Test a bare string is shown as-is even if it looks like a code."""
        assert get_user_friendly_error('CAMERA_ERROR') == ('Verification Failed', 'CAMERA_ERROR')

    def test_handle_known_error(self):
        """Test SDK errors serialize with their code."""
        body = handle_error(CameraError())
        assert body['success'] is False
        assert body['error_code'] == 'CAMERA_ERROR'

    def test_handle_unexpected_error(self):
        """Test other exceptions are wrapped."""
        body = handle_error(RuntimeError('boom'))
        assert body['error_code'] == 'UNEXPECTED_ERROR'
        assert body['details']['error_type'] == 'RuntimeError'


class TestBranding:
    """Test palette helpers."""

    def test_lighten_and_darken(self):
        """Test colour arithmetic at the extremes."""
        assert lighten_color('#000000', 1) == '#ffffff'
        assert lighten_color('#00b8ff', 0) == '#00b8ff'
        assert darken_color('#ffffff', 1) == '#000000'
        assert darken_color('#00b8ff', 0.1) == '#00a5e5'

    def test_palette_defaults(self):
        """Test missing colours fall back to the brand defaults."""
        palette = build_palette({})
        assert palette['primary'] == '#00b8ff'
        assert palette['secondary'] == '#0d153b'
        assert palette['accent'] == '#fa764a'

    def test_short_hex(self):
        """Test three-digit hex colours are expanded."""
        assert lighten_color('#fff', 0) == '#ffffff'
        assert darken_color('#fff', 1) == '#000000'
        assert darken_color('#0bf', 0) == '#00bbff'
        assert build_palette({'primary_color': '#fff'})['primary_hover'] == '#e5e5e5'

    def test_unparseable_colours_fall_back(self):
        """Test named and rgb() colours never raise and use the defaults."""
        assert lighten_color('red', 0.5) == 'red'
        assert darken_color('rgb(0,0,0)', 0.5) == 'rgb(0,0,0)'
        palette = build_palette({'primary_color': 'red', 'accent_color': 'rgb(0,0,0)'})
        assert palette['primary'] == '#00b8ff'
        assert palette['accent'] == '#fa764a'


class TestSDK:
    """Test the entry facade."""

    @pytest.fixture
    def sdk(self, camera, api_client):
        return NafsiSDK(camera=camera, client_factory=lambda config: api_client)

    def test_init_without_api_url_uses_default(self, sdk):
        """Test the effective API URL is the documented default."""
        sdk.init({'workflowId': 'w1', 'clientId': 'c1'})
        assert sdk.config.get('api_url') == DEFAULT_API_URL
        assert sdk.is_initialized()

    def test_init_auto_starts(self, sdk, camera):
        """Test init starts a live session."""
        wizard = sdk.init({'workflowId': 'w1', 'clientId': 'c1'})
        assert wizard is sdk.wizard
        assert wizard.step is Step.ID_FRONT
        assert wizard.phase is Phase.LIVE
        assert len(camera.requests) == 1

    def test_missing_client_id_fails_before_camera(self, sdk, camera):
        """Test init validates before touching the camera."""
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            sdk.init({'workflowId': 'w1'})
        assert exc_info.value.field == 'client_id'
        assert camera.requests == []
        assert not sdk.is_initialized()

    def test_missing_options(self, sdk):
        """Test init with nothing at all names workflow_id."""
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            sdk.init()
        assert exc_info.value.field == 'workflow_id'

    def test_start_before_init(self, sdk):
        """Test start requires init."""
        with pytest.raises(NotInitializedError):
            sdk.start()

    def test_close_without_session_is_noop(self, sdk):
        """Test close with nothing active."""
        sdk.close()
        assert sdk.wizard is None

    def test_close_releases_camera(self, sdk, camera):
        """Test close tears down the active session."""
        wizard = sdk.init(workflow_id='w1', client_id='c1')
        sdk.close()
        assert wizard.closed
        assert sdk.wizard is None
        assert camera.live_streams == []

    def test_restart_replaces_session(self, sdk, camera):
        """Test start while active releases the old camera first."""
        first = sdk.init(workflow_id='w1', client_id='c1')
        second = sdk.start()
        assert first.closed
        assert second is not first
        assert second.phase is Phase.LIVE
        assert len(camera.live_streams) == 1

    def test_callbacks_reach_wizard(self, sdk, callbacks):
        """Test on_success from init fires after submission."""
        wizard = sdk.init(
            workflow_id='w1',
            client_id='c1',
            on_success=callbacks.on_success,
            on_failure=callbacks.on_failure,
        )
        for _ in range(3):
            wizard.capture()
            wizard.continue_()
        assert callbacks.successes == [{'success': True, 'reference': 'ver-123'}]
        assert wizard.closed

    def test_session_uses_config_snapshot(self, sdk):
        """Test later config changes do not leak into a running session."""
        wizard = sdk.init(workflow_id='w1', client_id='c1')
        sdk.config.set({'workflow_id': 'w2'})
        assert wizard.config['workflow_id'] == 'w1'

    def test_named_colour_does_not_break_init(self, sdk):
        """Test a non-hex brand colour still starts a session."""
        wizard = sdk.init({'workflowId': 'w1', 'clientId': 'c1', 'primaryColor': 'red'})
        assert wizard.phase is Phase.LIVE
        assert wizard.snapshot().palette['primary'] == '#00b8ff'

    def test_debug_applies_to_one_init(self, sdk):
        """Test a later init without debug restores the logger level."""
        sdk.init(workflow_id='w1', client_id='c1', debug=True)
        assert logging.getLogger('nafsi').level == logging.DEBUG

        sdk.init(workflow_id='w1', client_id='c1')
        assert logging.getLogger('nafsi').level == logging.NOTSET

    def test_version(self, sdk):
        """Test the fixed version string."""
        assert sdk.get_version() == VERSION == '1.0.0'


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_returns_ok(self, client):
        """Test /health returns healthy status."""
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['version'] == VERSION
        assert 'timestamp' in data

    def test_security_headers(self, client):
        """Test every response carries the security headers."""
        response = client.get('/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'
        assert response.headers['X-XSS-Protection'] == '1; mode=block'


class TestBundleEndpoints:
    """Test static bundle serving and version info."""

    def test_bundle_served_with_cache_headers(self, client, public_v1):
        """Test /v1/nafsi.js is served as JavaScript cached for an hour."""
        with open(os.path.join(public_v1, 'nafsi.js'), 'w') as f:
            f.write('window.Nafsi = {};')

        response = client.get('/v1/nafsi.js', headers={'Origin': 'https://shop.example'})
        assert response.status_code == 200
        assert response.headers['Content-Type'] == 'application/javascript; charset=utf-8'
        assert response.headers['Cache-Control'] == 'public, max-age=3600'
        assert response.headers['Access-Control-Allow-Origin'] == '*'
        assert response.data == b'window.Nafsi = {};'

    def test_source_map_served_as_json(self, client, public_v1):
        """Test the source map content type."""
        with open(os.path.join(public_v1, 'nafsi.js.map'), 'w') as f:
            f.write('{"version": 3}')

        response = client.get('/v1/nafsi.js.map')
        assert response.status_code == 200
        assert response.headers['Content-Type'] == 'application/json; charset=utf-8'

    def test_missing_bundle_is_json_404(self, client):
        """Test an absent bundle returns the JSON 404."""
        response = client.get('/v1/nafsi.js')
        assert response.status_code == 404
        data = json.loads(response.data)
        assert data['error'] == 'Not Found'

    def test_version_reports_bundle_size(self, client, public_v1):
        """Test /v1/version includes the bundle URL and size."""
        with open(os.path.join(public_v1, 'nafsi.js'), 'wb') as f:
            f.write(b'x' * 2048)

        data = json.loads(client.get('/v1/version').data)
        assert data['version'] == VERSION
        assert data['sdkUrl'].endswith('/v1/nafsi.js')
        assert data['size'] == '2 KB'
        assert 'lastUpdated' in data

    def test_version_without_bundle(self, client):
        """Test size is null when no bundle has been deployed."""
        data = json.loads(client.get('/v1/version').data)
        assert data['size'] is None


class TestVerifyPage:
    """Test the demo verification page."""

    def test_requires_ids(self, client):
        """Test missing workflowId/clientId returns 400 with usage."""
        response = client.get('/v1/verify?workflowId=w1')
        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['error'] == 'Bad Request'
        assert 'usage' in data

    def test_renders_configuration(self, client):
        """Test the page embeds the ids and the default API URL."""
        response = client.get('/v1/verify?workflowId=w1&clientId=c1')
        assert response.status_code == 200
        html = response.get_data(as_text=True)
        assert '<code>w1</code>' in html
        assert '<code>c1</code>' in html
        assert DEFAULT_API_URL in html
        assert '<script src="/v1/nafsi.js"></script>' in html

    def test_query_values_are_escaped(self, client):
        """Test markup in query parameters is not injected into the page."""
        response = client.get('/v1/verify?workflowId=<script>alert(1)</script>&clientId=c1')
        html = response.get_data(as_text=True)
        assert '<script>alert(1)</script>' not in html


class TestErrorHandling:
    """Test JSON error responses."""

    def test_unknown_route_lists_endpoints(self, client):
        """Test 404 body lists available endpoints."""
        response = client.get('/nope')
        assert response.status_code == 404
        data = json.loads(response.data)
        assert '/health' in data['availableEndpoints']

    def test_method_not_allowed_is_json(self, client):
        """Test wrong method returns a JSON error."""
        response = client.post('/health')
        assert response.status_code == 405
        assert response.content_type == 'application/json'

    def test_server_error_is_json(self, app, client, monkeypatch):
        """Test uncaught errors become JSON 500s."""
        from nafsi import app as app_module

        def explode():
            raise RuntimeError('disk on fire')

        monkeypatch.setattr(app_module, '_timestamp', explode)
        response = client.get('/health')
        assert response.status_code == 500
        data = json.loads(response.data)
        assert data['error'] == 'Internal Server Error'
        assert data['message'] == 'disk on fire'

    def test_server_error_hidden_in_production(self, app, client, monkeypatch):
        """Test production hides the exception message."""
        from nafsi import app as app_module

        def explode():
            raise RuntimeError('disk on fire')

        monkeypatch.setattr(app_module, '_timestamp', explode)
        app.config['PRODUCTION'] = True
        response = client.get('/health')
        assert json.loads(response.data)['message'] == 'An error occurred'


class TestKioskAPI:
    """Test driving the wizard over HTTP."""

    def start(self, client):
        return client.post('/kiosk/session', json={'workflowId': 'w1', 'clientId': 'c1'})

    def test_start_session(self, client, camera):
        """Test POST /kiosk/session starts a live idFront step."""
        response = self.start(client)
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['active'] is True
        assert data['view']['step'] == 'idFront'
        assert data['view']['phase'] == 'live'
        assert len(camera.requests) == 1

    def test_start_requires_ids(self, client, camera):
        """Test missing ids return 400 before the camera is touched."""
        response = client.post('/kiosk/session', json={'workflowId': 'w1'})
        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['error_code'] == 'MISSING_REQUIRED_FIELD'
        assert camera.requests == []

    def test_action_without_session(self, client):
        """Test actions before start return 409."""
        response = client.post('/kiosk/session/capture')
        assert response.status_code == 409
        assert json.loads(response.data)['error_code'] == 'NOT_INITIALIZED'

    def test_invalid_action_for_phase(self, client):
        """Test continue while live returns 409."""
        self.start(client)
        response = client.post('/kiosk/session/continue')
        assert response.status_code == 409
        assert json.loads(response.data)['error_code'] == 'INVALID_ACTION'

    def test_unknown_action(self, client):
        """Test unknown actions return 404."""
        self.start(client)
        response = client.post('/kiosk/session/dance')
        assert response.status_code == 404

    def test_full_flow(self, client, api_client):
        """Test capture/continue through submission."""
        self.start(client)
        for _ in range(3):
            assert client.post('/kiosk/session/capture').status_code == 200
            response = client.post('/kiosk/session/continue')
            assert response.status_code == 200

        data = json.loads(response.data)
        assert data['active'] is False
        assert data['view']['step'] == 'closed'
        assert data['result'] == {'success': True, 'data': {'success': True, 'reference': 'ver-123'}}
        assert len(api_client.payloads) == 1

    def test_capture_returns_preview(self, client):
        """Test the captured image is returned for review."""
        self.start(client)
        data = json.loads(client.post('/kiosk/session/capture').data)
        assert data['view']['phase'] == 'preview'
        assert data['view']['preview'].startswith('data:image/jpeg;base64,')

    def test_camera_failure_reported(self, client, camera):
        """Test a camera failure shows up as the last result."""
        camera.fail = True
        data = json.loads(self.start(client).data)
        assert data['view']['phase'] == 'error'
        assert data['view']['error']['code'] == 'CAMERA_ERROR'
        assert data['result'] == {'success': False, 'error': 'Camera access denied', 'code': 'CAMERA_ERROR'}

    def test_close_session(self, client, camera):
        """Test DELETE closes the session and is idempotent."""
        self.start(client)
        assert client.delete('/kiosk/session').status_code == 200
        assert client.delete('/kiosk/session').status_code == 200
        assert camera.live_streams == []
        data = json.loads(client.get('/kiosk/session').data)
        assert data['active'] is False
        assert data['view'] is None

    def test_close_while_submission_in_flight(self, app, client, api_client, camera):
        """Test DELETE returns while the verification call is still pending."""
        entered = threading.Event()
        release = threading.Event()

        def blocking_submit():
            entered.set()
            release.wait(5)

        self.start(client)
        for _ in range(2):
            client.post('/kiosk/session/capture')
            client.post('/kiosk/session/continue')
        client.post('/kiosk/session/capture')
        api_client.on_submit = blocking_submit

        responses = []
        worker = threading.Thread(
            target=lambda: responses.append(app.test_client().post('/kiosk/session/continue'))
        )
        worker.start()
        try:
            assert entered.wait(5)
            assert client.delete('/kiosk/session').status_code == 200
            assert worker.is_alive()
        finally:
            release.set()
            worker.join(5)

        assert responses[0].status_code == 200
        data = json.loads(client.get('/kiosk/session').data)
        assert data['active'] is False
        assert data['result'] is None
        assert camera.live_streams == []

    def test_named_colour_starts_session(self, client):
        """Test a non-hex brand colour does not fail the start."""
        response = client.post('/kiosk/session', json={
            'workflowId': 'w1', 'clientId': 'c1', 'primaryColor': 'rgb(0,0,0)',
        })
        assert response.status_code == 200
        assert json.loads(response.data)['view']['palette']['primary'] == '#00b8ff'

    def test_video_feed_without_session(self, client):
        """Test the MJPEG feed needs an active session."""
        response = client.get('/kiosk/video_feed')
        assert response.status_code == 409
