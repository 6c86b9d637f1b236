"""
Tests for the capture wizard state machine.
"""
import threading

import pytest

from nafsi.error_handlers import APIError, FrameCaptureError, InvalidActionError, NetworkError
from nafsi.layer1_capture import StreamConstraints, data_uri_to_frame
from nafsi.layer2_wizard import CaptureWizard, Phase, Step


def capture_and_continue(wizard, times):
    for _ in range(times):
        wizard.capture()
        wizard.continue_()


class TestStart:
    """Test entering the first step."""

    def test_start_goes_live_on_id_front(self, wizard, camera):
        """Test start acquires the camera for idFront."""
        wizard.start()
        assert wizard.step is Step.ID_FRONT
        assert wizard.phase is Phase.LIVE
        assert wizard.has_camera
        assert len(camera.requests) == 1

    def test_id_steps_request_rear_camera(self, wizard, camera):
        """Test ID steps ask for an environment-facing 1280x720 stream."""
        wizard.start()
        assert camera.requests[0] == StreamConstraints(width=1280, height=720, facing='environment')

    def test_selfie_requests_front_camera(self, wizard, camera):
        """Test selfie step asks for a user-facing 640x640 stream."""
        wizard.start()
        capture_and_continue(wizard, 2)
        assert wizard.step is Step.SELFIE
        assert camera.requests[-1] == StreamConstraints(width=640, height=640, facing='user')

    def test_start_twice_is_rejected(self, wizard):
        """Test start is only valid once."""
        wizard.start()
        with pytest.raises(InvalidActionError):
            wizard.start()

    def test_camera_failure_moves_to_error(self, wizard, camera, callbacks):
        """Test denied camera access reports CAMERA_ERROR and keeps the session open."""
        camera.fail = True
        wizard.start()

        assert wizard.phase is Phase.ERROR
        assert not wizard.closed
        assert wizard.error.code == 'CAMERA_ERROR'
        assert wizard.error.title == 'Camera Access Required'
        assert callbacks.failures == [{'error': 'Camera access denied', 'code': 'CAMERA_ERROR'}]

    def test_retry_after_camera_failure(self, wizard, camera):
        """Test retry re-acquires the camera once it is available."""
        camera.fail = True
        wizard.start()
        camera.fail = False
        wizard.retry()
        assert wizard.phase is Phase.LIVE
        assert wizard.error is None


class TestCaptureAndPreview:
    """Test capture, retake and continue."""

    def test_capture_stores_slot_and_releases_camera(self, wizard, camera):
        """Test capture fills the slot, stops the stream and enters preview."""
        wizard.start()
        wizard.capture()

        assert wizard.phase is Phase.PREVIEW
        assert wizard.images.id_front.startswith('data:image/jpeg;base64,')
        assert not wizard.has_camera
        assert camera.stop_calls == 1
        assert camera.live_streams == []

    def test_id_capture_uses_card_raster(self, wizard):
        """Test ID captures are resampled to 590x372."""
        wizard.start()
        wizard.capture()
        frame = data_uri_to_frame(wizard.images.id_front)
        assert frame.shape[:2] == (372, 590)

    def test_selfie_capture_uses_square_raster(self, wizard):
        """Test selfie captures are resampled to 640x640."""
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        frame = data_uri_to_frame(wizard.images.selfie)
        assert frame.shape[:2] == (640, 640)

    def test_capture_only_valid_while_live(self, wizard):
        """Test capture in preview is rejected without side effects."""
        wizard.start()
        wizard.capture()
        stored = wizard.images.id_front
        with pytest.raises(InvalidActionError):
            wizard.capture()
        assert wizard.images.id_front == stored
        assert wizard.phase is Phase.PREVIEW

    def test_continue_only_valid_in_preview(self, wizard):
        """Test continue while live is rejected."""
        wizard.start()
        with pytest.raises(InvalidActionError):
            wizard.continue_()
        assert wizard.step is Step.ID_FRONT
        assert wizard.phase is Phase.LIVE

    def test_retake_only_valid_in_preview(self, wizard):
        """Test retake while live is rejected."""
        wizard.start()
        with pytest.raises(InvalidActionError):
            wizard.retake()

    def test_continue_advances_exactly_one_step(self, wizard):
        """Test the fixed idFront -> idBack -> selfie order."""
        wizard.start()
        seen = [wizard.step]
        for _ in range(2):
            wizard.capture()
            wizard.continue_()
            seen.append(wizard.step)
            assert wizard.phase is Phase.LIVE
        assert seen == [Step.ID_FRONT, Step.ID_BACK, Step.SELFIE]

    def test_retake_clears_only_current_slot(self, wizard):
        """Test retake empties the current slot and leaves the others."""
        wizard.start()
        capture_and_continue(wizard, 1)
        wizard.capture()
        front = wizard.images.id_front

        wizard.retake()

        assert wizard.images.id_back is None
        assert wizard.images.id_front == front
        assert wizard.phase is Phase.LIVE
        assert wizard.step is Step.ID_BACK

    def test_retake_keeps_second_capture(self, wizard):
        """Test capture -> retake -> capture -> continue keeps the second image."""
        wizard.start()
        wizard.capture()
        first = wizard.images.id_front
        wizard.retake()
        wizard.capture()
        second = wizard.images.id_front
        wizard.continue_()

        assert second != first
        assert wizard.images.id_front == second
        assert wizard.step is Step.ID_BACK
        assert wizard.phase is Phase.LIVE

    def test_frame_read_failure_reports_camera_error(self, wizard, camera, callbacks):
        """Test a failed frame read moves to error and releases the stream."""
        wizard.start()

        def broken_read():
            raise FrameCaptureError()

        camera.streams[-1].read = broken_read
        wizard.capture()

        assert wizard.phase is Phase.ERROR
        assert wizard.error.code == 'CAMERA_ERROR'
        assert wizard.images.id_front is None
        assert camera.live_streams == []
        assert len(callbacks.failures) == 1


class TestSubmission:
    """Test the final transition into submitting."""

    def test_success_submits_once_and_closes(self, wizard, camera, api_client, callbacks):
        """Test a successful submission calls on_success once and closes."""
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        images = (wizard.images.id_front, wizard.images.id_back, wizard.images.selfie)

        result = wizard.continue_()

        assert len(api_client.payloads) == 1
        body = api_client.payloads[0].to_json()
        assert body == {
            'client_id': 'c1',
            'work_flow_id': 'w1',
            'id_front_image_url': images[0],
            'id_back_image_url': images[1],
            'selfie_image_url': images[2],
            'method': 'process_idv',
        }
        assert callbacks.successes == [{'success': True, 'reference': 'ver-123'}]
        assert callbacks.failures == []
        assert result.success
        assert wizard.closed
        assert camera.live_streams == []

    def test_failure_keeps_session_in_error(self, wizard, api_client, callbacks):
        """Test a rejected submission reports API_ERROR and stays open."""
        api_client.error = APIError('Document unreadable', status_code=200)
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()

        result = wizard.continue_()

        assert not result.success
        assert result.code == 'API_ERROR'
        assert callbacks.failures == [{'error': 'Document unreadable', 'code': 'API_ERROR'}]
        assert callbacks.successes == []
        assert not wizard.closed
        assert wizard.step is Step.SUBMITTING
        assert wizard.phase is Phase.ERROR
        assert wizard.error.title == 'Verification Failed'
        assert wizard.error.detail == 'Document unreadable'

    def test_network_failure_is_classified(self, wizard, api_client, callbacks):
        """Test a missing response is reported as NETWORK_ERROR."""
        api_client.error = NetworkError('Connection refused')
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        wizard.continue_()

        assert callbacks.failures == [{'error': 'Connection refused', 'code': 'NETWORK_ERROR'}]
        assert wizard.error.title == 'Connection Error'

    def test_unexpected_client_error_is_api_error(self, wizard, api_client, callbacks):
        """Test arbitrary client exceptions never escape the wizard."""
        api_client.error = RuntimeError('boom')
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        wizard.continue_()

        assert callbacks.failures == [{'error': 'boom', 'code': 'API_ERROR'}]

    def test_retry_resets_every_slot(self, wizard, api_client):
        """Test retry from error clears all slots and restarts at idFront."""
        api_client.error = APIError('Rejected')
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        wizard.continue_()

        wizard.retry()

        assert wizard.step is Step.ID_FRONT
        assert wizard.phase is Phase.LIVE
        assert wizard.images.filled() == {'idFront': False, 'idBack': False, 'selfie': False}
        assert wizard.error is None

    def test_retry_only_valid_from_error(self, wizard):
        """Test retry outside the error overlay is rejected."""
        wizard.start()
        with pytest.raises(InvalidActionError):
            wizard.retry()

    def test_close_during_submission_discards_result(self, wizard, api_client, callbacks):
        """Test a result arriving after close is not applied."""
        api_client.on_submit = wizard.close
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()

        result = wizard.continue_()

        assert result is None
        assert callbacks.successes == []
        assert callbacks.failures == []
        assert wizard.closed

    def test_concurrent_continue_submits_once(self, wizard, api_client, monkeypatch):
        """Test a second continue racing the first is rejected before it can submit."""
        entered = threading.Event()
        release = threading.Event()
        submit = wizard._submit

        def delayed_submit():
            entered.set()
            release.wait(5)
            return submit()

        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()
        monkeypatch.setattr(wizard, '_submit', delayed_submit)

        worker = threading.Thread(target=wizard.continue_)
        worker.start()
        try:
            assert entered.wait(5)
            assert wizard.phase is Phase.PROCESSING
            with pytest.raises(InvalidActionError):
                wizard.continue_()
        finally:
            release.set()
            worker.join(5)

        assert len(api_client.payloads) == 1
        assert wizard.closed

    def test_raising_success_callback_still_closes(self, session_config, camera, api_client):
        """Test an exception in on_success does not escape continue."""
        def on_success(data):
            raise RuntimeError('host bug')

        wizard = CaptureWizard(session_config, camera=camera, client=api_client, on_success=on_success)
        wizard.start()
        capture_and_continue(wizard, 2)
        wizard.capture()

        result = wizard.continue_()

        assert result.success
        assert wizard.closed

    def test_raising_failure_callback_keeps_error_phase(self, session_config, camera, api_client):
        """Test an exception in on_failure does not escape the action."""
        def on_failure(failure):
            raise RuntimeError('host bug')

        camera.fail = True
        wizard = CaptureWizard(session_config, camera=camera, client=api_client, on_failure=on_failure)
        wizard.start()

        assert wizard.phase is Phase.ERROR
        assert wizard.error.code == 'CAMERA_ERROR'


class TestClose:
    """Test teardown and camera release."""

    def test_close_releases_live_camera(self, wizard, camera):
        """Test close from live stops the stream."""
        wizard.start()
        wizard.close()
        assert wizard.closed
        assert camera.stop_calls == 1
        assert camera.live_streams == []

    def test_close_is_idempotent(self, wizard, camera):
        """Test closing twice does not stop the stream twice."""
        wizard.start()
        wizard.close()
        wizard.close()
        assert camera.stop_calls == 1
        assert camera.double_stops == 0

    def test_close_in_preview_has_nothing_to_release(self, wizard, camera):
        """Test close after capture does not touch the released stream."""
        wizard.start()
        wizard.capture()
        wizard.close()
        assert camera.stop_calls == 1
        assert camera.double_stops == 0

    def test_close_before_start(self, wizard, camera):
        """Test close on an idle wizard."""
        wizard.close()
        assert wizard.closed
        assert camera.requests == []

    def test_close_during_acquisition_stops_late_stream(self, wizard, camera):
        """Test a stream acquired after close is stopped immediately."""
        camera.on_request = wizard.close
        wizard.start()

        assert wizard.closed
        assert len(camera.streams) == 1
        assert camera.stop_calls == 1
        assert camera.live_streams == []

    def test_late_stream_stop_failure_is_contained(self, wizard, camera, monkeypatch):
        """Test a failing stop of a late stream does not escape start."""
        def broken_stop(handle):
            raise RuntimeError('device busy')

        camera.on_request = wizard.close
        monkeypatch.setattr(camera, 'stop_stream', broken_stop)
        wizard.start()

        assert wizard.closed
        assert not wizard.has_camera

    def test_actions_after_close_are_rejected(self, wizard):
        """Test no action is valid on a closed session."""
        wizard.start()
        wizard.close()
        for action in (wizard.capture, wizard.retake, wizard.continue_, wizard.retry, wizard.start):
            with pytest.raises(InvalidActionError):
                action()

    def test_every_acquisition_released_once(self, wizard, camera):
        """Test a full flow stops every stream exactly once."""
        wizard.start()
        wizard.capture()
        wizard.retake()
        wizard.capture()
        wizard.continue_()
        wizard.capture()
        wizard.continue_()
        wizard.capture()
        wizard.continue_()

        assert wizard.closed
        assert camera.stop_calls == len(camera.streams) == 4
        assert camera.double_stops == 0


class TestView:
    """Test the snapshots handed to renderers."""

    def test_live_view(self, wizard):
        """Test the view of a live idFront step."""
        wizard.start()
        view = wizard.snapshot().to_dict()

        assert view['step'] == 'idFront'
        assert view['phase'] == 'live'
        assert view['actions'] == ['capture', 'close']
        assert view['title'] == 'Capture ID Front'
        assert view['camera_class'] == 'id-card'
        assert view['preview'] is None
        assert view['organization_name'] == 'Acme Bank'
        assert view['palette']['primary'] == '#00b8ff'

    def test_preview_view_carries_image(self, wizard):
        """Test preview exposes the captured image and decision actions."""
        wizard.start()
        wizard.capture()
        view = wizard.snapshot()

        assert view.preview == wizard.images.id_front
        assert view.actions == ('retake', 'continue', 'close')
        assert view.slots == {'idFront': True, 'idBack': False, 'selfie': False}

    def test_listeners_see_every_transition(self, wizard):
        """Test subscribers receive starting, live and preview views."""
        views = []
        wizard.subscribe(views.append)
        wizard.start()
        wizard.capture()
        wizard.close()

        assert [(v.step, v.phase) for v in views] == [
            (Step.ID_FRONT, Phase.STARTING),
            (Step.ID_FRONT, Phase.LIVE),
            (Step.ID_FRONT, Phase.PREVIEW),
            (Step.CLOSED, Phase.PREVIEW),
        ]
        assert views[-1].actions == ()

    def test_read_live_frame(self, wizard):
        """Test frames are only readable while live."""
        assert wizard.read_live_frame() is None
        wizard.start()
        assert wizard.read_live_frame() is not None
        wizard.capture()
        assert wizard.read_live_frame() is None
