"""
Tests for the verification API client.
"""
import pytest
import requests

from nafsi.error_handlers import APIError, NetworkError, TransportError
from nafsi.layer3_submission import APIClient, SubmissionPayload

API_URL = 'https://api.example.test/postdata'


class FakeResponse:
    def __init__(self, status_code=200, body=None, reason='OK', invalid_json=False):
        self.status_code = status_code
        self.reason = reason
        self._body = body
        self._invalid_json = invalid_json

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._invalid_json:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Records posts and replays a canned response or exception."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def payload():
    return SubmissionPayload(
        client_id='c1',
        work_flow_id='w1',
        selfie_image_url='data:image/jpeg;base64,c2VsZmll',
        id_front_image_url='data:image/jpeg;base64,ZnJvbnQ=',
        id_back_image_url='data:image/jpeg;base64,YmFjaw==',
    )


class TestSubmit:
    """Test APIClient.submit outcomes."""

    def test_success_returns_body(self, payload):
        """Test a 2xx response with success flag returns the body unchanged."""
        body = {'success': True, 'data': {'match': 0.97}}
        session = FakeSession(FakeResponse(body=body))
        client = APIClient(API_URL, session=session)

        assert client.submit(payload) == body
        assert len(session.calls) == 1

    def test_posts_payload_as_json(self, payload):
        """Test the wire body carries every field and the operation tag."""
        session = FakeSession(FakeResponse(body={'success': True}))
        APIClient(API_URL, session=session).submit(payload)

        url, kwargs = session.calls[0]
        assert url == API_URL
        assert kwargs['json'] == {
            'client_id': 'c1',
            'work_flow_id': 'w1',
            'selfie_image_url': 'data:image/jpeg;base64,c2VsZmll',
            'id_front_image_url': 'data:image/jpeg;base64,ZnJvbnQ=',
            'id_back_image_url': 'data:image/jpeg;base64,YmFjaw==',
            'method': 'process_idv',
        }
        assert kwargs['headers']['Content-Type'] == 'application/json'
        assert 'Authorization' not in kwargs['headers']
        assert kwargs['timeout'] is None

    def test_bearer_token_attached(self, payload):
        """Test a configured token is sent as a bearer header."""
        session = FakeSession(FakeResponse(body={'success': True}))
        APIClient(API_URL, access_token='tok-1', session=session).submit(payload)
        assert session.calls[0][1]['headers']['Authorization'] == 'Bearer tok-1'

    def test_accepts_plain_dict(self):
        """Test a dict payload is posted verbatim."""
        session = FakeSession(FakeResponse(body={'success': True}))
        APIClient(API_URL, session=session).submit({'method': 'process_idv'})
        assert session.calls[0][1]['json'] == {'method': 'process_idv'}

    def test_http_error_uses_status_text(self, payload):
        """Test non-2xx fails with the reason phrase."""
        session = FakeSession(FakeResponse(status_code=502, reason='Bad Gateway'))
        with pytest.raises(APIError) as exc_info:
            APIClient(API_URL, session=session).submit(payload)
        assert 'Bad Gateway' in exc_info.value.message
        assert exc_info.value.status_code == 502
        assert exc_info.value.error_code == 'API_ERROR'

    def test_falsy_success_uses_server_error(self, payload):
        """Test a 200 without success flag fails with the server's error string."""
        session = FakeSession(FakeResponse(body={'success': False, 'error': 'Face mismatch'}))
        with pytest.raises(APIError) as exc_info:
            APIClient(API_URL, session=session).submit(payload)
        assert exc_info.value.message == 'Face mismatch'

    def test_missing_success_flag_fails(self, payload):
        """Test an empty success body is a failure with the default message."""
        session = FakeSession(FakeResponse(body={}))
        with pytest.raises(APIError) as exc_info:
            APIClient(API_URL, session=session).submit(payload)
        assert exc_info.value.message == 'Verification failed'

    def test_invalid_json_fails(self, payload):
        """Test an undecodable body is an API error."""
        session = FakeSession(FakeResponse(invalid_json=True))
        with pytest.raises(APIError):
            APIClient(API_URL, session=session).submit(payload)

    def test_network_error(self, payload):
        """Test no response fails with the transport's message."""
        session = FakeSession(exc=requests.ConnectionError('Connection refused'))
        with pytest.raises(NetworkError) as exc_info:
            APIClient(API_URL, session=session).submit(payload)
        assert exc_info.value.message == 'Connection refused'
        assert exc_info.value.error_code == 'NETWORK_ERROR'
        assert isinstance(exc_info.value, TransportError)

    def test_single_attempt_on_failure(self, payload):
        """Test failures are never retried."""
        session = FakeSession(exc=requests.Timeout('timed out'))
        with pytest.raises(NetworkError):
            APIClient(API_URL, session=session, timeout=5).submit(payload)
        assert len(session.calls) == 1
        assert session.calls[0][1]['timeout'] == 5
