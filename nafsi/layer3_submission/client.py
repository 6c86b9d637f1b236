"""
Verification API Client
Submits the captured images to the remote verification API.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import requests

from ..error_handlers import APIError, NetworkError

logger = logging.getLogger(__name__)

METHOD_PROCESS_IDV = 'process_idv'


@dataclass(frozen=True)
class SubmissionPayload:
    """
    Body posted to the verification API.

    Field names MUST match what the API expects; images are data URIs.
    """
    client_id: str
    work_flow_id: str
    selfie_image_url: Optional[str]
    id_front_image_url: Optional[str]
    id_back_image_url: Optional[str]
    method: str = METHOD_PROCESS_IDV

    def to_json(self) -> dict:
        return asdict(self)


class APIClient:
    """
    Client for the verification API.

    One POST per submit() call, no retries.
    """

    def __init__(self, api_url: str, access_token: str = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        """
        Args:
            api_url: Endpoint receiving the verification payload
            access_token: Optional bearer token
            timeout: Request timeout in seconds; None waits indefinitely
            session: requests session to use (a new one by default)
        """
        self.api_url = api_url
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info(f"API Client initialized with URL: {self.api_url}")

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.access_token:
            headers['Authorization'] = f"Bearer {self.access_token}"
        return headers

    def submit(self, payload) -> Dict[str, Any]:
        """
        Submit a verification request.

        Args:
            payload: SubmissionPayload or plain dict

        Returns:
            dict: Decoded API response (success flag is truthy)

        Raises:
            APIError: Non-2xx status, undecodable body or falsy success flag
            NetworkError: No response received
        """
        body = payload.to_json() if isinstance(payload, SubmissionPayload) else payload

        try:
            response = self.session.post(
                self.api_url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"API Client Error: {e}")
            raise NetworkError(str(e) or type(e).__name__)

        if not response.ok:
            logger.error(f"API request failed: {response.status_code} {response.reason}")
            raise APIError(f"API request failed: {response.reason}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            logger.error("API returned a non-JSON body")
            raise APIError("Invalid response from verification API", status_code=response.status_code)

        if not isinstance(data, dict) or not data.get('success'):
            error_msg = data.get('error') if isinstance(data, dict) else None
            logger.warning(f"Verification rejected: {error_msg}")
            raise APIError(error_msg or 'Verification failed', status_code=response.status_code)

        return data
