"""
Layer 1 — Frame encoding
Responsibility: Resample captured frames to fixed rasters and encode them as data URIs
Output: 'data:image/jpeg;base64,...' strings
"""
import base64
import logging
import re

import cv2
import numpy as np

from ..error_handlers import FrameCaptureError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 0.85

_DATA_URI_RE = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$', re.DOTALL)


def encode_frame(frame: np.ndarray, size, quality: float = JPEG_QUALITY) -> str:
    """
    Resample a frame to a fixed raster and encode it as a JPEG data URI

    Args:
        frame: BGR frame as read from the camera
        size: (width, height) of the output raster
        quality: JPEG quality (0-1)

    Returns:
        str: data URI

    Raises:
        FrameCaptureError: If the frame is empty or encoding fails
    """
    if frame is None or frame.size == 0:
        raise FrameCaptureError(reason="empty frame")

    width, height = size
    resized = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    ok, buffer = cv2.imencode('.jpg', resized, [int(cv2.IMWRITE_JPEG_QUALITY), int(round(quality * 100))])
    if not ok:
        raise FrameCaptureError(reason="JPEG encoding failed")

    encoded = base64.b64encode(buffer.tobytes()).decode('ascii')
    return f"data:image/jpeg;base64,{encoded}"


def decode_data_uri(data_uri: str):
    """
    Split a data URI into its mime type and raw bytes

    Returns:
        tuple: (mime, bytes)

    Raises:
        ValueError: If the string is not a data URI
    """
    match = _DATA_URI_RE.match(data_uri or '')
    if not match:
        raise ValueError("Not a data URI")

    mime = match.group('mime') or 'text/plain'
    data = match.group('data')
    if match.group('b64'):
        return mime, base64.b64decode(data)
    return mime, data.encode('utf-8')


def data_uri_to_frame(data_uri: str) -> np.ndarray:
    """Decode an image data URI back into a BGR frame."""
    _, payload = decode_data_uri(data_uri)
    frame = cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError("Data URI does not contain a decodable image")
    return frame


def get_base64_size(base64_string: str) -> int:
    """Decoded size in bytes of a base64 string (without the data URI prefix)."""
    padding = base64_string.count('=')
    return int(len(base64_string) * 0.75) - padding


def format_bytes(num_bytes: int) -> str:
    """Format a byte count for humans, e.g. 1536 -> '1.5 KB'."""
    if num_bytes == 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB']
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {sizes[i]}"
