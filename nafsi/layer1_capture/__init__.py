"""
Layer 1 — Capture
Camera capability, OpenCV device implementation and frame encoding.
"""
from .camera import (
    CameraDevice,
    StreamHandle,
    StreamConstraints,
    OpenCVCamera,
    OpenCVStream,
    create_default_camera,
    FACING_USER,
    FACING_ENVIRONMENT,
)
from .frames import encode_frame, decode_data_uri, data_uri_to_frame, get_base64_size, format_bytes

__all__ = [
    'CameraDevice',
    'StreamHandle',
    'StreamConstraints',
    'OpenCVCamera',
    'OpenCVStream',
    'create_default_camera',
    'FACING_USER',
    'FACING_ENVIRONMENT',
    'encode_frame',
    'decode_data_uri',
    'data_uri_to_frame',
    'get_base64_size',
    'format_bytes',
]
