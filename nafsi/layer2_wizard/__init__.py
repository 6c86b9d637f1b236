"""
Layer 2 — Capture Wizard
Linear capture flow with preview/retake, submission and error recovery.
"""
from .steps import Step, Phase, StepSpec, STEP_ORDER, STEP_SPECS
from .wizard import (
    CaptureWizard,
    CaptureSet,
    ErrorInfo,
    VerificationResult,
    WizardView,
    CAMERA_ERROR,
    API_ERROR,
)

__all__ = [
    'Step',
    'Phase',
    'StepSpec',
    'STEP_ORDER',
    'STEP_SPECS',
    'CaptureWizard',
    'CaptureSet',
    'ErrorInfo',
    'VerificationResult',
    'WizardView',
    'CAMERA_ERROR',
    'API_ERROR',
]
