"""
Layer 2 — Wizard steps
Step order, sub-phases and the per-step device/raster policy.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from ..layer1_capture import StreamConstraints, FACING_USER, FACING_ENVIRONMENT


class Step(Enum):
    """Where the wizard is in the flow"""
    ID_FRONT = "idFront"
    ID_BACK = "idBack"
    SELFIE = "selfie"
    SUBMITTING = "submitting"
    CLOSED = "closed"


class Phase(Enum):
    """Sub-phase within a step; gates which actions are valid"""
    IDLE = "idle"              # Constructed, not started
    STARTING = "starting"      # Camera acquisition pending
    LIVE = "live"              # Streaming, awaiting capture
    PREVIEW = "preview"        # Frame captured, awaiting retake or continue
    PROCESSING = "processing"  # Submission in flight
    ERROR = "error"            # Error overlay, awaiting retry or close


# idFront -> idBack -> selfie -> submit
STEP_ORDER = (Step.ID_FRONT, Step.ID_BACK, Step.SELFIE, Step.SUBMITTING)


@dataclass(frozen=True)
class StepSpec:
    """Copy and camera policy for one capture step"""
    title: str
    instructions: str
    camera_class: str
    constraints: StreamConstraints
    capture_size: Tuple[int, int]  # (width, height) of the stored raster


ID_CARD_CONSTRAINTS = StreamConstraints(width=1280, height=720, facing=FACING_ENVIRONMENT)
SELFIE_CONSTRAINTS = StreamConstraints(width=640, height=640, facing=FACING_USER)

ID_CARD_SIZE = (590, 372)
SELFIE_SIZE = (640, 640)

STEP_SPECS = {
    Step.ID_FRONT: StepSpec(
        title="Capture ID Front",
        instructions="Place your ID card on a flat surface. Ensure all four corners are visible "
                     "and the text is clear and readable.",
        camera_class="id-card",
        constraints=ID_CARD_CONSTRAINTS,
        capture_size=ID_CARD_SIZE,
    ),
    Step.ID_BACK: StepSpec(
        title="Capture ID Back",
        instructions="Flip your ID card and capture the back side. Make sure all details are "
                     "visible and in focus.",
        camera_class="id-card",
        constraints=ID_CARD_CONSTRAINTS,
        capture_size=ID_CARD_SIZE,
    ),
    Step.SELFIE: StepSpec(
        title="Take a Selfie",
        instructions="Position your face within the guide. Ensure good lighting and remove "
                     "glasses if possible.",
        camera_class="selfie",
        constraints=SELFIE_CONSTRAINTS,
        capture_size=SELFIE_SIZE,
    ),
}


def next_step(step: Step) -> Step:
    """Step following a capture step in the fixed order."""
    return STEP_ORDER[STEP_ORDER.index(step) + 1]
