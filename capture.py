"""Camera capture gate.

The browser streams the camera and takes the snapshot; this side decides
when a snapshot is allowed. Alignment progress is simulated: every tick
adds a random step until it reaches 100, and only then can the user set
the point and take the frame.
"""

import logging
import random
from enum import Enum

from image_data import encode_frame, upload_to_data_uri

logger = logging.getLogger(__name__)

MAX_PROGRESS = 100
MAX_STEP = 15
TICK_INTERVAL_MS = 500

CAMERA_UNAVAILABLE = "Camera unavailable. Check permissions."


class CaptureState(str, Enum):
    IDLE = "idle"
    ALIGNING = "aligning"
    READY = "ready"
    CAPTURED = "captured"
    ERROR = "error"


class Facing(str, Enum):
    USER = "user"
    ENVIRONMENT = "environment"


class CaptureError(RuntimeError):
    pass


class CaptureFlow:
    def __init__(self, rng=None):
        self.rng = rng or random.Random()
        self.state = CaptureState.IDLE
        self.progress = 0
        self.facing = Facing.ENVIRONMENT
        self.error = None
        self.image = None

    def start(self):
        self.state = CaptureState.ALIGNING
        self.progress = 0
        self.error = None
        self.image = None

    def tick(self):
        """Advance the simulated alignment by one interval."""
        if self.state is CaptureState.ALIGNING and self.progress < MAX_PROGRESS:
            self.progress = min(MAX_PROGRESS, self.progress + self.rng.randrange(MAX_STEP))
        return self.progress

    @property
    def aligned(self):
        return self.progress >= MAX_PROGRESS

    def confirm(self):
        if self.state is not CaptureState.ALIGNING:
            raise CaptureError(f"Cannot set point while {self.state.value}")
        if not self.aligned:
            raise CaptureError(f"Alignment at {self.progress}%, wait for 100%")
        self.state = CaptureState.READY

    def realign(self):
        if self.state is not CaptureState.READY:
            raise CaptureError(f"Cannot realign while {self.state.value}")
        self.state = CaptureState.ALIGNING
        self.progress = 0

    def toggle_facing(self):
        if self.state is CaptureState.CAPTURED:
            raise CaptureError("Camera direction is fixed once a frame is captured")
        self.facing = Facing.USER if self.facing is Facing.ENVIRONMENT else Facing.ENVIRONMENT
        return self.facing

    def fail(self, message=None):
        """Camera denied or unsupported: offer the file upload instead."""
        logger.warning("Camera error: %s", message or CAMERA_UNAVAILABLE)
        self.state = CaptureState.ERROR
        self.error = message or CAMERA_UNAVAILABLE

    def capture(self, frame):
        if self.state is not CaptureState.READY:
            raise CaptureError(f"Cannot capture while {self.state.value}")
        self.image = encode_frame(frame)
        self.state = CaptureState.CAPTURED
        return self.image

    def upload(self, raw_bytes):
        """Fallback path: any state may hand over an uploaded file."""
        self.image = upload_to_data_uri(raw_bytes)
        self.state = CaptureState.CAPTURED
        self.error = None
        return self.image

    def close(self):
        self.state = CaptureState.IDLE
        self.progress = 0
        self.error = None

    def to_json(self):
        return {
            "state": self.state.value,
            "progress": self.progress,
            "facing": self.facing.value,
            "error": self.error,
            "canCapture": self.state is CaptureState.READY,
            "tickMs": TICK_INTERVAL_MS,
        }
