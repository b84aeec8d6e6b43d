"""
Configuration constants for HolisticTracker.

This module contains all tunable parameters for camera capture,
the working frame, detector thresholds, region tracking and the
hand fallback path.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Final, Optional


# Camera configuration
CAMERA_WIDTH: Final[int] = 1280
CAMERA_HEIGHT: Final[int] = 720
CAMERA_FPS: Final[int] = 30
DEFAULT_CAMERA_INDEX: Final[int] = 0

# Working frame (letterboxed square all whole-frame detectors run on)
WORKING_SIZE: Final[int] = 512

# Detector input sizes (pixels)
PALM_INPUT_SIZE: Final[int] = 192
HAND_CROP_SIZE: Final[int] = 224
FACE_CROP_SIZE: Final[int] = 256

# Pose detector
POSE_MODEL_VARIANT: Final[str] = "full"  # lite / full / heavy
POSE_DETECTION_THRESHOLD: Final[float] = 0.5
POSE_IOU_THRESHOLD: Final[float] = 0.3
# Pose score at or above which a body is considered present (face region, hand anchors)
HUMAN_EXIST_THRESHOLD: Final[float] = 0.5

# Face pipeline
FACE_DETECTION_THRESHOLD: Final[float] = 0.5
FACE_REGION_SCALE: Final[float] = 2.0  # Face crop size relative to pose face landmark extent
FACE_REGION_MIN_SIZE: Final[float] = 0.05
EYE_REGION_SCALE: Final[float] = 1.5  # Eye crop size relative to eye contour extent

# Palm detector
PALM_SCORE_THRESHOLD: Final[float] = 0.5
PALM_IOU_THRESHOLD: Final[float] = 0.3
PALM_MAX_CANDIDATES: Final[int] = 2
PALM_REGION_SCALE: Final[float] = 2.6  # Hand crop size relative to palm box
PALM_REGION_SHIFT: Final[float] = 0.5  # Crop centre shift towards the fingers (box sizes)

# Hand fallback (pose-derived hand region)
HAND_FALLBACK_THRESHOLD: Final[float] = 0.5  # Presence below this drops a palm-tracked hand
HAND_FALLBACK_SCALE: Final[float] = 1.6  # Hand crop size relative to forearm length
HAND_FALLBACK_SHIFT: Final[float] = 0.5  # Wrist sits on the lower edge of the crop
HAND_FALLBACK_MIN_SIZE: Final[float] = 0.05
HAND_FALLBACK_VISIBILITY: Final[float] = 0.3  # Below this the fallback region is best effort

# Temporal identity gate for palm candidates (working frame units)
HAND_IDENTITY_GATE: Final[float] = 0.25

# Region smoothing (One Euro Filter parameters)
REGION_CENTER_MIN_CUTOFF: Final[float] = 2.0
REGION_CENTER_BETA: Final[float] = 20.0
REGION_SIZE_MIN_CUTOFF: Final[float] = 1.0
REGION_SIZE_BETA: Final[float] = 5.0
REGION_ROTATION_MIN_CUTOFF: Final[float] = 1.5
REGION_ROTATION_BETA: Final[float] = 2.0

# Logging
LOG_FILENAME: Final[str] = "holistic_tracker.log"
LOG_MAX_BYTES: Final[int] = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT: Final[int] = 3

# Exit codes
EXIT_SUCCESS: Final[int] = 0
EXIT_PROFILE_ERROR: Final[int] = 1
EXIT_CAMERA_ERROR: Final[int] = 2
EXIT_RUNTIME_ERROR: Final[int] = 3


class InferenceMode(Enum):
    """Which stages run for a processed frame."""
    FULL = "full"
    POSE_ONLY = "pose_only"
    FACE_ONLY = "face_only"
    POSE_AND_FACE = "pose_and_face"
    POSE_AND_HAND = "pose_and_hand"

    @property
    def runs_pose(self) -> bool:
        return self in (
            InferenceMode.FULL,
            InferenceMode.POSE_ONLY,
            InferenceMode.POSE_AND_FACE,
            InferenceMode.POSE_AND_HAND,
        )

    @property
    def runs_face(self) -> bool:
        return self in (
            InferenceMode.FULL,
            InferenceMode.FACE_ONLY,
            InferenceMode.POSE_AND_FACE,
        )

    @property
    def runs_hands(self) -> bool:
        return self in (InferenceMode.FULL, InferenceMode.POSE_AND_HAND)


MODEL_VARIANTS: Final[tuple[str, ...]] = ("lite", "full", "heavy")


@dataclass
class RegionSmoothingSettings:
    """Container for hand region smoothing settings (One Euro Filter)."""

    center_min_cutoff: float = REGION_CENTER_MIN_CUTOFF  # Lower = smoother when slow
    center_beta: float = REGION_CENTER_BETA  # Higher = more responsive when fast
    size_min_cutoff: float = REGION_SIZE_MIN_CUTOFF
    size_beta: float = REGION_SIZE_BETA
    rotation_min_cutoff: float = REGION_ROTATION_MIN_CUTOFF
    rotation_beta: float = REGION_ROTATION_BETA


@dataclass
class ModelPaths:
    """
    Locations of model assets.

    MediaPipe task files left as None are downloaded into the model cache.
    The palm and hand landmark ONNX models must be supplied.
    """

    pose_landmarker: Optional[str] = None
    face_landmarker: Optional[str] = None
    palm_detection: Optional[str] = None
    hand_landmark: Optional[str] = None


@dataclass
class PipelineConfig:
    """
    Complete configuration for a HolisticPipeline.

    Attributes:
        model_variant: Pose model variant (lite, full, heavy).
        detection_threshold: Minimum pose detection confidence.
        iou_threshold: Pose detection non-max-suppression overlap.
        hand_fallback_threshold: Hand presence below which a palm-tracked
            hand switches to the pose-derived region.
        inference_mode: Default stages to run per frame.
        asynchronous: Run frames on the worker thread if True, inline otherwise.
    """

    model_variant: str = POSE_MODEL_VARIANT
    detection_threshold: float = POSE_DETECTION_THRESHOLD
    iou_threshold: float = POSE_IOU_THRESHOLD
    hand_fallback_threshold: float = HAND_FALLBACK_THRESHOLD
    inference_mode: InferenceMode = InferenceMode.FULL
    working_size: int = WORKING_SIZE
    hand_crop_size: int = HAND_CROP_SIZE
    face_crop_size: int = FACE_CROP_SIZE
    human_exist_threshold: float = HUMAN_EXIST_THRESHOLD
    face_detection_threshold: float = FACE_DETECTION_THRESHOLD
    palm_score_threshold: float = PALM_SCORE_THRESHOLD
    palm_iou_threshold: float = PALM_IOU_THRESHOLD
    hand_fallback_scale: float = HAND_FALLBACK_SCALE
    hand_fallback_shift: float = HAND_FALLBACK_SHIFT
    hand_identity_gate: float = HAND_IDENTITY_GATE
    smoothing: RegionSmoothingSettings = field(default_factory=RegionSmoothingSettings)
    models: ModelPaths = field(default_factory=ModelPaths)
    asynchronous: bool = True
