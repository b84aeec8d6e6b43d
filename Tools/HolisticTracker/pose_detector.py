"""
Pose detector using MediaPipe Pose Landmarker.

Runs on the letterboxed working frame and returns 33 body landmarks already
mapped back to frame-relative coordinates, plus 33 world landmarks.
"""

from abc import abstractmethod
from dataclasses import dataclass

import numpy as np

from .config import MODEL_VARIANTS
from .landmarks import LandmarkKind, LandmarkSet, POSE_VERTEX_COUNT
from .letterbox import WorkingFrame
from .logger import get_logger
from .model_adapter import ModelAdapter
from .model_manager import ResourceLoadError, ensure_task_model

logger = get_logger("PoseDetector")


@dataclass(frozen=True)
class PoseResult:
    """
    Pose detection output.

    Attributes:
        landmarks: Frame-relative pose landmarks, w = visibility.
        world_landmarks: Metric landmarks centred on the hips.
        score: Aggregate pose confidence (0 when no body was found).
    """
    landmarks: LandmarkSet
    world_landmarks: LandmarkSet
    score: float

    @classmethod
    def empty(cls) -> "PoseResult":
        return cls(
            LandmarkSet.empty(LandmarkKind.POSE),
            LandmarkSet.empty(LandmarkKind.POSE_WORLD),
            0.0
        )


class PoseDetector(ModelAdapter):
    """Whole-frame body pose detector."""

    @abstractmethod
    def detect(
        self,
        working: WorkingFrame,
        model_variant: str,
        detection_threshold: float,
        iou_threshold: float
    ) -> PoseResult:
        """
        Detect one body in the working frame.

        Args:
            working: Letterboxed working frame.
            model_variant: lite, full or heavy.
            detection_threshold: Minimum detection confidence.
            iou_threshold: Non-max-suppression overlap threshold.

        Returns:
            PoseResult with frame-relative landmarks. No body is a
            zero-score result, not an error.
        """


class MediaPipePoseDetector(PoseDetector):
    """
    PoseDetector backed by the MediaPipe Tasks PoseLandmarker (IMAGE mode).

    The landmarker is recreated when a frame asks for a different model
    variant or detection threshold than the loaded one.
    """

    def __init__(
        self,
        model_variant: str = "full",
        detection_threshold: float = 0.5,
        model_path: str | None = None
    ):
        """
        Initialize pose detector.

        Args:
            model_variant: Initial model variant (lite, full, heavy).
            detection_threshold: Initial minimum detection confidence.
            model_path: Optional local .task file, overrides the variant download.
        """
        super().__init__()
        self.model_variant = model_variant
        self.detection_threshold = detection_threshold
        self.model_path = model_path

        self._landmarker = None
        self._loaded_config: tuple[str, float] | None = None

    @property
    def name(self) -> str:
        return "PoseDetector"

    def _load(self) -> None:
        self._create_landmarker(self.model_variant, self.detection_threshold)

    def _create_landmarker(self, variant: str, threshold: float) -> None:
        if variant not in MODEL_VARIANTS:
            raise ResourceLoadError(
                f"Unknown pose model variant '{variant}' (expected one of {', '.join(MODEL_VARIANTS)})"
            )

        model_path = ensure_task_model(f"pose_landmarker_{variant}", self.model_path)

        try:
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision as mp_vision
        except ImportError as e:
            raise ResourceLoadError(
                "MediaPipe is required. Install with: pip install mediapipe"
            ) from e

        options = mp_vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=mp_vision.RunningMode.IMAGE,
            num_poses=1,
            min_pose_detection_confidence=threshold,
            min_pose_presence_confidence=threshold,
            min_tracking_confidence=threshold,
        )

        try:
            landmarker = mp_vision.PoseLandmarker.create_from_options(options)
        except Exception as e:
            raise ResourceLoadError(f"Failed to create PoseLandmarker: {e}") from e

        if self._landmarker is not None:
            self._landmarker.close()
        self._landmarker = landmarker
        self._loaded_config = (variant, threshold)
        logger.info(f"PoseLandmarker ready (variant={variant}, threshold={threshold})")

    def _release(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        self._loaded_config = None

    def detect(
        self,
        working: WorkingFrame,
        model_variant: str,
        detection_threshold: float,
        iou_threshold: float
    ) -> PoseResult:
        # MediaPipe does not expose the detector NMS overlap, so iou_threshold is unused here
        if not self._is_initialized:
            self.initialize()

        if self._loaded_config != (model_variant, detection_threshold):
            self._create_landmarker(model_variant, detection_threshold)

        import mediapipe as mp

        image = np.ascontiguousarray(working.image)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=image)
        result = self._landmarker.detect(mp_image)

        if not result.pose_landmarks:
            return PoseResult.empty()

        raw = np.array(
            [[lm.x, lm.y, lm.z, lm.visibility or 0.0, lm.presence or 0.0]
             for lm in result.pose_landmarks[0]],
            dtype=np.float64
        )
        if raw.shape[0] != POSE_VERTEX_COUNT:
            logger.warning(f"Unexpected pose landmark count: {raw.shape[0]}")
            return PoseResult.empty()

        score = float(np.mean(raw[:, 4]))

        points = np.empty((POSE_VERTEX_COUNT, 4))
        points[:, :2] = working.letterbox.to_frame(raw[:, :2])
        points[:, 2] = raw[:, 2] * working.letterbox.scale_x
        points[:, 3] = raw[:, 3]

        world = np.zeros((POSE_VERTEX_COUNT, 4))
        if result.pose_world_landmarks:
            world[:, :3] = [[lm.x, lm.y, lm.z] for lm in result.pose_world_landmarks[0]]
            world[:, 3] = raw[:, 3]

        return PoseResult(
            LandmarkSet(LandmarkKind.POSE, points, score),
            LandmarkSet(LandmarkKind.POSE_WORLD, world, score),
            score
        )
