"""
Face and iris landmark pipeline using MediaPipe Face Landmarker.

The face crop is mirrored horizontally before inference. All outputs stay in
the mirrored crop's coordinate space; the reconciler undoes the mirror.
"""

from abc import abstractmethod
from dataclasses import dataclass, field

import cv2
import numpy as np

from .config import EYE_REGION_SCALE
from .landmarks import (
    EYE_VERTEX_COUNT,
    FACE_VERTEX_COUNT,
    LEFT_EYE_CONTOUR,
    LEFT_EYE_IRIS,
    RIGHT_EYE_CONTOUR,
    RIGHT_EYE_IRIS,
    LandmarkKind,
    LandmarkSet,
)
from .logger import get_logger
from .model_adapter import ModelAdapter
from .model_manager import ResourceLoadError, ensure_task_model
from .region import Region

logger = get_logger("FacePipeline")

# The face landmarker with iris refinement returns 468 mesh + 10 iris points
REFINED_FACE_VERTEX_COUNT = 478


@dataclass(frozen=True)
class FaceResult:
    """
    Face pipeline output, in mirrored face-crop space.

    Attributes:
        face: 468 mesh landmarks in mirrored crop coordinates.
        left_eye: Subject's left eye, 5 iris + 16 contour, eye-local coordinates.
        right_eye: Subject's right eye, eye-local coordinates.
        left_eye_matrix: 3x3 eye-local to mirrored face-crop affine.
        right_eye_matrix: 3x3 eye-local to mirrored face-crop affine.
        score: 1.0 when a face was found, 0.0 otherwise.
    """
    face: LandmarkSet
    left_eye: LandmarkSet
    right_eye: LandmarkSet
    left_eye_matrix: np.ndarray = field(compare=False)
    right_eye_matrix: np.ndarray = field(compare=False)
    score: float

    @classmethod
    def empty(cls) -> "FaceResult":
        return cls(
            LandmarkSet.empty(LandmarkKind.FACE),
            LandmarkSet.empty(LandmarkKind.LEFT_EYE),
            LandmarkSet.empty(LandmarkKind.RIGHT_EYE),
            np.eye(3),
            np.eye(3),
            0.0
        )


def eye_region(points: np.ndarray, contour_count: int = 16, scale: float = EYE_REGION_SCALE) -> Region:
    """
    Square region around an eye contour.

    Args:
        points: (21, >=2) eye points, iris first then contour.
        contour_count: Number of trailing contour points.
        scale: Region side relative to the contour's larger extent.

    Returns:
        Region aligned with the eye corners (first and ninth contour points).
    """
    contour = np.asarray(points, dtype=np.float64)[-contour_count:, :2]
    lo = contour.min(axis=0)
    hi = contour.max(axis=0)
    center = (lo + hi) / 2.0
    size = float(max(hi - lo)) * scale

    a, b = contour[0], contour[8]
    if a[0] > b[0]:
        a, b = b, a
    rotation = float(np.arctan2(b[1] - a[1], b[0] - a[0]))

    return Region(float(center[0]), float(center[1]), max(size, 1e-6), max(size, 1e-6), rotation)


def split_eyes(mesh: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Pick the subject's left and right eye points out of a mirrored mesh.

    In a mirrored image the model's right-eye indices land on the subject's
    left eye, so the index sets swap.

    Args:
        mesh: (478, 4) refined mesh from a mirrored crop.

    Returns:
        (left_eye, right_eye) as (21, 4) arrays, iris first.
    """
    left = mesh[list(RIGHT_EYE_IRIS) + list(RIGHT_EYE_CONTOUR)]
    right = mesh[list(LEFT_EYE_IRIS) + list(LEFT_EYE_CONTOUR)]
    return left, right


def build_face_result(mesh: np.ndarray) -> FaceResult:
    """
    Assemble a FaceResult from a refined mesh in mirrored crop space.

    Args:
        mesh: (478, 4) landmarks (x, y, z, w).

    Returns:
        FaceResult with eye landmarks expressed in their own crop regions.
    """
    left_points, right_points = split_eyes(mesh)

    eyes = []
    for points in (left_points, right_points):
        region = eye_region(points)
        local = np.empty((EYE_VERTEX_COUNT, 4))
        local[:, :2] = region.to_local(points[:, :2])
        local[:, 2] = points[:, 2] / region.width
        local[:, 3] = 1.0
        eyes.append((local, region.matrix()))

    face = np.asarray(mesh[:FACE_VERTEX_COUNT], dtype=np.float64).copy()
    face[:, 3] = 1.0

    return FaceResult(
        face=LandmarkSet(LandmarkKind.FACE, face, 1.0),
        left_eye=LandmarkSet(LandmarkKind.LEFT_EYE, eyes[0][0], 1.0),
        right_eye=LandmarkSet(LandmarkKind.RIGHT_EYE, eyes[1][0], 1.0),
        left_eye_matrix=eyes[0][1],
        right_eye_matrix=eyes[1][1],
        score=1.0
    )


class FacePipeline(ModelAdapter):
    """Face mesh and iris landmark detector on a face crop."""

    @abstractmethod
    def detect(self, crop: np.ndarray) -> FaceResult:
        """
        Detect face and eye landmarks in a face crop.

        Args:
            crop: RGB face crop sampled through the face Region (not mirrored).

        Returns:
            FaceResult in mirrored crop space; score 0 when no face was found.
        """


class MediaPipeFacePipeline(FacePipeline):
    """FacePipeline backed by the MediaPipe Tasks FaceLandmarker (IMAGE mode)."""

    def __init__(self, detection_threshold: float = 0.5, model_path: str | None = None):
        """
        Initialize face pipeline.

        Args:
            detection_threshold: Minimum face detection and presence confidence.
            model_path: Optional local face_landmarker.task file.
        """
        super().__init__()
        self.detection_threshold = detection_threshold
        self.model_path = model_path
        self._landmarker = None

    @property
    def name(self) -> str:
        return "FacePipeline"

    def _load(self) -> None:
        model_path = ensure_task_model("face_landmarker", self.model_path)

        try:
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision as mp_vision
        except ImportError as e:
            raise ResourceLoadError(
                "MediaPipe is required. Install with: pip install mediapipe"
            ) from e

        options = mp_vision.FaceLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=mp_vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=self.detection_threshold,
            min_face_presence_confidence=self.detection_threshold,
        )

        try:
            self._landmarker = mp_vision.FaceLandmarker.create_from_options(options)
        except Exception as e:
            raise ResourceLoadError(f"Failed to create FaceLandmarker: {e}") from e

    def _release(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None

    def detect(self, crop: np.ndarray) -> FaceResult:
        if not self._is_initialized:
            self.initialize()

        import mediapipe as mp

        mirrored = np.ascontiguousarray(cv2.flip(crop, 1))
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=mirrored)
        result = self._landmarker.detect(mp_image)

        if not result.face_landmarks:
            return FaceResult.empty()

        mesh = np.array(
            [[lm.x, lm.y, lm.z, 1.0] for lm in result.face_landmarks[0]],
            dtype=np.float64
        )
        if mesh.shape[0] < REFINED_FACE_VERTEX_COUNT:
            logger.warning(f"Face landmarker returned {mesh.shape[0]} points without iris refinement")
            return FaceResult.empty()

        return build_face_result(mesh)
