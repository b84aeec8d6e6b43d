"""
Coordinate reconciler.

Maps every detector's output from its own crop space back to frame-relative
normalised coordinates.

Face and eye crops are mirrored horizontally before inference, always.
Hand crops are sampled vertically flipped only on the palm path, so only
palm-derived hand landmarks are flipped back.
"""

import numpy as np

from .landmarks import LandmarkKind, LandmarkSet
from .letterbox import Letterbox
from .region import Region

# Undo the face crop's horizontal mirror: u -> 1 - u
FACE_UNMIRROR = np.array([
    [-1.0, 0.0, 1.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0],
])

# Undo the palm crop's vertical flip: v -> 1 - v
HAND_UNFLIP = np.array([
    [1.0, 0.0, 0.0],
    [0.0, -1.0, 1.0],
    [0.0, 0.0, 1.0],
])


def apply_affine(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 3x3 affine to (N, 2) points."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return pts @ matrix[:2, :2].T + matrix[:2, 2]


class CoordinateReconciler:
    """
    Crop-space to frame-space mapping for one frame.

    z values are scaled by the horizontal scale of the same chain so depth
    stays in units of frame width.
    """

    def __init__(self, letterbox: Letterbox):
        self.letterbox = letterbox

    def pose(self, landmarks: LandmarkSet) -> LandmarkSet:
        """Pose landmarks are frame-relative already."""
        return landmarks

    def face_matrix(self, face_region: Region) -> np.ndarray:
        """Mirrored face-crop to frame affine."""
        return self.letterbox.matrix() @ face_region.matrix() @ FACE_UNMIRROR

    def eye_crop_matrix(self, eye_matrix: np.ndarray, face_region: Region) -> np.ndarray:
        """
        Eye-local to frame affine.

        Args:
            eye_matrix: Eye-local to mirrored face-crop affine.
            face_region: Face region in working frame coordinates.

        Returns:
            3x3 affine for renderers.
        """
        return self.face_matrix(face_region) @ eye_matrix

    def face(self, landmarks: LandmarkSet, face_region: Region) -> LandmarkSet:
        """Map mirrored face-crop landmarks to the frame."""
        return self._map(landmarks, self.face_matrix(face_region), landmarks.kind)

    def eye(self, landmarks: LandmarkSet, eye_matrix: np.ndarray, face_region: Region) -> LandmarkSet:
        """Map eye-local landmarks to the frame."""
        return self._map(landmarks, self.eye_crop_matrix(eye_matrix, face_region), landmarks.kind)

    def hand(
        self,
        landmarks: np.ndarray,
        region: Region,
        flipped: bool,
        kind: LandmarkKind,
        score: float
    ) -> LandmarkSet:
        """
        Map crop-local hand landmarks to the frame.

        Args:
            landmarks: (21, 3) crop-local landmarks.
            region: Hand crop region in working frame coordinates.
            flipped: True when the crop was sampled vertically flipped (palm path).
            kind: LEFT_HAND or RIGHT_HAND.
            score: Published hand score.

        Returns:
            Frame-relative LandmarkSet with w = 1.
        """
        matrix = self.letterbox.matrix() @ region.matrix()
        if flipped:
            matrix = matrix @ HAND_UNFLIP

        raw = np.asarray(landmarks, dtype=np.float64)
        points = np.empty((raw.shape[0], 4))
        points[:, :2] = apply_affine(matrix, raw[:, :2])
        points[:, 2] = raw[:, 2] * np.hypot(matrix[0, 0], matrix[1, 0])
        points[:, 3] = 1.0
        return LandmarkSet(kind, points, score)

    def _map(self, landmarks: LandmarkSet, matrix: np.ndarray, kind: LandmarkKind) -> LandmarkSet:
        points = landmarks.points.astype(np.float64)
        out = points.copy()
        out[:, :2] = apply_affine(matrix, points[:, :2])
        out[:, 2] = points[:, 2] * np.hypot(matrix[0, 0], matrix[1, 0])
        return LandmarkSet(kind, out, landmarks.score)
