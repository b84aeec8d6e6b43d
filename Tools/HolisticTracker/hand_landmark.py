"""
Hand landmark detector using the MediaPipe hand landmark model on ONNX Runtime.

Runs on a square hand crop and returns 21 crop-local landmarks, hand
presence and handedness.
"""

from abc import abstractmethod
from dataclasses import dataclass

import cv2
import numpy as np

from .config import HAND_CROP_SIZE
from .landmarks import HAND_VERTEX_COUNT
from .logger import get_logger
from .model_adapter import ModelAdapter, image_to_tensor, load_onnx_session

logger = get_logger("HandLandmarkDetector")


@dataclass(frozen=True, eq=False)
class HandLandmarkResult:
    """
    Hand landmark output for one crop.

    Attributes:
        landmarks: (21, 3) crop-local x, y in [0, 1] and z relative to crop width.
        world_landmarks: (21, 3) metric landmarks.
        presence: Probability that the crop contains a hand.
        handedness: Probability of a right hand, assuming mirrored input.
    """
    landmarks: np.ndarray
    world_landmarks: np.ndarray
    presence: float
    handedness: float

    @classmethod
    def empty(cls) -> "HandLandmarkResult":
        return cls(
            np.zeros((HAND_VERTEX_COUNT, 3)),
            np.zeros((HAND_VERTEX_COUNT, 3)),
            0.0,
            0.0
        )


class HandLandmarkDetector(ModelAdapter):
    """Hand landmark detector on a hand crop."""

    @abstractmethod
    def detect(self, crop: np.ndarray) -> HandLandmarkResult:
        """
        Detect hand landmarks in a square crop.

        Args:
            crop: RGB crop sampled through a hand Region.

        Returns:
            Crop-local landmarks with presence and handedness.
        """


class OnnxHandLandmarkDetector(HandLandmarkDetector):
    """
    HandLandmarkDetector backed by an ONNX export of the MediaPipe model.

    Outputs are read by position: landmarks (63), presence (1),
    handedness (1), world landmarks (63).
    """

    def __init__(self, model_path: str | None, input_size: int = HAND_CROP_SIZE):
        """
        Initialize hand landmark detector.

        Args:
            model_path: Path to the hand landmark .onnx file.
            input_size: Model input side in pixels.
        """
        super().__init__()
        self.model_path = model_path
        self.input_size = input_size

        self._session = None
        self._input_name = ""
        self._input_shape: list = []

    @property
    def name(self) -> str:
        return "HandLandmarkDetector"

    def _load(self) -> None:
        self._session = load_onnx_session(self.model_path, "hand landmark")
        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        self._input_shape = list(model_input.shape)

    def _release(self) -> None:
        self._session = None

    def detect(self, crop: np.ndarray) -> HandLandmarkResult:
        if not self._is_initialized:
            self.initialize()

        if crop.shape[0] != self.input_size or crop.shape[1] != self.input_size:
            crop = cv2.resize(crop, (self.input_size, self.input_size))

        tensor = image_to_tensor(crop, self._input_shape)
        outputs = self._session.run(None, {self._input_name: tensor})
        if len(outputs) < 4:
            logger.error(f"Hand landmark model returned {len(outputs)} outputs, expected 4")
            return HandLandmarkResult.empty()

        landmarks = np.asarray(outputs[0], dtype=np.float64).reshape(HAND_VERTEX_COUNT, 3) / self.input_size
        presence = float(np.clip(np.asarray(outputs[1]).reshape(-1)[0], 0.0, 1.0))
        handedness = float(np.clip(np.asarray(outputs[2]).reshape(-1)[0], 0.0, 1.0))
        world = np.asarray(outputs[3], dtype=np.float64).reshape(HAND_VERTEX_COUNT, 3)

        return HandLandmarkResult(landmarks, world, presence, handedness)
