"""
Palm detector using the MediaPipe palm detection model on ONNX Runtime.

Decodes SSD anchor outputs into palm boxes with seven keypoints, merges
overlapping boxes with weighted non-max suppression and turns each palm into
a rotated hand crop Region in working frame coordinates.
"""

import math
from abc import abstractmethod

import cv2
import numpy as np

from .config import (
    PALM_INPUT_SIZE,
    PALM_IOU_THRESHOLD,
    PALM_MAX_CANDIDATES,
    PALM_REGION_SCALE,
    PALM_REGION_SHIFT,
    PALM_SCORE_THRESHOLD,
)
from .letterbox import WorkingFrame
from .logger import get_logger
from .model_adapter import ModelAdapter, image_to_tensor, load_onnx_session, sigmoid
from .region import DetectionCandidate, Region, rotation_from_direction

logger = get_logger("PalmDetector")

PALM_KEYPOINT_COUNT = 7
PALM_WRIST_KEYPOINT = 0
PALM_MIDDLE_MCP_KEYPOINT = 2

PALM_ANCHOR_OPTIONS = {
    "num_layers": 4,
    "min_scale": 0.1484375,
    "max_scale": 0.75,
    "input_size": PALM_INPUT_SIZE,
    "anchor_offset_x": 0.5,
    "anchor_offset_y": 0.5,
    "strides": [8, 16, 16, 16],
    "aspect_ratios": [1.0],
    "interpolated_scale_aspect_ratio": 1.0,
}


def _calc_scale(min_scale: float, max_scale: float, stride_index: int, num_strides: int) -> float:
    return min_scale + (max_scale - min_scale) * stride_index / (num_strides - 1.0)


def generate_palm_anchors(options: dict = PALM_ANCHOR_OPTIONS) -> np.ndarray:
    """
    Generate SSD anchor centres for the palm detection model.

    Anchors use a fixed unit size, so only their centres matter.

    Returns:
        (2016, 2) float32 array of anchor centres in [0, 1].
    """
    strides = options["strides"]
    num_strides = len(strides)
    anchors = []
    layer_id = 0
    while layer_id < num_strides:
        anchors_per_cell = 0
        last_same = layer_id
        while last_same < num_strides and strides[last_same] == strides[layer_id]:
            anchors_per_cell += len(options["aspect_ratios"])
            if options["interpolated_scale_aspect_ratio"] > 0.0:
                anchors_per_cell += 1
            last_same += 1

        stride = strides[layer_id]
        fm_size = int(math.ceil(options["input_size"] / stride))
        for y in range(fm_size):
            for x in range(fm_size):
                x_center = (x + options["anchor_offset_x"]) / fm_size
                y_center = (y + options["anchor_offset_y"]) / fm_size
                anchors.extend([[x_center, y_center]] * anchors_per_cell)
        layer_id = last_same

    return np.array(anchors, dtype=np.float32)


def decode_palms(
    raw_boxes: np.ndarray,
    raw_scores: np.ndarray,
    anchors: np.ndarray,
    score_threshold: float,
    input_size: int = PALM_INPUT_SIZE
) -> tuple[np.ndarray, np.ndarray]:
    """
    Decode raw palm model outputs.

    Args:
        raw_boxes: (N, 18) box centre offset, box size and 7 keypoint offsets in pixels.
        raw_scores: (N,) or (N, 1) logits.
        anchors: (N, 2) anchor centres.
        score_threshold: Minimum sigmoid score to keep.
        input_size: Model input side in pixels.

    Returns:
        (boxes, scores) where boxes is (K, 9, 2): centre, size, 7 keypoints,
        all normalised to the model input.
    """
    scores = sigmoid(np.asarray(raw_scores, dtype=np.float32).reshape(-1))
    boxes = np.asarray(raw_boxes, dtype=np.float32).reshape(-1, 2 + PALM_KEYPOINT_COUNT, 2) / input_size

    boxes[:, 0] += anchors
    boxes[:, 2:] += anchors[:, None, :]

    mask = scores > score_threshold
    return boxes[mask], scores[mask]


def _box_iou(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """IoU of one (9, 2) centre/size box against (K, 9, 2) boxes."""
    lo = box[0] - box[1] / 2
    hi = box[0] + box[1] / 2
    o_lo = others[:, 0] - others[:, 1] / 2
    o_hi = others[:, 0] + others[:, 1] / 2
    inter = np.prod(np.maximum(0.0, np.minimum(hi, o_hi) - np.maximum(lo, o_lo)), axis=1)
    union = np.prod(box[1]) + np.prod(others[:, 1], axis=1) - inter
    return inter / (union + 1e-8)


def weighted_nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float,
    max_results: int
) -> list[tuple[np.ndarray, float]]:
    """
    Merge overlapping palm boxes.

    Each kept detection is the score-weighted mean of every box overlapping
    the best remaining box by more than iou_threshold, and keeps the best
    box's score.

    Returns:
        Up to max_results (box, score) pairs, highest score first.
    """
    order = np.argsort(-scores)
    boxes = boxes[order]
    scores = scores[order]
    results = []

    while boxes.shape[0] > 0 and len(results) < max_results:
        overlap = _box_iou(boxes[0], boxes)
        group = overlap > iou_threshold
        group[0] = True
        weights = scores[group]
        merged = np.tensordot(weights, boxes[group], axes=1) / weights.sum()
        results.append((merged, float(scores[0])))

        boxes = boxes[~group]
        scores = scores[~group]

    return results


def palm_to_region(
    box: np.ndarray,
    scale: float = PALM_REGION_SCALE,
    shift: float = PALM_REGION_SHIFT
) -> Region:
    """
    Hand crop Region for a decoded palm.

    The crop is rotated so its "up" axis runs from the wrist to the middle
    finger knuckle, shifted towards the fingers and enlarged to cover the
    whole hand.

    Args:
        box: (9, 2) centre, size, keypoints in working frame coordinates.
        scale: Crop side relative to the palm box.
        shift: Centre shift along the hand axis, in box sizes.

    Returns:
        Square Region in working frame coordinates.
    """
    center = box[0].astype(np.float64)
    box_size = float(max(box[1]))
    wrist = box[2 + PALM_WRIST_KEYPOINT]
    knuckle = box[2 + PALM_MIDDLE_MCP_KEYPOINT]
    rotation = rotation_from_direction(float(knuckle[0] - wrist[0]), float(knuckle[1] - wrist[1]))

    cx = center[0] + shift * box_size * math.sin(rotation)
    cy = center[1] - shift * box_size * math.cos(rotation)
    size = scale * box_size

    return Region(float(cx), float(cy), size, size, rotation)


class PalmDetector(ModelAdapter):
    """Whole-frame palm detector."""

    @abstractmethod
    def detect(self, working: WorkingFrame) -> list[DetectionCandidate]:
        """
        Detect up to two palms.

        Args:
            working: Letterboxed working frame.

        Returns:
            Zero to two candidates, highest score first, with Regions in
            working frame coordinates.
        """


class OnnxPalmDetector(PalmDetector):
    """PalmDetector backed by an ONNX export of the MediaPipe palm model."""

    def __init__(
        self,
        model_path: str | None,
        score_threshold: float = PALM_SCORE_THRESHOLD,
        iou_threshold: float = PALM_IOU_THRESHOLD,
        max_candidates: int = PALM_MAX_CANDIDATES
    ):
        """
        Initialize palm detector.

        Args:
            model_path: Path to the palm detection .onnx file.
            score_threshold: Minimum palm score.
            iou_threshold: Overlap above which palms are merged.
            max_candidates: Maximum palms returned per frame.
        """
        super().__init__()
        self.model_path = model_path
        self.score_threshold = score_threshold
        self.iou_threshold = iou_threshold
        self.max_candidates = max_candidates

        self._session = None
        self._input_name = ""
        self._input_shape: list = []
        self._anchors = generate_palm_anchors()

    @property
    def name(self) -> str:
        return "PalmDetector"

    def _load(self) -> None:
        self._session = load_onnx_session(self.model_path, "palm detection")
        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        self._input_shape = list(model_input.shape)

    def _release(self) -> None:
        self._session = None

    def detect(self, working: WorkingFrame) -> list[DetectionCandidate]:
        if not self._is_initialized:
            self.initialize()

        image = cv2.resize(working.image, (PALM_INPUT_SIZE, PALM_INPUT_SIZE), interpolation=cv2.INTER_AREA)
        tensor = image_to_tensor(image, self._input_shape)
        outputs = self._session.run(None, {self._input_name: tensor})

        # Identify outputs by size: boxes [1, 2016, 18], scores [1, 2016, 1]
        raw_boxes = max(outputs, key=lambda o: o.size)
        raw_scores = min(outputs, key=lambda o: o.size)

        boxes, scores = decode_palms(raw_boxes[0], raw_scores[0], self._anchors, self.score_threshold)
        palms = weighted_nms(boxes, scores, self.iou_threshold, self.max_candidates)

        candidates = [
            DetectionCandidate(palm_to_region(box), score, keypoints=box[2:].copy())
            for box, score in palms
        ]
        if candidates:
            logger.debug(f"Palms: {[round(c.score, 2) for c in candidates]}")
        return candidates
