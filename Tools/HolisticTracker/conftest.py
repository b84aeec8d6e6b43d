"""
Shared fixtures: scripted detector adapters and synthetic frames.
"""

from typing import Optional

import numpy as np
import pytest

from HolisticTracker.config import InferenceMode, PipelineConfig
from HolisticTracker.face_pipeline import FacePipeline, FaceResult
from HolisticTracker.hand_landmark import HandLandmarkDetector, HandLandmarkResult
from HolisticTracker.holistic_pipeline import HolisticPipeline
from HolisticTracker.landmarks import LandmarkKind, LandmarkSet, PoseIndex
from HolisticTracker.letterbox import Frame
from HolisticTracker.model_manager import ResourceLoadError
from HolisticTracker.palm_detector import PalmDetector
from HolisticTracker.pose_detector import PoseDetector, PoseResult
from HolisticTracker.region import DetectionCandidate


class _FakeAdapter:
    """Counts loads, releases and detect calls; optionally fails to load."""

    def _init_fake(self, fail_load: bool) -> None:
        self.fail_load = fail_load
        self.load_calls = 0
        self.release_calls = 0
        self.calls: list = []

    def _load(self) -> None:
        self.load_calls += 1
        if self.fail_load:
            raise ResourceLoadError(f"{self.name} model not found")

    def _release(self) -> None:
        self.release_calls += 1


class FakePoseDetector(_FakeAdapter, PoseDetector):
    def __init__(self, result: Optional[PoseResult] = None, fail_load: bool = False):
        super().__init__()
        self._init_fake(fail_load)
        self.result = result or PoseResult.empty()

    @property
    def name(self) -> str:
        return "FakePose"

    def detect(self, working, model_variant, detection_threshold, iou_threshold):
        self.calls.append((working.size, model_variant, detection_threshold, iou_threshold))
        return self.result


class FakeFacePipeline(_FakeAdapter, FacePipeline):
    def __init__(self, result: Optional[FaceResult] = None, fail_load: bool = False):
        super().__init__()
        self._init_fake(fail_load)
        self.result = result or FaceResult.empty()

    @property
    def name(self) -> str:
        return "FakeFace"

    def detect(self, crop):
        self.calls.append(crop.shape)
        return self.result


class FakePalmDetector(_FakeAdapter, PalmDetector):
    """Returns a scripted list of candidates per frame; the last script repeats."""

    def __init__(self, frames: Optional[list[list[DetectionCandidate]]] = None, fail_load: bool = False):
        super().__init__()
        self._init_fake(fail_load)
        self.frames = list(frames or [[]])

    @property
    def name(self) -> str:
        return "FakePalm"

    def detect(self, working):
        index = min(len(self.calls), len(self.frames) - 1)
        self.calls.append(working.size)
        return list(self.frames[index])


class FakeHandLandmarkDetector(_FakeAdapter, HandLandmarkDetector):
    """Pops scripted results in call order, then returns the default."""

    def __init__(
        self,
        results: Optional[list[HandLandmarkResult]] = None,
        default: Optional[HandLandmarkResult] = None,
        fail_load: bool = False
    ):
        super().__init__()
        self._init_fake(fail_load)
        self.results = list(results or [])
        self.default = default or hand_result(presence=0.7, handedness=0.5)

    @property
    def name(self) -> str:
        return "FakeHand"

    def detect(self, crop):
        self.calls.append(crop.shape)
        if self.results:
            return self.results.pop(0)
        return self.default


def hand_result(presence: float, handedness: float) -> HandLandmarkResult:
    """Hand pointing up the crop with the wrist near the bottom."""
    landmarks = np.zeros((21, 3))
    landmarks[:, 0] = 0.5
    landmarks[:, 1] = np.linspace(0.9, 0.1, 21)
    return HandLandmarkResult(landmarks, np.zeros((21, 3)), presence, handedness)


def body_pose(score: float = 0.9, visibility: float = 0.9) -> PoseResult:
    """Upright body facing the camera with the forearms pointing up."""
    points = np.zeros((33, 4))
    points[:, 3] = visibility
    points[:, 0] = 0.5
    points[:, 1] = 0.5

    for index in PoseIndex.FACE:
        points[index, :2] = (0.5, 0.25)
    points[PoseIndex.NOSE, :2] = (0.5, 0.27)
    points[PoseIndex.RIGHT_EYE, :2] = (0.47, 0.24)
    points[PoseIndex.LEFT_EYE, :2] = (0.53, 0.24)
    points[PoseIndex.RIGHT_EAR, :2] = (0.44, 0.25)
    points[PoseIndex.LEFT_EAR, :2] = (0.56, 0.25)

    # Subject's right arm appears on the image left
    points[PoseIndex.RIGHT_ELBOW, :2] = (0.3, 0.6)
    points[PoseIndex.RIGHT_WRIST, :2] = (0.3, 0.45)
    points[PoseIndex.LEFT_ELBOW, :2] = (0.7, 0.6)
    points[PoseIndex.LEFT_WRIST, :2] = (0.7, 0.45)

    world = points.copy()
    world[:, 3] = visibility
    return PoseResult(
        LandmarkSet(LandmarkKind.POSE, points, score),
        LandmarkSet(LandmarkKind.POSE_WORLD, world, score),
        score
    )


@pytest.fixture
def make_frame():
    """Frame factory: black 640x480 RGB image at a given timestamp."""
    def _make(timestamp: float = 0.0, width: int = 640, height: int = 480) -> Frame:
        return Frame(np.zeros((height, width, 3), dtype=np.uint8), timestamp)
    return _make


@pytest.fixture
def fakes():
    """Default scripted adapters, one of each."""
    return {
        "pose": FakePoseDetector(),
        "face": FakeFacePipeline(),
        "palm": FakePalmDetector(),
        "hand": FakeHandLandmarkDetector(),
    }


@pytest.fixture
def make_pipeline(fakes):
    """Build an initialized pipeline over the fake adapters."""
    created = []

    def _make(
        mode: InferenceMode = InferenceMode.FULL,
        asynchronous: bool = False,
        **config_overrides
    ) -> HolisticPipeline:
        config = PipelineConfig(inference_mode=mode, asynchronous=asynchronous, **config_overrides)
        pipeline = HolisticPipeline(
            config,
            pose_detector=fakes["pose"],
            face_pipeline=fakes["face"],
            palm_detector=fakes["palm"],
            hand_landmark_detector=fakes["hand"],
        )
        pipeline.initialize()
        created.append(pipeline)
        return pipeline

    yield _make

    for pipeline in created:
        pipeline.shutdown()
