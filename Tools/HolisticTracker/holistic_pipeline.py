"""
Holistic pipeline orchestrator.

Sequences the pose, face, palm and hand landmark detectors for each frame,
derives every detector's crop from the stages before it, falls back to pose
anchors for hands without a confident palm result, and publishes
frame-relative landmarks through a double-buffered cache.
"""

import itertools
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import numpy as np

from .config import InferenceMode, PipelineConfig
from .face_pipeline import FacePipeline, MediaPipeFacePipeline
from .fallback_controller import FallbackController, HandProbe
from .hand_landmark import HandLandmarkDetector, OnnxHandLandmarkDetector
from .landmark_cache import FrameResult, LandmarkCache
from .landmarks import VERTEX_COUNTS, Landmark, LandmarkKind, LandmarkSet
from .letterbox import Frame, WorkingFrame
from .logger import get_logger
from .model_adapter import ModelAdapter
from .palm_detector import OnnxPalmDetector, PalmDetector
from .pipeline_state import PipelineState, Side, TrackingState
from .pose_detector import MediaPipePoseDetector, PoseDetector, PoseResult
from .reconciler import CoordinateReconciler
from .region import Region, crop_region
from .region_tracker import RegionTracker

logger = get_logger("HolisticPipeline")


class PipelineError(Exception):
    """Raised when the pipeline is used outside its initialized lifetime."""
    pass


class HolisticPipeline:
    """
    Pose, face and hand landmark pipeline.

    Frames are processed in submission order on a single worker thread.
    process() returns a Future; results are published to the landmark
    cache before the Future completes.

    Attributes:
        config: Pipeline configuration.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        pose_detector: Optional[PoseDetector] = None,
        face_pipeline: Optional[FacePipeline] = None,
        palm_detector: Optional[PalmDetector] = None,
        hand_landmark_detector: Optional[HandLandmarkDetector] = None
    ):
        """
        Initialize the pipeline. Models are not loaded until initialize().

        Args:
            config: Pipeline configuration. Uses defaults if None.
            pose_detector: Pose adapter, MediaPipe by default.
            face_pipeline: Face adapter, MediaPipe by default.
            palm_detector: Palm adapter, ONNX by default.
            hand_landmark_detector: Hand landmark adapter, ONNX by default.
        """
        self.config = config or PipelineConfig()
        cfg = self.config

        self._pose = pose_detector or MediaPipePoseDetector(
            cfg.model_variant, cfg.detection_threshold, cfg.models.pose_landmarker
        )
        self._face = face_pipeline or MediaPipeFacePipeline(
            cfg.face_detection_threshold, cfg.models.face_landmarker
        )
        self._palm = palm_detector or OnnxPalmDetector(
            cfg.models.palm_detection, cfg.palm_score_threshold, cfg.palm_iou_threshold
        )
        self._hand = hand_landmark_detector or OnnxHandLandmarkDetector(
            cfg.models.hand_landmark, cfg.hand_crop_size
        )

        self._state = PipelineState()
        self._tracker = RegionTracker(self._state, cfg)
        self._controller = FallbackController(self._state, cfg.hand_fallback_threshold)
        self._cache = LandmarkCache()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._sequence = itertools.count()
        self._submit_lock = threading.Lock()
        self._is_initialized = False
        self._is_shut_down = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def state(self) -> PipelineState:
        return self._state

    def _adapters_for(self, mode: InferenceMode) -> list[ModelAdapter]:
        adapters: list[ModelAdapter] = []
        if mode.runs_pose or mode.runs_hands:
            adapters.append(self._pose)
        if mode.runs_face:
            adapters.append(self._face)
        if mode.runs_hands:
            adapters.extend([self._palm, self._hand])
        return adapters

    def initialize(self) -> None:
        """
        Load the models the configured inference mode needs.

        Calling again resets per-hand state. Adapters for other modes are
        loaded on first use.

        Raises:
            ResourceLoadError: If a model asset or runtime fails to load.
        """
        if self._is_shut_down:
            raise PipelineError("Pipeline has been shut down")

        logger.info(f"Initializing pipeline (mode={self.config.inference_mode.value})...")

        for adapter in self._adapters_for(self.config.inference_mode):
            adapter.initialize()

        if self._executor is None and self.config.asynchronous:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="HolisticPipeline")

        self._state.reset()
        self._is_initialized = True
        logger.info("Pipeline initialized")

    def process(self, frame: Frame, mode: Optional[InferenceMode] = None) -> "Future[FrameResult]":
        """
        Submit a frame.

        Args:
            frame: RGB frame with its capture timestamp.
            mode: Stages to run, the configured mode if None.

        Returns:
            Future resolving to the FrameResult once it is published.

        Raises:
            PipelineError: If the pipeline is not initialized or shut down.
        """
        if self._is_shut_down:
            raise PipelineError("Pipeline has been shut down")
        if not self._is_initialized:
            raise PipelineError("Pipeline is not initialized")

        mode = mode or self.config.inference_mode

        with self._submit_lock:
            sequence = next(self._sequence)
            if self._executor is not None:
                return self._executor.submit(self._run_step, frame, mode, sequence)

        future: Future = Future()
        try:
            future.set_result(self._run_step(frame, mode, sequence))
        except Exception as e:
            future.set_exception(e)
        return future

    def _run_step(self, frame: Frame, mode: InferenceMode, sequence: int) -> FrameResult:
        started = time.perf_counter()
        cfg = self.config

        for adapter in self._adapters_for(mode):
            if not adapter.is_initialized:
                logger.info(f"Loading {adapter.name} for mode {mode.value}")
                adapter.initialize()

        working = WorkingFrame.from_frame(frame, cfg.working_size)
        reconciler = CoordinateReconciler(working.letterbox)
        landmarks: dict[LandmarkKind, LandmarkSet] = {}

        pose: Optional[PoseResult] = None
        if mode.runs_pose or mode.runs_hands:
            pose = self._pose.detect(
                working, cfg.model_variant, cfg.detection_threshold, cfg.iou_threshold
            )
            landmarks[LandmarkKind.POSE] = reconciler.pose(pose.landmarks)
            landmarks[LandmarkKind.POSE_WORLD] = pose.world_landmarks

        eye_matrices: dict[Side, np.ndarray] = {}
        eye_regions: dict[Side, Region] = {}
        face_region: Optional[Region] = None
        face_score = 0.0
        if mode.runs_face:
            face_region = self._tracker.face_region(pose.landmarks if pose else None, working.letterbox)
            crop = crop_region(working.image, face_region, cfg.face_crop_size)
            face = self._face.detect(crop)
            face_score = face.score

            found = face_score > 0.0
            landmarks[LandmarkKind.FACE] = (
                reconciler.face(face.face, face_region) if found
                else LandmarkSet.empty(LandmarkKind.FACE)
            )
            for side, eye_set, eye_matrix in (
                (Side.LEFT, face.left_eye, face.left_eye_matrix),
                (Side.RIGHT, face.right_eye, face.right_eye_matrix),
            ):
                landmarks[side.eye_kind] = (
                    reconciler.eye(eye_set, eye_matrix, face_region) if found
                    else LandmarkSet.empty(side.eye_kind)
                )
                eye_matrices[side] = reconciler.eye_crop_matrix(eye_matrix, face_region)
            eye_regions = self._tracker.eye_regions(eye_matrices)

        hand_regions: dict[Side, Region] = {}
        if mode.runs_hands:
            hand_regions = self._process_hands(working, pose, reconciler, landmarks)

        result = FrameResult(
            sequence=sequence,
            timestamp=frame.timestamp,
            mode=mode,
            landmarks=landmarks,
            eye_crop_matrices=eye_matrices,
            eye_regions=eye_regions,
            face_region=face_region,
            hand_regions=hand_regions,
            hand_states=self._state.snapshot() if mode.runs_hands else {},
            pose_score=pose.score if pose else 0.0,
            face_score=face_score,
            elapsed_ms=(time.perf_counter() - started) * 1000.0
        )

        self._cache.publish(result)
        logger.debug(
            f"Frame {sequence}: mode={mode.value} pose={result.pose_score:.2f} "
            f"face={face_score:.2f} ({result.elapsed_ms:.1f} ms)"
        )
        return result

    def _process_hands(
        self,
        working: WorkingFrame,
        pose: Optional[PoseResult],
        reconciler: CoordinateReconciler,
        landmarks: dict[LandmarkKind, LandmarkSet]
    ) -> dict[Side, Region]:
        cfg = self.config
        timestamp = working.timestamp

        candidates = self._palm.detect(working)
        matches = self._tracker.match_candidates(candidates, timestamp)

        probes = []
        for index, match in enumerate(matches):
            crop = crop_region(working.image, match.region, cfg.hand_crop_size, flip_vertical=True)
            probes.append(HandProbe(match.region, self._hand.detect(crop), index))

        assigned = self._controller.assign(probes)
        for side, probe in list(assigned.items()):
            region = self._tracker.region_for_side(side, matches[probe.candidate_index])
            if region != probe.region:
                crop = crop_region(working.image, region, cfg.hand_crop_size, flip_vertical=True)
                assigned[side] = HandProbe(region, self._hand.detect(crop), probe.candidate_index)

        pose_landmarks = pose.landmarks if pose else LandmarkSet.empty(LandmarkKind.POSE)
        hand_regions: dict[Side, Region] = {}

        for side in Side:
            probe = assigned.get(side)
            tracking = self._controller.resolve(side, probe)

            if tracking is TrackingState.PALM_TRACKED:
                region = probe.region
                result = probe.result
                flipped = True
                score = result.presence
                handedness = result.handedness
            else:
                fallback = self._tracker.pose_fallback_region(side, pose_landmarks, working.letterbox)
                region = fallback.region
                crop = crop_region(working.image, region, cfg.hand_crop_size)
                result = self._hand.detect(crop)
                flipped = False
                score = min(result.presence, fallback.visibility)
                handedness = 1.0 if side is Side.RIGHT else 0.0

            landmarks[side.landmark_kind] = reconciler.hand(
                result.landmarks, region, flipped, side.landmark_kind, score
            )
            hand_regions[side] = region
            self._tracker.commit_hand_region(side, region, timestamp)
            self._controller.record(side, tracking, score, handedness)

        return hand_regions

    def get_landmark(self, kind: LandmarkKind, index: int) -> Landmark:
        """
        Read one published landmark.

        Args:
            kind: Landmark buffer.
            index: Landmark index; vertex_count(kind) reads the score entry
                of pose and hand buffers.

        Returns:
            Frame-relative landmark from the last published frame.
        """
        return self._cache.get(kind).landmark(index)

    def get_landmark_set(self, kind: LandmarkKind) -> LandmarkSet:
        """Last published LandmarkSet of a kind."""
        return self._cache.get(kind)

    def vertex_count(self, kind: LandmarkKind) -> int:
        return VERTEX_COUNTS[kind]

    def eye_crop_matrix(self, side: Side) -> np.ndarray:
        """Last published eye-local to frame affine for an eye."""
        return self._cache.eye_crop_matrix(side)

    def latest_result(self) -> Optional[FrameResult]:
        return self._cache.latest()

    def reset(self) -> None:
        """
        Forget per-hand tracking state.

        Runs after any frame already submitted.
        """
        if self._executor is not None:
            self._executor.submit(self._state.reset).result()
        else:
            self._state.reset()
        logger.debug("Pipeline state reset")

    def shutdown(self) -> None:
        """Finish submitted frames and release all models. Safe to call twice."""
        if self._is_shut_down:
            return
        self._is_shut_down = True

        logger.info("Shutting down pipeline...")
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        for adapter in (self._pose, self._face, self._palm, self._hand):
            adapter.close()

        self._state.release()
        self._is_initialized = False
        logger.info("Pipeline shut down")

    def __enter__(self) -> "HolisticPipeline":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.shutdown()


def initialize_pipeline(config: Optional[PipelineConfig] = None) -> HolisticPipeline:
    """
    Create and initialize a pipeline with the default adapters.

    Args:
        config: Pipeline configuration. Uses defaults if None.

    Returns:
        Initialized HolisticPipeline.

    Raises:
        ResourceLoadError: If a model asset or runtime fails to load.
    """
    pipeline = HolisticPipeline(config)
    pipeline.initialize()
    return pipeline
