"""
HolisticTracker - real-time pose, face and hand landmark tracking.

Captures webcam frames, runs them through the holistic pipeline and logs a
tracking summary once per second.

Usage:
    holistic-tracker --profile profile.json [--camera N] [--mode MODE] [--debug]
"""

import argparse
import signal
import sys
import time
from concurrent.futures import Future
from typing import Optional

from .camera_manager import CameraError, CameraManager, select_camera
from .config import (
    DEFAULT_CAMERA_INDEX,
    EXIT_CAMERA_ERROR,
    EXIT_PROFILE_ERROR,
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    InferenceMode,
)
from .holistic_pipeline import HolisticPipeline
from .landmark_cache import FrameResult
from .logger import get_logger, setup_logging
from .model_manager import ResourceLoadError
from .pipeline_state import Side
from .profile_loader import ProfileLoadError, TrackerProfile, create_default_profile, load_profile

# Seconds between tracking summaries
SUMMARY_INTERVAL = 1.0


class TrackerApp:
    """
    Main application for holistic tracking.

    Integrates camera capture and the holistic pipeline into a real-time
    loop. One frame is in flight on the pipeline worker while the next is
    captured.
    """

    def __init__(
        self,
        profile: TrackerProfile,
        camera_index: int = DEFAULT_CAMERA_INDEX,
        max_frames: Optional[int] = None
    ):
        """
        Initialize tracker application.

        Args:
            profile: Loaded profile configuration.
            camera_index: Camera device index.
            max_frames: Stop after this many frames (None = run until stopped).
        """
        self.profile = profile
        self.camera_index = camera_index
        self.max_frames = max_frames

        self._logger = get_logger("App")
        self._running = False
        self._stopped = False

        self._camera: Optional[CameraManager] = None
        self._pipeline: Optional[HolisticPipeline] = None

        self._submitted = 0
        self._frame_count = 0
        self._start_time = 0.0
        self._last_summary_time = 0.0
        self._frames_since_summary = 0

    def initialize(self) -> None:
        """
        Open the camera and load the pipeline models.

        Raises:
            CameraError: If the camera cannot be opened.
            ResourceLoadError: If a model cannot be loaded.
        """
        self._logger.info("Initializing components...")

        self._camera = CameraManager(camera_index=self.camera_index)
        self._camera.open()

        self._pipeline = HolisticPipeline(self.profile.pipeline)
        self._pipeline.initialize()

    def run(self) -> None:
        """Run the main tracking loop."""
        self._running = True
        self._start_time = time.perf_counter()
        self._last_summary_time = self._start_time

        self._logger.info("Starting tracking loop...")
        pending: Optional[Future] = None

        try:
            while self._running:
                if self.max_frames is not None and self._submitted >= self.max_frames:
                    self._logger.info(f"Reached {self.max_frames} frames")
                    break

                frame = self._camera.read_frame()
                if frame is None:
                    continue

                future = self._pipeline.process(frame)
                self._submitted += 1
                if pending is not None:
                    self._on_result(pending.result())
                pending = future

            if pending is not None:
                self._on_result(pending.result())
        except KeyboardInterrupt:
            self._logger.info("Interrupted by user")
        finally:
            self.stop()

    def _on_result(self, result: FrameResult) -> None:
        self._frame_count += 1
        self._frames_since_summary += 1

        now = time.perf_counter()
        elapsed = now - self._last_summary_time
        if elapsed < SUMMARY_INTERVAL:
            return

        fps = self._frames_since_summary / elapsed
        hands = ", ".join(
            f"{side.value}={state.tracking.name}({state.confidence:.2f})"
            for side, state in result.hand_states.items()
        ) or "off"
        self._logger.info(
            f"{fps:.1f} FPS | pose={result.pose_score:.2f} face={result.face_score:.2f} "
            f"| hands: {hands} | {result.elapsed_ms:.1f} ms/frame"
        )

        if Side.LEFT in result.eye_crop_matrices:
            iris = self._pipeline.get_landmark_set(Side.LEFT.eye_kind).landmark(0)
            self._logger.debug(f"Left iris centre: ({iris.x:.3f}, {iris.y:.3f})")

        self._last_summary_time = now
        self._frames_since_summary = 0

    def stop(self) -> None:
        """Stop the tracking loop and cleanup."""
        self._running = False
        if self._stopped:
            return
        self._stopped = True

        self._logger.info("Stopping holistic tracker...")

        if self._pipeline:
            self._pipeline.shutdown()

        if self._camera:
            self._camera.close()

        if self._frame_count > 0:
            elapsed = time.perf_counter() - self._start_time
            avg_fps = self._frame_count / elapsed if elapsed > 0 else 0
            self._logger.info(
                f"Tracking stopped. Processed {self._frame_count} frames "
                f"in {elapsed:.1f}s ({avg_fps:.1f} FPS average)"
            )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Holistic Tracker - real-time pose, face and hand landmarks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0  Success
  1  Profile error (file not found, invalid JSON)
  2  Camera error (camera not available)
  3  Runtime error (model load failure, unexpected error)

Examples:
  holistic-tracker --profile profile.json
  holistic-tracker --profile profile.json --camera 1 --mode pose_only
  holistic-tracker --debug --frames 300
"""
    )

    parser.add_argument(
        "--profile", "-p",
        default=None,
        help="Path to JSON profile file (default: built-in defaults)"
    )

    parser.add_argument(
        "--camera", "-c",
        type=int,
        default=-1,
        help="Camera index (default: profile setting, then auto-detect)"
    )

    parser.add_argument(
        "--mode", "-m",
        choices=[m.value for m in InferenceMode],
        default=None,
        help="Inference mode (overrides the profile)"
    )

    parser.add_argument(
        "--frames", "-n",
        type=int,
        default=None,
        help="Stop after this many frames"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code.
    """
    args = parse_args(argv)

    logger = setup_logging(debug=args.debug)
    logger.info("Holistic Tracker starting...")

    try:
        profile = load_profile(args.profile) if args.profile else create_default_profile()
    except ProfileLoadError as e:
        logger.error(f"Failed to load profile: {e}")
        return EXIT_PROFILE_ERROR

    if args.mode:
        profile.pipeline.inference_mode = InferenceMode(args.mode)

    try:
        if args.camera >= 0:
            camera_index = args.camera
        elif profile.selected_camera_index >= 0:
            camera_index = profile.selected_camera_index
        else:
            camera_index = select_camera()
    except CameraError as e:
        logger.error(f"Camera selection failed: {e}")
        return EXIT_CAMERA_ERROR

    app: Optional[TrackerApp] = None

    try:
        app = TrackerApp(profile=profile, camera_index=camera_index, max_frames=args.frames)

        def signal_handler(sig, frame):
            logger.info("Received shutdown signal")
            if app:
                app._running = False

        signal.signal(signal.SIGINT, signal_handler)
        # SIGTERM is not available on Windows
        if sys.platform != "win32":
            signal.signal(signal.SIGTERM, signal_handler)

        app.initialize()
        app.run()

        return EXIT_SUCCESS

    except CameraError as e:
        logger.error(f"Camera error: {e}")
        return EXIT_CAMERA_ERROR
    except ResourceLoadError as e:
        logger.error(f"Model load failed: {e}")
        return EXIT_RUNTIME_ERROR
    except Exception as e:
        logger.exception(f"Runtime error: {e}")
        return EXIT_RUNTIME_ERROR
    finally:
        if app:
            app.stop()


if __name__ == "__main__":
    sys.exit(main())
