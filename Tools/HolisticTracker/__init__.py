"""
HolisticTracker - Real-time holistic pose, face and hand landmark tracking.

Runs MediaPipe pose and face landmark models alongside ONNX exports of the
MediaPipe palm and hand landmark models, and publishes frame-relative
landmarks for every stage.
"""

__version__ = "1.0.0"
__author__ = "AROverlay Team"

from .config import InferenceMode, PipelineConfig
from .holistic_pipeline import HolisticPipeline, PipelineError, initialize_pipeline
from .landmarks import Landmark, LandmarkKind, LandmarkSet
from .letterbox import Frame
from .model_manager import ResourceLoadError
from .pipeline_state import HandState, Side, TrackingState
from .profile_loader import ProfileLoadError, TrackerProfile, load_profile
from .camera_manager import CameraManager, CameraError

__all__ = [
    "InferenceMode",
    "PipelineConfig",
    "HolisticPipeline",
    "PipelineError",
    "initialize_pipeline",
    "Landmark",
    "LandmarkKind",
    "LandmarkSet",
    "Frame",
    "ResourceLoadError",
    "HandState",
    "Side",
    "TrackingState",
    "ProfileLoadError",
    "TrackerProfile",
    "load_profile",
    "CameraManager",
    "CameraError",
]
