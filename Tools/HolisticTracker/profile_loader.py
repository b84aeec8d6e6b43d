"""
Profile loader for HolisticTracker.

Loads and validates JSON tracking profiles. Profile properties use camelCase.

Example:
    {
        "id": "desk",
        "name": "Desk webcam",
        "selectedCameraIndex": 0,
        "pipeline": {
            "modelVariant": "lite",
            "inferenceMode": "pose_and_hand",
            "handFallbackThreshold": 0.6,
            "models": {"palmDetection": "models/palm_detection.onnx"}
        }
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .config import (
    MODEL_VARIANTS,
    InferenceMode,
    ModelPaths,
    PipelineConfig,
    RegionSmoothingSettings,
)
from .logger import get_logger

logger = get_logger("ProfileLoader")


class ProfileLoadError(Exception):
    """Raised when profile loading or validation fails."""
    pass


@dataclass
class TrackerProfile:
    """
    Profile configuration loaded from JSON.

    Attributes:
        id: Unique identifier.
        name: Profile display name.
        selected_camera_index: Camera device index (-1 for auto).
        pipeline: Pipeline configuration.
    """

    id: str
    name: str
    selected_camera_index: int = -1
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def load_profile(profile_path: str | Path) -> TrackerProfile:
    """
    Load and validate a profile from a JSON file.

    Relative model paths are resolved against the profile's directory.

    Args:
        profile_path: Path to the JSON profile file.

    Returns:
        Validated TrackerProfile instance.

    Raises:
        ProfileLoadError: If file cannot be read or validation fails.
    """
    path = Path(profile_path)
    logger.info(f"Loading profile from: {path}")

    if not path.exists():
        raise ProfileLoadError(f"Profile file not found: {path}")

    if not path.is_file():
        raise ProfileLoadError(f"Profile path is not a file: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ProfileLoadError(f"Invalid JSON in profile: {e}") from e
    except OSError as e:
        raise ProfileLoadError(f"Cannot read profile file: {e}") from e

    if not isinstance(data, dict):
        raise ProfileLoadError("Profile root must be a JSON object")

    return parse_profile(data, base_dir=path.parent)


def parse_profile(data: dict[str, Any], base_dir: Optional[Path] = None) -> TrackerProfile:
    """
    Parse and validate profile data from dictionary.

    Args:
        data: Dictionary with camelCase profile properties.
        base_dir: Directory relative model paths are resolved against.

    Returns:
        Validated TrackerProfile instance.

    Raises:
        ProfileLoadError: If required fields are missing or invalid.
    """
    if "id" not in data:
        raise ProfileLoadError("Profile missing required field: id")

    if "name" not in data:
        raise ProfileLoadError("Profile missing required field: name")

    camera_index = data.get("selectedCameraIndex", -1)
    if not isinstance(camera_index, int) or isinstance(camera_index, bool):
        logger.warning("Invalid selectedCameraIndex, using auto-detect")
        camera_index = -1

    pipeline_data = data.get("pipeline", {})
    if not isinstance(pipeline_data, dict):
        raise ProfileLoadError("Profile field 'pipeline' must be an object")

    profile = TrackerProfile(
        id=str(data["id"]),
        name=str(data["name"]),
        selected_camera_index=camera_index,
        pipeline=parse_pipeline_config(pipeline_data, base_dir)
    )

    cfg = profile.pipeline
    logger.info(f"Loaded profile: {profile.name} (id={profile.id})")
    logger.debug(f"  Camera index: {profile.selected_camera_index}")
    logger.debug(f"  Inference mode: {cfg.inference_mode.value}")
    logger.debug(f"  Model variant: {cfg.model_variant}")
    logger.debug(f"  Hand fallback threshold: {cfg.hand_fallback_threshold}")
    logger.debug(f"  Asynchronous: {cfg.asynchronous}")

    return profile


def _threshold(data: dict[str, Any], key: str, default: float) -> float:
    """Read a [0, 1] value, clamping out-of-range numbers and defaulting bad types."""
    value = data.get(key, default)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        logger.warning(f"Invalid {key}, using default: {default}")
        return default
    clamped = max(0.0, min(1.0, float(value)))
    if clamped != value:
        logger.warning(f"{key} {value} out of range, clamped to {clamped}")
    return clamped


def _positive(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        logger.warning(f"Invalid {key}, using default: {default}")
        return default
    return float(value)


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        logger.warning(f"Invalid {key}, using default: {default}")
        return default
    return value


def _model_path(data: dict[str, Any], key: str, base_dir: Optional[Path]) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise ProfileLoadError(f"Model path '{key}' must be a non-empty string")
    path = Path(value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return str(path)


def parse_pipeline_config(data: dict[str, Any], base_dir: Optional[Path] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from the profile's "pipeline" object.

    Missing fields take their defaults; invalid thresholds are clamped or
    defaulted with a warning; an unknown model variant or inference mode
    is an error.

    Raises:
        ProfileLoadError: If a field cannot be interpreted.
    """
    defaults = PipelineConfig()

    variant = str(data.get("modelVariant", defaults.model_variant)).lower()
    if variant not in MODEL_VARIANTS:
        raise ProfileLoadError(
            f"Invalid model variant: {variant} (expected one of {', '.join(MODEL_VARIANTS)})"
        )

    mode_raw = str(data.get("inferenceMode", defaults.inference_mode.value))
    try:
        mode = InferenceMode(mode_raw.lower())
    except ValueError:
        valid = ", ".join(m.value for m in InferenceMode)
        raise ProfileLoadError(f"Invalid inference mode: {mode_raw} (expected one of {valid})")

    asynchronous = data.get("asynchronous", defaults.asynchronous)
    if not isinstance(asynchronous, bool):
        logger.warning("Invalid asynchronous flag, using default: True")
        asynchronous = defaults.asynchronous

    smoothing_data = data.get("regionSmoothing", {})
    if not isinstance(smoothing_data, dict):
        logger.warning("Invalid regionSmoothing, using defaults")
        smoothing_data = {}
    sd = RegionSmoothingSettings()
    smoothing = RegionSmoothingSettings(
        center_min_cutoff=_positive(smoothing_data, "centerMinCutoff", sd.center_min_cutoff),
        center_beta=_positive(smoothing_data, "centerBeta", sd.center_beta),
        size_min_cutoff=_positive(smoothing_data, "sizeMinCutoff", sd.size_min_cutoff),
        size_beta=_positive(smoothing_data, "sizeBeta", sd.size_beta),
        rotation_min_cutoff=_positive(smoothing_data, "rotationMinCutoff", sd.rotation_min_cutoff),
        rotation_beta=_positive(smoothing_data, "rotationBeta", sd.rotation_beta),
    )

    models_data = data.get("models", {})
    if not isinstance(models_data, dict):
        raise ProfileLoadError("Profile field 'models' must be an object")
    models = ModelPaths(
        pose_landmarker=_model_path(models_data, "poseLandmarker", base_dir),
        face_landmarker=_model_path(models_data, "faceLandmarker", base_dir),
        palm_detection=_model_path(models_data, "palmDetection", base_dir),
        hand_landmark=_model_path(models_data, "handLandmark", base_dir),
    )

    return PipelineConfig(
        model_variant=variant,
        detection_threshold=_threshold(data, "detectionThreshold", defaults.detection_threshold),
        iou_threshold=_threshold(data, "iouThreshold", defaults.iou_threshold),
        hand_fallback_threshold=_threshold(data, "handFallbackThreshold", defaults.hand_fallback_threshold),
        inference_mode=mode,
        working_size=_positive_int(data, "workingSize", defaults.working_size),
        hand_crop_size=_positive_int(data, "handCropSize", defaults.hand_crop_size),
        face_crop_size=_positive_int(data, "faceCropSize", defaults.face_crop_size),
        human_exist_threshold=_threshold(data, "humanExistThreshold", defaults.human_exist_threshold),
        face_detection_threshold=_threshold(data, "faceDetectionThreshold", defaults.face_detection_threshold),
        palm_score_threshold=_threshold(data, "palmScoreThreshold", defaults.palm_score_threshold),
        palm_iou_threshold=_threshold(data, "palmIouThreshold", defaults.palm_iou_threshold),
        hand_fallback_scale=_positive(data, "handFallbackScale", defaults.hand_fallback_scale),
        hand_fallback_shift=_threshold(data, "handFallbackShift", defaults.hand_fallback_shift),
        hand_identity_gate=_positive(data, "handIdentityGate", defaults.hand_identity_gate),
        smoothing=smoothing,
        models=models,
        asynchronous=asynchronous,
    )


def create_default_profile() -> TrackerProfile:
    """
    Create a default profile with standard settings.

    Returns:
        TrackerProfile with default values.
    """
    return TrackerProfile(id="default", name="Default")
