import json
from pathlib import Path

import pytest

from HolisticTracker.config import HAND_FALLBACK_THRESHOLD, InferenceMode, PipelineConfig
from HolisticTracker.profile_loader import (
    ProfileLoadError,
    create_default_profile,
    load_profile,
    parse_profile,
)


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "profile.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_full_profile(tmp_path):
    path = _write(tmp_path, {
        "id": "desk",
        "name": "Desk webcam",
        "selectedCameraIndex": 1,
        "pipeline": {
            "modelVariant": "Lite",
            "inferenceMode": "pose_and_hand",
            "handFallbackThreshold": 0.65,
            "workingSize": 384,
            "asynchronous": False,
            "regionSmoothing": {"centerBeta": 10.0},
            "models": {"palmDetection": "models/palm.onnx", "handLandmark": "/abs/hand.onnx"},
        },
    })

    profile = load_profile(path)
    cfg = profile.pipeline

    assert profile.id == "desk"
    assert profile.selected_camera_index == 1
    assert cfg.model_variant == "lite"
    assert cfg.inference_mode is InferenceMode.POSE_AND_HAND
    assert cfg.hand_fallback_threshold == 0.65
    assert cfg.working_size == 384
    assert cfg.asynchronous is False
    assert cfg.smoothing.center_beta == 10.0
    assert cfg.smoothing.size_beta == PipelineConfig().smoothing.size_beta
    assert cfg.models.palm_detection == str(tmp_path / "models" / "palm.onnx")
    assert cfg.models.hand_landmark == str(Path("/abs/hand.onnx"))
    assert cfg.models.pose_landmarker is None


def test_minimal_profile_uses_defaults(tmp_path):
    profile = load_profile(_write(tmp_path, {"id": "a", "name": "A"}))
    assert profile.selected_camera_index == -1
    assert profile.pipeline == PipelineConfig()


def test_missing_file(tmp_path):
    with pytest.raises(ProfileLoadError, match="not found"):
        load_profile(tmp_path / "missing.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ProfileLoadError, match="Invalid JSON"):
        load_profile(path)


def test_root_must_be_object(tmp_path):
    with pytest.raises(ProfileLoadError):
        load_profile(_write(tmp_path, [1, 2]))


@pytest.mark.parametrize("missing", ["id", "name"])
def test_required_fields(missing):
    data = {"id": "a", "name": "A"}
    del data[missing]
    with pytest.raises(ProfileLoadError, match=missing):
        parse_profile(data)


def test_thresholds_are_clamped():
    profile = parse_profile({
        "id": "a",
        "name": "A",
        "pipeline": {"handFallbackThreshold": 1.5, "detectionThreshold": -0.2},
    })
    assert profile.pipeline.hand_fallback_threshold == 1.0
    assert profile.pipeline.detection_threshold == 0.0


def test_bad_threshold_type_uses_default():
    profile = parse_profile({"id": "a", "name": "A", "pipeline": {"handFallbackThreshold": "high"}})
    assert profile.pipeline.hand_fallback_threshold == HAND_FALLBACK_THRESHOLD


def test_bad_camera_index_uses_auto():
    assert parse_profile({"id": "a", "name": "A", "selectedCameraIndex": "one"}).selected_camera_index == -1


@pytest.mark.parametrize("pipeline", [
    {"modelVariant": "huge"},
    {"inferenceMode": "hands_only"},
    {"models": {"palmDetection": ""}},
    {"models": []},
])
def test_invalid_pipeline_fields(pipeline):
    with pytest.raises(ProfileLoadError):
        parse_profile({"id": "a", "name": "A", "pipeline": pipeline})


def test_default_profile():
    profile = create_default_profile()
    assert profile.id == "default"
    assert profile.pipeline.inference_mode is InferenceMode.FULL
