import json
import logging

import pytest

from HolisticTracker.config import EXIT_PROFILE_ERROR, InferenceMode
from HolisticTracker.holistic_tracker import TrackerApp, main, parse_args
from HolisticTracker.logger import ROOT_LOGGER_NAME
from HolisticTracker.profile_loader import create_default_profile


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)


def test_parse_args_defaults():
    args = parse_args([])
    assert args.profile is None
    assert args.camera == -1
    assert args.mode is None
    assert args.frames is None
    assert not args.debug


def test_parse_args_options():
    args = parse_args(["--profile", "p.json", "--camera", "2", "--mode", "pose_only", "-n", "10", "-d"])
    assert args.profile == "p.json"
    assert args.camera == 2
    assert InferenceMode(args.mode) is InferenceMode.POSE_ONLY
    assert args.frames == 10
    assert args.debug


def test_parse_args_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        parse_args(["--mode", "hands_only"])


def test_missing_profile_exit_code(tmp_path):
    assert main(["--profile", str(tmp_path / "missing.json")]) == EXIT_PROFILE_ERROR


def test_invalid_profile_exit_code(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(json.dumps({"id": "a", "name": "A", "pipeline": {"inferenceMode": "nope"}}))
    assert main(["--profile", str(path)]) == EXIT_PROFILE_ERROR


class _StubCamera:
    def __init__(self, make_frame):
        self._make_frame = make_frame
        self.reads = 0
        self.closed = False

    def read_frame(self):
        self.reads += 1
        return self._make_frame(self.reads / 30)

    def close(self):
        self.closed = True


def test_run_stops_after_max_frames(make_pipeline, make_frame, fakes):
    app = TrackerApp(create_default_profile(), max_frames=5)
    app._camera = _StubCamera(make_frame)
    app._pipeline = make_pipeline()

    app.run()

    assert app._camera.reads == 5
    assert len(fakes["pose"].calls) == 5
    assert app._frame_count == 5
    assert app._camera.closed
