"""
Model file manager for HolisticTracker.

Resolves model assets for the detector adapters. MediaPipe Tasks model files
are downloaded and cached on first use; ONNX models are supplied as paths.
"""

import os
import sys
import time
import urllib.request
from pathlib import Path
from typing import Optional

from .logger import get_logger

logger = get_logger("ModelManager")

_MODEL_BASE_URL = "https://storage.googleapis.com/mediapipe-models"

# name -> (url, approximate size in MB)
TASK_MODELS: dict[str, tuple[str, float]] = {
    "pose_landmarker_lite": (
        f"{_MODEL_BASE_URL}/pose_landmarker/pose_landmarker_lite/float16/latest/pose_landmarker_lite.task",
        5.5,
    ),
    "pose_landmarker_full": (
        f"{_MODEL_BASE_URL}/pose_landmarker/pose_landmarker_full/float16/latest/pose_landmarker_full.task",
        9.0,
    ),
    "pose_landmarker_heavy": (
        f"{_MODEL_BASE_URL}/pose_landmarker/pose_landmarker_heavy/float16/latest/pose_landmarker_heavy.task",
        29.2,
    ),
    "face_landmarker": (
        f"{_MODEL_BASE_URL}/face_landmarker/face_landmarker/float16/latest/face_landmarker.task",
        3.6,
    ),
}

# Download settings
DOWNLOAD_TIMEOUT = 120  # seconds
DOWNLOAD_CHUNK_SIZE = 8192  # bytes
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds


class ResourceLoadError(Exception):
    """Raised when a model asset or inference runtime cannot be loaded."""
    pass


def get_model_cache_dir() -> Path:
    """
    Get the model cache directory.

    Returns:
        Path to model cache directory (creates if needed).
    """
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
    else:
        base = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))

    cache_dir = Path(base) / "HolisticTracker" / "models"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def resolve_model_path(explicit_path: Optional[str], description: str) -> str:
    """
    Check a user-supplied model path.

    Args:
        explicit_path: Path from configuration, may be None.
        description: Model name for error messages.

    Returns:
        The path as a string.

    Raises:
        ResourceLoadError: If no path was given or the file does not exist.
    """
    if not explicit_path:
        raise ResourceLoadError(f"No model path configured for {description}")

    path = Path(explicit_path).expanduser()
    if not path.is_file():
        raise ResourceLoadError(f"{description} model not found: {path}")

    logger.debug(f"Using {description} model: {path}")
    return str(path)


def ensure_task_model(name: str, explicit_path: Optional[str] = None) -> str:
    """
    Ensure a MediaPipe Tasks model is available.

    Uses the explicit path when given, otherwise downloads the model into
    the cache if not present.

    Args:
        name: Key into TASK_MODELS.
        explicit_path: Optional user-supplied model file.

    Returns:
        Path to the model file.

    Raises:
        ResourceLoadError: If the model is unknown, missing or the
            download fails after retries.
    """
    if explicit_path:
        return resolve_model_path(explicit_path, name)

    if name not in TASK_MODELS:
        raise ResourceLoadError(f"Unknown model: {name}")

    url, size_mb = TASK_MODELS[name]
    model_path = get_model_cache_dir() / f"{name}.task"

    if model_path.exists():
        logger.debug(f"Using cached model: {model_path}")
        return str(model_path)

    logger.info(f"Downloading {name} model (~{size_mb} MB)...")
    logger.debug(f"URL: {url}")

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            _download_model(url, model_path)
            logger.info(f"Model downloaded successfully: {model_path}")
            return str(model_path)
        except OSError as e:
            logger.warning(f"Download attempt {attempt}/{MAX_RETRIES} failed: {e}")
            if attempt < MAX_RETRIES:
                logger.info(f"Retrying in {RETRY_DELAY * attempt} seconds...")
                time.sleep(RETRY_DELAY * attempt)
            else:
                raise ResourceLoadError(
                    f"Failed to download {name} after {MAX_RETRIES} attempts. "
                    f"Please check your internet connection and try again."
                ) from e

    # Should not reach here
    raise ResourceLoadError("Model download failed")


def _download_model(url: str, dest_path: Path) -> None:
    """
    Download a model file with progress reporting.

    Args:
        url: URL to download from.
        dest_path: Destination file path.
    """
    temp_path = dest_path.with_suffix(".tmp")

    try:
        request = urllib.request.Request(
            url,
            headers={"User-Agent": "HolisticTracker/1.0"}
        )

        with urllib.request.urlopen(request, timeout=DOWNLOAD_TIMEOUT) as response:
            total_size = int(response.headers.get("Content-Length", 0))
            downloaded = 0

            with open(temp_path, "wb") as f:
                while True:
                    chunk = response.read(DOWNLOAD_CHUNK_SIZE)
                    if not chunk:
                        break

                    f.write(chunk)
                    downloaded += len(chunk)

                    if total_size > 0:
                        progress = downloaded / total_size * 100
                        print(f"\r[ModelManager] Progress: {progress:.1f}% ({downloaded / 1024 / 1024:.1f} MB)", end="")

        print()  # Newline after progress

        temp_path.rename(dest_path)

    except Exception:
        # Clean up temp file on failure
        if temp_path.exists():
            temp_path.unlink()
        raise
