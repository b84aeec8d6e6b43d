"""
Base class and runtime helpers shared by the detector adapters.

Adapters wrap one neural network each. They load lazily in initialize(),
release everything in close(), and turn load failures into
ResourceLoadError.
"""

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from .logger import get_logger
from .model_manager import ResourceLoadError, resolve_model_path

logger = get_logger("ModelAdapter")


class ModelAdapter(ABC):
    """
    Model adapter interface.

    Subclasses implement _load() and _release(); initialize() and close()
    are idempotent.
    """

    def __init__(self) -> None:
        self._is_initialized = False

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    def initialize(self) -> None:
        """
        Load the model.

        Raises:
            ResourceLoadError: If the model asset or runtime cannot be loaded.
        """
        if self._is_initialized:
            return

        logger.info(f"Initializing {self.name}...")
        self._load()
        self._is_initialized = True
        logger.info(f"{self.name} initialized")

    def close(self) -> None:
        """Release model resources."""
        if not self._is_initialized:
            return
        self._release()
        self._is_initialized = False
        logger.debug(f"{self.name} closed")

    @abstractmethod
    def _load(self) -> None: ...

    @abstractmethod
    def _release(self) -> None: ...

    def __enter__(self) -> "ModelAdapter":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def load_onnx_session(model_path: str | None, description: str) -> Any:
    """
    Create an ONNX Runtime session on the CPU provider.

    Args:
        model_path: Path to the .onnx file.
        description: Model name for log and error messages.

    Returns:
        onnxruntime.InferenceSession.

    Raises:
        ResourceLoadError: If the file is missing, onnxruntime is not
            installed or the model fails to load.
    """
    path = resolve_model_path(model_path, description)

    try:
        import onnxruntime as ort
    except ImportError as e:
        raise ResourceLoadError(
            "onnxruntime is required. Install with: pip install onnxruntime"
        ) from e

    try:
        session = ort.InferenceSession(path, providers=["CPUExecutionProvider"])
    except Exception as e:
        raise ResourceLoadError(f"Failed to load {description} model {path}: {e}") from e

    inputs = session.get_inputs()
    logger.debug(
        f"{description} model loaded: input {inputs[0].name} {inputs[0].shape}, "
        f"{len(session.get_outputs())} outputs"
    )
    return session


def image_to_tensor(image: np.ndarray, input_shape: list) -> np.ndarray:
    """
    Convert an RGB uint8 image to a float32 [0, 1] batch of one.

    The layout follows the model input: NCHW when the second dimension is
    3, NHWC otherwise.

    Args:
        image: RGB image (H, W, 3) already at the model's input size.
        input_shape: Model input shape as reported by onnxruntime.

    Returns:
        Input tensor.
    """
    tensor = image.astype(np.float32) / 255.0
    if len(input_shape) == 4 and input_shape[1] == 3:
        tensor = np.transpose(tensor, (2, 0, 1))
    return np.expand_dims(tensor, axis=0)


def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -80.0, 80.0)))
