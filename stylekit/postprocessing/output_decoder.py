"""
Output Decoder

Converts raw model output tensors back into displayable RGB(A) images.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import structlog
from PIL import Image

from ..models.registry import ModelConfig, NormalizationScheme, TensorLayout
from ..models.utils import check_output_shape
from ..utils.errors import InferenceRuntimeError, MissingOutputError, ShapeMismatchError

logger = structlog.get_logger()


@dataclass
class DecodedImage:
    """Pixels reconstructed from an output tensor."""
    image: Image.Image
    width: int
    height: int
    channels: int


def decode_session_outputs(outputs: Sequence[Any]) -> np.ndarray:
    """
    Pick the first output of a session run.

    Raises:
        MissingOutputError: If the run produced no outputs
        InferenceRuntimeError: If the first output is not numeric
    """
    if outputs is None or len(outputs) == 0 or outputs[0] is None:
        raise MissingOutputError("Model produced no outputs")
    try:
        return np.asarray(outputs[0], dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InferenceRuntimeError(f"Model output is not a numeric tensor: {e}") from e


def output_to_unit_range(values: np.ndarray, model_config: ModelConfig) -> np.ndarray:
    """
    Map model output samples to 0-255 floats.

    Symmetric-range models produce -1..1; every other model is treated as
    producing 0..1.
    """
    values = np.asarray(values, dtype=np.float32)
    if model_config.normalization_scheme is NormalizationScheme.SYMMETRIC:
        return (values + np.float32(1.0)) / np.float32(2.0) * np.float32(255.0)
    return values * np.float32(255.0)


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Round half-up and clamp to 0-255; NaN becomes 0."""
    values = np.nan_to_num(values, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


class OutputDecoder:
    """Reconstructs images from output tensors using their own shape."""

    def decode(
        self,
        output: np.ndarray,
        model_config: ModelConfig,
        with_alpha: bool = False
    ) -> DecodedImage:
        """
        Decode an output tensor.

        Args:
            output: Output tensor, [1, H, W, C], [1, C, H, W] or without batch axis
            model_config: Model that produced the tensor
            with_alpha: Add a fully opaque alpha channel

        Returns:
            DecodedImage in RGB or RGBA mode
        """
        array = np.asarray(output, dtype=np.float32)
        width, height, channels, layout = check_output_shape(array.shape)

        if width <= 0 or height <= 0:
            raise ShapeMismatchError(f"Output tensor has no pixels: {list(array.shape)}")

        if array.ndim == 4:
            # First image of the batch
            array = array[0]
        if layout is TensorLayout.NCHW:
            array = array.transpose(1, 2, 0)

        if channels == 1:
            array = np.repeat(array, 3, axis=2)
        elif channels >= 3:
            # Model-produced alpha is not trusted
            array = array[:, :, :3]
        else:
            raise ShapeMismatchError(f"Unsupported output channel count: {channels}")

        pixels = to_uint8(output_to_unit_range(array, model_config))

        if with_alpha:
            alpha = np.full((height, width, 1), 255, dtype=np.uint8)
            image = Image.fromarray(np.concatenate([pixels, alpha], axis=2))
        else:
            image = Image.fromarray(np.ascontiguousarray(pixels))

        logger.debug("Output decoded", style=model_config.style_id,
                     dims=list(np.shape(output)), size=(width, height),
                     layout=layout.value)

        return DecodedImage(image=image, width=width, height=height, channels=channels)
