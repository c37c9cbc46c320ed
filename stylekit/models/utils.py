"""
Model utilities and helper functions for style transfer.
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import structlog

from ..utils.errors import ShapeMismatchError
from .registry import ModelConfig, NormalizationScheme, TensorLayout

logger = structlog.get_logger()

# Loose plausibility bounds per normalization scheme
RANGE_LIMITS = {
    NormalizationScheme.SYMMETRIC: (-1.1, 1.1),
    NormalizationScheme.CHANNEL_STATS: (-3.0, 3.0),
    NormalizationScheme.IDENTITY: (-0.1, 1.1),
}


@dataclass
class TensorSnapshot:
    """Diagnostic copy of a tensor."""
    data: np.ndarray
    dims: Tuple[int, ...]
    data_range: Tuple[float, float]

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'TensorSnapshot':
        array = np.asarray(array, dtype=np.float32)
        return cls(
            data=array.reshape(-1).copy(),
            dims=tuple(int(d) for d in array.shape),
            data_range=array_min_max(array)
        )


@dataclass
class TensorValidation:
    """Non-fatal findings from validating a tensor."""
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


def array_min_max(array: np.ndarray) -> Tuple[float, float]:
    """Observed (min, max) of an array, ignoring NaN; (0, 0) when empty."""
    array = np.asarray(array)
    if array.size == 0 or np.all(np.isnan(array)):
        return 0.0, 0.0
    return float(np.nanmin(array)), float(np.nanmax(array))


def validate_model_inputs(tensor, model_config: ModelConfig) -> TensorValidation:
    """
    Validate a prepared tensor against a model's input contract.

    Args:
        tensor: PreparedTensor produced by the preprocessor
        model_config: Model the tensor is destined for

    Returns:
        TensorValidation carrying range warnings

    Raises:
        ShapeMismatchError: If shape, channel count or buffer length disagree
    """
    shape = tuple(int(d) for d in tensor.shape)
    declared = tuple(model_config.input_shape)

    if len(shape) != 4:
        raise ShapeMismatchError(f"Tensor must be 4D, got {list(shape)}")

    if tensor.layout is not model_config.layout:
        raise ShapeMismatchError(
            f"Tensor layout {tensor.layout.value} does not match model layout "
            f"{model_config.layout.value}"
        )

    for axis, (actual, wanted) in enumerate(zip(shape, declared)):
        if actual != wanted:
            raise ShapeMismatchError(
                f"Tensor shape {list(shape)} does not match model input "
                f"{list(declared)} at dimension {axis}"
            )

    channel_axis = 1 if tensor.layout is TensorLayout.NCHW else 3
    if shape[0] != 1:
        raise ShapeMismatchError(f"Batch size must be 1, got {shape[0]}")
    if shape[channel_axis] != 3 or tensor.channels != 3:
        raise ShapeMismatchError(f"Model requires 3 channels, got {shape[channel_axis]}")

    expected_length = int(np.prod(shape))
    if tensor.data.size != expected_length:
        raise ShapeMismatchError(
            f"Tensor data length {tensor.data.size} does not match shape "
            f"{list(shape)} ({expected_length} values)"
        )

    validation = TensorValidation()
    low, high = RANGE_LIMITS[tensor.normalization]
    data_min, data_max = array_min_max(tensor.data)

    if data_min < low or data_max > high:
        message = (
            f"Tensor values outside expected range [{low}, {high}] for "
            f"{tensor.normalization.value} normalization: "
            f"min={data_min:.3f}, max={data_max:.3f}"
        )
        logger.warning("Tensor range anomaly", style=model_config.style_id,
                       normalization=tensor.normalization.value,
                       data_range=(data_min, data_max))
        validation.warnings.append(message)

    if tensor.normalization is not model_config.normalization_scheme:
        validation.warnings.append(
            f"Tensor normalized with {tensor.normalization.value}, model declares "
            f"{model_config.normalization_scheme.value}"
        )

    return validation


def check_output_shape(dims: Sequence[int]) -> Tuple[int, int, int, TensorLayout]:
    """
    Read spatial size and channels from an output tensor shape.

    Returns:
        Tuple of (width, height, channels, layout)
    """
    dims = tuple(int(d) for d in dims)
    if len(dims) == 3:
        dims = (1,) + dims
    if len(dims) != 4:
        raise ShapeMismatchError(f"Output tensor must be 3D or 4D, got {list(dims)}")

    # Channel-first when the second axis looks like channels and the last does not
    if dims[1] in (1, 3, 4) and dims[3] not in (1, 3, 4):
        return dims[3], dims[2], dims[1], TensorLayout.NCHW
    return dims[2], dims[1], dims[3], TensorLayout.NHWC
