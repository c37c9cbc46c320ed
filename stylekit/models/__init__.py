"""Model package initialization."""

from .registry import (
    STYLE_MODELS,
    ModelConfig,
    NormalizationScheme,
    TensorLayout,
    get_all_model_configs,
    get_model_config,
    validate_image_for_model
)
from .session_cache import OnnxSessionLoader, SessionCache
from .utils import TensorSnapshot, validate_model_inputs

__all__ = [
    "STYLE_MODELS",
    "ModelConfig",
    "NormalizationScheme",
    "TensorLayout",
    "get_all_model_configs",
    "get_model_config",
    "validate_image_for_model",
    "OnnxSessionLoader",
    "SessionCache",
    "TensorSnapshot",
    "validate_model_inputs"
]
