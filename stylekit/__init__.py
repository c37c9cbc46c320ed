"""
stylekit

Neural style transfer inference pipeline for ONNX style models.

Features:
- Model registry with per-style input shapes and normalization
- Exact-size preprocessing with aspect-ratio preserving padding
- Session cache with single in-flight load per model file
- Deterministic simulated fallback when inference is unavailable
- Structured logging and Prometheus metrics
"""

from .models.registry import ModelConfig, get_all_model_configs, get_model_config
from .models.style_transfer import InferenceResult, ProcessingPath
from .preprocessing.image_processor import PreprocessingConfig, PreparedTensor
from .services.pipeline import StyleTransferPipeline

__version__ = "0.1.0"
__author__ = "Style Transfer Team"

__all__ = [
    "StyleTransferPipeline",
    "InferenceResult",
    "ProcessingPath",
    "ModelConfig",
    "PreprocessingConfig",
    "PreparedTensor",
    "get_model_config",
    "get_all_model_configs"
]
