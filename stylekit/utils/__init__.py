"""Utils package initialization."""

from .config import get_settings, reload_settings, validate_config, AppSettings
from .errors import (
    StyleTransferError,
    DecodeError,
    RenderSurfaceError,
    UnknownStyleError,
    ShapeMismatchError,
    ModelLoadError,
    InferenceRuntimeError,
    MissingOutputError,
    UnsupportedFallbackError
)
from .image_processing import ImageFormat, encode_image, image_to_data_url
from .monitoring import setup_logging, start_metrics_server, MetricsContext

__all__ = [
    "get_settings",
    "reload_settings",
    "validate_config",
    "AppSettings",
    "StyleTransferError",
    "DecodeError",
    "RenderSurfaceError",
    "UnknownStyleError",
    "ShapeMismatchError",
    "ModelLoadError",
    "InferenceRuntimeError",
    "MissingOutputError",
    "UnsupportedFallbackError",
    "ImageFormat",
    "encode_image",
    "image_to_data_url",
    "setup_logging",
    "start_metrics_server",
    "MetricsContext"
]
