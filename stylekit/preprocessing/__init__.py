"""Preprocessing package initialization."""

from .image_processor import ImageProcessor, PreparedTensor, PreprocessingConfig, create_image_processor

__all__ = ["ImageProcessor", "PreparedTensor", "PreprocessingConfig", "create_image_processor"]
