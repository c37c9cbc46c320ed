"""Services package initialization."""

from .pipeline import StyleTransferPipeline

__all__ = ["StyleTransferPipeline"]
