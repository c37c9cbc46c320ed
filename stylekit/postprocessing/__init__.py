"""Postprocessing package initialization."""

from .output_decoder import OutputDecoder, decode_session_outputs
from .fallback_simulator import FallbackSimulator

__all__ = ["OutputDecoder", "decode_session_outputs", "FallbackSimulator"]
