"""
Fallback Simulator

Deterministic, model-free approximations of the supported styles, used
when real inference is unavailable.
"""

import colorsys
import math

import cv2
import numpy as np
import structlog
from PIL import Image

from ..models.registry import TensorLayout
from ..preprocessing.image_processor import PreparedTensor, denormalize_pixels
from ..utils.errors import UnsupportedFallbackError
from .output_decoder import to_uint8

logger = structlog.get_logger()

BRUSH_STROKE_COUNT = 50
BRUSH_STROKE_ALPHA = 0.3
BRUSH_STROKE_SEED = 1889


class FallbackSimulator:
    """
    Produce stand-in images from a preprocessed tensor.

    Anime styles are rejected since they only have a meaningful result
    through the model. Names that match no known style pass through with
    an identity filter.
    """

    def __init__(self, seed: int = BRUSH_STROKE_SEED):
        self.seed = seed

    def simulate(self, tensor: PreparedTensor, style_name: str, with_alpha: bool = False) -> Image.Image:
        """
        Render a fallback image for a style.

        Args:
            tensor: Tensor produced by the preprocessor
            style_name: Display name of the style
            with_alpha: Return RGBA with a fully opaque alpha channel

        Raises:
            UnsupportedFallbackError: For anime styles
        """
        if 'anime' in style_name.lower():
            raise UnsupportedFallbackError(
                f"{style_name} requires its ONNX model; simulated fallback is not available"
            )

        pixels = self.recover_pixels(tensor).astype(np.float32)

        if 'Picasso' in style_name:
            pixels = self._picasso(pixels)
        elif 'Van Gogh' in style_name:
            pixels = self._van_gogh(pixels)
        elif 'Cyberpunk' in style_name:
            pixels = self._cyberpunk(pixels)

        result = to_uint8(pixels)

        if 'Van Gogh' in style_name:
            result = self._brush_strokes(result)

        logger.info("Fallback image rendered", style=style_name,
                    size=(result.shape[1], result.shape[0]))

        if with_alpha:
            alpha = np.full(result.shape[:2] + (1,), 255, dtype=np.uint8)
            result = np.concatenate([result, alpha], axis=2)
        return Image.fromarray(np.ascontiguousarray(result))

    def recover_pixels(self, tensor: PreparedTensor) -> np.ndarray:
        """Invert the tensor's normalization and layout into HWC uint8 pixels."""
        width = max(1, int(tensor.width))
        height = max(1, int(tensor.height))
        expected = width * height * 3

        data = np.asarray(tensor.data, dtype=np.float32).reshape(-1)
        if data.size != expected:
            logger.warning("Fallback tensor length mismatch, resizing buffer",
                           actual=int(data.size), expected=expected)
            if data.size == 0:
                data = np.zeros(expected, dtype=np.float32)
            else:
                data = np.resize(data, expected)

        if tensor.layout is TensorLayout.NCHW:
            array = data.reshape(3, height, width).transpose(1, 2, 0)
        else:
            array = data.reshape(height, width, 3)

        values = denormalize_pixels(array, tensor.normalization, tensor.mean, tensor.std)
        return to_uint8(values)

    def _picasso(self, pixels: np.ndarray) -> np.ndarray:
        # Contrast curve
        return np.where(
            pixels > 128,
            np.minimum(255.0, pixels * 1.4),
            np.maximum(0.0, pixels * 0.6)
        )

    def _van_gogh(self, pixels: np.ndarray) -> np.ndarray:
        height, width = pixels.shape[:2]
        r, g, b = (pixels[:, :, c] for c in range(3))

        x = np.arange(width, dtype=np.float32)[np.newaxis, :]
        y = np.arange(height, dtype=np.float32)[:, np.newaxis]
        wave_x = np.sin(x * 0.1) * 0.2
        wave_y = np.cos(y * 0.08) * 0.3
        intensity = (wave_x + wave_y) * 0.5 + 1.0

        # Warm shift toward yellow and orange
        r = np.minimum(255.0, r * (1.5 + intensity * 0.3))
        g = np.minimum(255.0, g * (1.4 + intensity * 0.2))
        b = np.maximum(0.0, b * (0.6 + intensity * 0.1))

        r = np.where(r > 128, np.minimum(255.0, r + 25), r)
        g = np.where(g > 128, np.minimum(255.0, g + 20), g)
        b = np.maximum(0.0, b - 40)

        bright = (r + g + b) / 3 > 150
        r = np.where(bright, np.minimum(255.0, r + 15), np.maximum(0.0, r - 20))
        g = np.where(bright, np.minimum(255.0, g + 10), np.maximum(0.0, g - 15))
        b = np.where(bright, b, np.maximum(0.0, b - 30))

        return np.stack([r, g, b], axis=2)

    def _cyberpunk(self, pixels: np.ndarray) -> np.ndarray:
        gains = np.array([1.5, 0.7, 1.8], dtype=np.float32)
        return np.clip(pixels * gains, 0.0, 255.0)

    def _brush_strokes(self, pixels: np.ndarray) -> np.ndarray:
        """Overlay-blend yellow-orange strokes at fixed positions."""
        height, width = pixels.shape[:2]
        rng = np.random.default_rng(self.seed)

        strokes = np.zeros_like(pixels)
        mask = np.zeros((height, width), dtype=np.uint8)

        for _ in range(BRUSH_STROKE_COUNT):
            x = rng.random() * width
            y = rng.random() * height
            length = 20 + rng.random() * 40
            angle = rng.random() * math.pi * 2
            hue = 45 + rng.random() * 30
            thickness = max(1, int(round(2 + rng.random() * 3)))

            red, green, blue = colorsys.hls_to_rgb(hue / 360.0, 0.6, 0.7)
            color = (int(round(red * 255)), int(round(green * 255)), int(round(blue * 255)))

            start = (int(round(x)), int(round(y)))
            end = (int(round(x + math.cos(angle) * length)),
                   int(round(y + math.sin(angle) * length)))

            cv2.line(strokes, start, end, color, thickness, cv2.LINE_8)
            cv2.line(mask, start, end, 255, thickness, cv2.LINE_8)

        base = pixels.astype(np.float32)
        blend = strokes.astype(np.float32)
        overlay = np.where(
            base < 128,
            2 * base * blend / 255.0,
            255.0 - 2 * (255.0 - base) * (255.0 - blend) / 255.0
        )
        mixed = base * (1 - BRUSH_STROKE_ALPHA) + overlay * BRUSH_STROKE_ALPHA

        covered = (mask > 0)[:, :, np.newaxis]
        return to_uint8(np.where(covered, mixed, base))
