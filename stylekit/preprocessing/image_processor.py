"""
Image Processing Pipeline

Turns an arbitrary source image into a model-exact float32 tensor:
decoding with EXIF orientation correction, aspect-ratio aware resizing,
centered padding, normalization and NHWC/NCHW layout.
"""

import io
import math
from dataclasses import dataclass, replace
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from ..models.registry import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    ModelConfig,
    NormalizationScheme,
    TensorLayout,
    normalization_scheme_for,
)
from ..utils.errors import DecodeError, RenderSurfaceError

logger = structlog.get_logger()

DEFAULT_SIZE = 256

INTERPOLATION_FLAGS = {
    'nearest': cv2.INTER_NEAREST,
    'bilinear': cv2.INTER_LINEAR,
    'bicubic': cv2.INTER_CUBIC,
}

# Container formats reported by Pillow that map onto a listed extension
FORMAT_ALIASES = {
    'jpg': 'jpeg',
    'mpo': 'jpeg',
    'tif': 'tiff',
}

ImageSource = Union[bytes, bytearray, memoryview, str, PathLike, Image.Image, np.ndarray]


@dataclass(frozen=True)
class PreprocessingConfig:
    """Per-request preprocessing options."""
    target_width: int = DEFAULT_SIZE
    target_height: int = DEFAULT_SIZE
    maintain_aspect_ratio: bool = True
    padding: bool = False
    padding_color: Tuple[int, int, int] = (0, 0, 0)
    interpolation: str = 'bilinear'
    normalize: bool = True
    mean: Optional[Tuple[float, float, float]] = None
    std: Optional[Tuple[float, float, float]] = None
    layout: TensorLayout = TensorLayout.NHWC

    def __post_init__(self):
        if self.target_width <= 0 or self.target_height <= 0:
            raise ValueError(
                f"Target size must be positive, got {self.target_width}x{self.target_height}"
            )
        if self.interpolation not in INTERPOLATION_FLAGS:
            raise ValueError(
                f"Unsupported interpolation: {self.interpolation}. "
                f"Available: {list(INTERPOLATION_FLAGS)}"
            )
        if len(self.padding_color) != 3 or any(not 0 <= c <= 255 for c in self.padding_color):
            raise ValueError(f"Padding color must be an RGB triple in 0-255, got {self.padding_color}")
        if isinstance(self.layout, str):
            object.__setattr__(self, 'layout', TensorLayout(self.layout.lower()))
        for name in ('mean', 'std'):
            value = getattr(self, name)
            if value is not None:
                if len(value) != 3:
                    raise ValueError(f"{name} must have one value per channel, got {value}")
                object.__setattr__(self, name, tuple(float(v) for v in value))
        if self.std is not None and any(s <= 0 for s in self.std):
            raise ValueError(f"Std values must be positive, got {self.std}")
        object.__setattr__(self, 'padding_color', tuple(int(c) for c in self.padding_color))

    @property
    def resolved_mean(self) -> Tuple[float, float, float]:
        return self.mean if self.mean is not None else IMAGENET_MEAN

    @property
    def resolved_std(self) -> Tuple[float, float, float]:
        return self.std if self.std is not None else IMAGENET_STD

    @classmethod
    def for_model(cls, model_config: ModelConfig, **overrides: Any) -> 'PreprocessingConfig':
        """
        Build the optimal options for a model, then apply caller overrides.

        Anime models keep the aspect ratio and pad to the target with black,
        using bicubic resampling. Every other model is force-resized with
        bilinear resampling.
        """
        width, height = model_config.target_size

        if model_config.is_anime:
            base = cls(
                target_width=width,
                target_height=height,
                maintain_aspect_ratio=True,
                padding=True,
                padding_color=(0, 0, 0),
                interpolation='bicubic',
                mean=model_config.mean,
                std=model_config.std,
                layout=model_config.layout,
            )
        else:
            base = cls(
                target_width=width,
                target_height=height,
                maintain_aspect_ratio=False,
                padding=False,
                interpolation='bilinear',
                mean=model_config.mean,
                std=model_config.std,
                layout=model_config.layout,
            )

        if overrides:
            base = replace(base, **overrides)
        return base


@dataclass
class PreparedTensor:
    """Flat float32 tensor plus the metadata needed to interpret and invert it."""
    data: np.ndarray
    width: int
    height: int
    shape: Tuple[int, ...]
    layout: TensorLayout
    normalization: NormalizationScheme
    mean: Tuple[float, float, float]
    std: Tuple[float, float, float]
    data_range: Tuple[float, float]
    channels: int = 3

    def as_array(self) -> np.ndarray:
        """Reshape the flat buffer to the declared shape."""
        return self.data.reshape(self.shape)

    def to_pixels(self) -> np.ndarray:
        """Recover HWC uint8 pixels by inverting the recorded normalization."""
        array = self.as_array()[0]
        if self.layout is TensorLayout.NCHW:
            array = array.transpose(1, 2, 0)
        values = denormalize_pixels(array, self.normalization, self.mean, self.std)
        return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fit_dimensions(
    source_width: int,
    source_height: int,
    target_width: int,
    target_height: int,
    maintain_aspect_ratio: bool = True
) -> Tuple[int, int]:
    """
    Compute intermediate resize dimensions.

    With aspect ratio preservation the image is scaled to fit inside the
    target box (never exceeding either side); otherwise the target size
    is returned unchanged.
    """
    if not maintain_aspect_ratio:
        return target_width, target_height

    aspect_ratio = source_width / source_height
    target_aspect_ratio = target_width / target_height

    width, height = target_width, target_height
    if aspect_ratio > target_aspect_ratio:
        # Wider than target, fit to width
        height = round_half_up(target_width / aspect_ratio)
    else:
        # Taller than target, fit to height
        width = round_half_up(target_height * aspect_ratio)

    return max(1, min(width, target_width)), max(1, min(height, target_height))


def normalize_pixels(
    pixels: np.ndarray,
    mean: Sequence[float] = IMAGENET_MEAN,
    std: Sequence[float] = IMAGENET_STD,
    normalize: bool = True
) -> Tuple[np.ndarray, NormalizationScheme]:
    """
    Map HWC 0-255 samples to model range.

    Returns:
        Tuple of (float32 HWC array, scheme applied)
    """
    scheme = normalization_scheme_for(mean, std, normalize)
    values = pixels.astype(np.float32) / np.float32(255.0)

    if scheme is NormalizationScheme.SYMMETRIC:
        values = values * np.float32(2.0) - np.float32(1.0)
    elif scheme is NormalizationScheme.CHANNEL_STATS:
        values = (values - np.asarray(mean, dtype=np.float32)) / np.asarray(std, dtype=np.float32)

    return values.astype(np.float32, copy=False), scheme


def denormalize_pixels(
    values: np.ndarray,
    scheme: NormalizationScheme,
    mean: Sequence[float] = IMAGENET_MEAN,
    std: Sequence[float] = IMAGENET_STD
) -> np.ndarray:
    """Exact inverse of normalize_pixels, returning unclamped 0-255 floats (HWC)."""
    values = np.asarray(values, dtype=np.float32)

    if scheme is NormalizationScheme.SYMMETRIC:
        unit = (values + np.float32(1.0)) / np.float32(2.0)
    elif scheme is NormalizationScheme.CHANNEL_STATS:
        unit = values * np.asarray(std, dtype=np.float32) + np.asarray(mean, dtype=np.float32)
    else:
        unit = values

    return unit * np.float32(255.0)


class ImageProcessor:
    """
    Preprocessor producing model-exact tensors.

    Every tensor it returns has spatial dimensions equal to the configured
    target size, whatever the source aspect ratio or resize policy.
    """

    def __init__(
        self,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        supported_formats: Optional[List[str]] = None
    ):
        self.max_file_size = max_file_size
        self.supported_formats = [
            fmt.lower() for fmt in (supported_formats or ['jpg', 'jpeg', 'png', 'webp', 'bmp'])
        ]

    def validate_image_data(self, image_data: bytes) -> Dict[str, Any]:
        """
        Validate encoded image bytes and return metadata.

        Args:
            image_data: Raw image bytes

        Returns:
            Dictionary with validation results and metadata
        """
        if len(image_data) == 0:
            return {"valid": False, "error": "Empty image data", "format": None,
                    "size": None, "file_size": 0}

        if len(image_data) > self.max_file_size:
            return {"valid": False,
                    "error": f"Image too large: {len(image_data)} bytes (maximum {self.max_file_size})",
                    "format": None, "size": None, "file_size": len(image_data)}

        try:
            with Image.open(io.BytesIO(image_data)) as img:
                img.verify()
                format_name = (img.format or "").lower()
                return {
                    "valid": True,
                    "format": FORMAT_ALIASES.get(format_name, format_name),
                    "size": img.size,
                    "mode": img.mode,
                    "file_size": len(image_data),
                    "has_transparency": img.mode in ('RGBA', 'LA') or 'transparency' in img.info
                }
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError,
                Image.DecompressionBombError) as e:
            return {"valid": False, "error": f"Invalid image data: {e}", "format": None,
                    "size": None, "file_size": len(image_data)}

    def load_image(
        self,
        source: ImageSource,
        supported_formats: Optional[Sequence[str]] = None
    ) -> Image.Image:
        """
        Decode a source into an orientation-corrected RGB image.

        Args:
            source: Encoded bytes, file path, PIL image or uint8 array
            supported_formats: Accepted container formats (defaults to the processor's)

        Returns:
            RGB PIL image
        """
        if isinstance(source, Image.Image):
            image = source
        elif isinstance(source, np.ndarray):
            image = self._image_from_array(source)
        else:
            image_data = self._read_source(source)
            image = self._decode_bytes(image_data, supported_formats)

        if image.width == 0 or image.height == 0:
            raise DecodeError(f"Image has no pixels: {image.width}x{image.height}")

        if image.mode != 'RGB':
            try:
                # Alpha is discarded, not composited
                image = image.convert('RGB')
            except (OSError, ValueError) as e:
                raise DecodeError(f"Cannot convert {image.mode} image to RGB: {e}") from e

        return image

    def _read_source(self, source: ImageSource) -> bytes:
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)

        if isinstance(source, (str, PathLike)):
            path = Path(source)
            try:
                if path.stat().st_size > self.max_file_size:
                    raise DecodeError(f"File too large: {path.stat().st_size} bytes")
                return path.read_bytes()
            except OSError as e:
                raise DecodeError(f"Failed to read image file {path}: {e}") from e

        raise DecodeError(f"Unsupported image source type: {type(source).__name__}")

    def _decode_bytes(
        self,
        image_data: bytes,
        supported_formats: Optional[Sequence[str]]
    ) -> Image.Image:
        if len(image_data) == 0:
            raise DecodeError("Empty image data")

        if len(image_data) > self.max_file_size:
            raise DecodeError(f"Image too large: {len(image_data)} bytes")

        allowed = {
            FORMAT_ALIASES.get(fmt.lower(), fmt.lower())
            for fmt in (supported_formats or self.supported_formats)
        }

        try:
            with Image.open(io.BytesIO(image_data)) as img:
                format_name = (img.format or "").lower()
                format_name = FORMAT_ALIASES.get(format_name, format_name)
                if format_name and format_name not in allowed:
                    raise DecodeError(
                        f"Unsupported format: {format_name}. Supported: {sorted(allowed)}"
                    )
                img.load()
                image = ImageOps.exif_transpose(img)
        except DecodeError:
            raise
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError,
                Image.DecompressionBombError) as e:
            logger.error("Image decoding failed", error=str(e))
            raise DecodeError(f"Invalid image: {e}") from e

        logger.debug("Image decoded", size=image.size, mode=image.mode, format=format_name)
        return image

    def _image_from_array(self, array: np.ndarray) -> Image.Image:
        if array.dtype != np.uint8:
            raise DecodeError(f"Pixel arrays must be uint8, got {array.dtype}")
        if array.ndim == 2 or (array.ndim == 3 and array.shape[2] in (3, 4)):
            return Image.fromarray(array)
        raise DecodeError(f"Unsupported pixel array shape: {array.shape}")

    def preprocess(
        self,
        source: ImageSource,
        config: Optional[PreprocessingConfig] = None,
        supported_formats: Optional[Sequence[str]] = None
    ) -> PreparedTensor:
        """
        Preprocess a source image into a tensor of exactly the target size.

        Args:
            source: Encoded bytes, file path, PIL image or uint8 array
            config: Preprocessing options
            supported_formats: Accepted container formats for encoded sources

        Returns:
            PreparedTensor with shape [1, H, W, 3] or [1, 3, H, W]
        """
        config = config or PreprocessingConfig()
        image = self.load_image(source, supported_formats)
        pixels = np.array(image, dtype=np.uint8)

        source_height, source_width = pixels.shape[:2]
        target_width, target_height = config.target_width, config.target_height

        width, height = fit_dimensions(
            source_width, source_height,
            target_width, target_height,
            config.maintain_aspect_ratio
        )

        surface = self._resize(pixels, width, height, config.interpolation)

        if config.padding:
            surface = self._pad(surface, target_width, target_height, config.padding_color)

        if surface.shape[:2] != (target_height, target_width):
            # Aspect-preserving resize without padding lands here
            logger.warning("Surface size mismatch, forcing resize",
                           actual=(surface.shape[1], surface.shape[0]),
                           target=(target_width, target_height))
            surface = self._resize(surface, target_width, target_height, 'bicubic')

        tensor = self._to_tensor(surface, config)

        logger.info("Image preprocessed",
                    source_size=(source_width, source_height),
                    intermediate_size=(width, height),
                    tensor_shape=tensor.shape,
                    normalization=tensor.normalization.value,
                    data_range=tensor.data_range)
        return tensor

    def _resize(self, pixels: np.ndarray, width: int, height: int, interpolation: str) -> np.ndarray:
        """Resample an HWC surface."""
        if pixels.shape[1] == width and pixels.shape[0] == height:
            return pixels

        try:
            resized = cv2.resize(
                np.ascontiguousarray(pixels),
                (width, height),
                interpolation=INTERPOLATION_FLAGS[interpolation]
            )
        except cv2.error as e:
            raise RenderSurfaceError(f"Failed to resize surface to {width}x{height}: {e}") from e

        # cv2 drops the channel axis for single-channel input
        if resized.ndim == 2:
            resized = resized[:, :, np.newaxis]
        return resized

    def _pad(
        self,
        pixels: np.ndarray,
        target_width: int,
        target_height: int,
        color: Tuple[int, int, int]
    ) -> np.ndarray:
        """Center the surface on a target-sized canvas filled with color."""
        height, width = pixels.shape[:2]
        pad_w = target_width - width
        pad_h = target_height - height

        if pad_w < 0 or pad_h < 0:
            logger.warning("Surface larger than padding canvas",
                           size=(width, height), target=(target_width, target_height))
            return pixels
        if pad_w == 0 and pad_h == 0:
            return pixels

        # Center padding
        top = pad_h // 2
        bottom = pad_h - top
        left = pad_w // 2
        right = pad_w - left

        try:
            return cv2.copyMakeBorder(
                np.ascontiguousarray(pixels), top, bottom, left, right,
                cv2.BORDER_CONSTANT, value=list(color)
            )
        except cv2.error as e:
            raise RenderSurfaceError(f"Failed to pad surface: {e}") from e

    def _to_tensor(self, surface: np.ndarray, config: PreprocessingConfig) -> PreparedTensor:
        """Normalize and lay out an HWC uint8 surface."""
        height, width = surface.shape[:2]
        rgb = surface[:, :, :3]

        values, scheme = normalize_pixels(
            rgb, config.resolved_mean, config.resolved_std, config.normalize
        )

        if scheme is NormalizationScheme.IDENTITY:
            mean, std = (0.0, 0.0, 0.0), (1.0, 1.0, 1.0)
        else:
            mean, std = config.resolved_mean, config.resolved_std

        if config.layout is TensorLayout.NCHW:
            values = values.transpose(2, 0, 1)
            shape = (1, 3, height, width)
        else:
            shape = (1, height, width, 3)

        data = np.ascontiguousarray(values, dtype=np.float32).reshape(-1)
        data_range = (float(data.min()), float(data.max())) if data.size else (0.0, 0.0)

        return PreparedTensor(
            data=data,
            width=width,
            height=height,
            shape=shape,
            layout=config.layout,
            normalization=scheme,
            mean=tuple(mean),
            std=tuple(std),
            data_range=data_range,
        )


# Factory function
def create_image_processor(config: dict = None) -> ImageProcessor:
    """Create ImageProcessor with optional configuration."""

    config = config or {}
    return ImageProcessor(**config)
