"""
Model registry.

Static mapping from style identifier to the metadata of the ONNX model
that implements it: expected input tensor shape, normalization
parameters and accepted source formats.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

# ImageNet normalization constants
IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)

# Maps 0..1 to -1..1
SYMMETRIC_MEAN = (0.5, 0.5, 0.5)
SYMMETRIC_STD = (0.5, 0.5, 0.5)

DEFAULT_FORMATS = ("jpg", "jpeg", "png", "webp")


class TensorLayout(Enum):
    """Tensor memory layout."""
    NHWC = "nhwc"
    NCHW = "nchw"


class NormalizationScheme(Enum):
    """Formula used to map 0-255 samples into model range."""
    SYMMETRIC = "symmetric"
    CHANNEL_STATS = "channel_stats"
    IDENTITY = "identity"


def normalization_scheme_for(
    mean: Sequence[float],
    std: Sequence[float],
    normalize: bool = True
) -> NormalizationScheme:
    """Classify a mean/std pair."""
    if not normalize:
        return NormalizationScheme.IDENTITY
    if np.allclose(mean, SYMMETRIC_MEAN) and np.allclose(std, SYMMETRIC_STD):
        return NormalizationScheme.SYMMETRIC
    return NormalizationScheme.CHANNEL_STATS


@dataclass(frozen=True)
class ModelConfig:
    """Metadata for one style model."""
    style_id: str
    name: str
    filename: str
    description: str
    input_shape: Tuple[int, int, int, int]
    mean: Tuple[float, float, float] = IMAGENET_MEAN
    std: Tuple[float, float, float] = IMAGENET_STD
    supported_formats: Tuple[str, ...] = DEFAULT_FORMATS
    max_input_size: int = 512

    def __post_init__(self):
        if len(self.input_shape) != 4:
            raise ValueError(f"Input shape must be 4D, got {self.input_shape}")
        if self.input_shape[0] != 1:
            raise ValueError(f"Batch size must be 1, got {self.input_shape[0]}")
        if 3 not in (self.input_shape[1], self.input_shape[3]):
            raise ValueError(f"Input shape must have 3 channels, got {self.input_shape}")
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError("Mean and std must have one value per channel")
        if any(s <= 0 for s in self.std):
            raise ValueError(f"Std values must be positive, got {self.std}")

    @property
    def layout(self) -> TensorLayout:
        # [1, 3, H, W] is channel-first, everything else channel-last
        if self.input_shape[1] == 3:
            return TensorLayout.NCHW
        return TensorLayout.NHWC

    @property
    def target_size(self) -> Tuple[int, int]:
        """(width, height) the model expects."""
        if self.layout is TensorLayout.NCHW:
            _, _, height, width = self.input_shape
        else:
            _, height, width, _ = self.input_shape
        return width, height

    @property
    def normalization_scheme(self) -> NormalizationScheme:
        return normalization_scheme_for(self.mean, self.std)

    @property
    def is_anime(self) -> bool:
        return "anime" in self.name.lower()


STYLE_MODELS: Dict[str, ModelConfig] = {
    "anime": ModelConfig(
        style_id="anime",
        name="Anime (Ghibli Style)",
        filename="AnimeGANv3_Hayao_36.onnx",
        description="Transforms images into Studio Ghibli anime style using the Hayao model",
        input_shape=(1, 512, 512, 3),
        mean=SYMMETRIC_MEAN,
        std=SYMMETRIC_STD,
    ),
    "anime-shinkai": ModelConfig(
        style_id="anime-shinkai",
        name="Anime (Shinkai Style)",
        filename="AnimeGANv3_Shinkai_37.onnx",
        description="Transforms images into Makoto Shinkai anime style",
        input_shape=(1, 512, 512, 3),
        mean=SYMMETRIC_MEAN,
        std=SYMMETRIC_STD,
    ),
    "picasso": ModelConfig(
        style_id="picasso",
        name="Picasso",
        filename="picasso.onnx",
        description="Applies Picasso's cubist painting style",
        input_shape=(1, 3, 224, 224),
    ),
    "van-gogh": ModelConfig(
        style_id="van-gogh",
        name="Van Gogh",
        filename="vangogh.onnx",
        description="Transforms images into Van Gogh's post-impressionist style",
        input_shape=(1, 512, 512, 3),
    ),
    "cyberpunk": ModelConfig(
        style_id="cyberpunk",
        name="Cyberpunk",
        filename="cyberpunk.onnx",
        description="Applies futuristic cyberpunk aesthetic",
        input_shape=(1, 512, 512, 3),
    ),
}


def get_model_config(style_id: str) -> Optional[ModelConfig]:
    """Get the configuration for a specific style, or None."""
    return STYLE_MODELS.get(style_id)


def get_all_model_configs() -> List[ModelConfig]:
    """Get all available model configurations."""
    return list(STYLE_MODELS.values())


@dataclass
class ImageCompatibility:
    """Outcome of checking a source image against a model."""
    is_valid: bool
    error: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def validate_image_for_model(
    width: int,
    height: int,
    channels: int,
    model_config: ModelConfig
) -> ImageCompatibility:
    """
    Check whether a source image is compatible with a model.

    Only a channel count other than 3 makes the image invalid; size
    related findings are returned as suggestions since the preprocessor
    resizes every image to the model's exact input size.
    """
    if channels != 3:
        return ImageCompatibility(
            is_valid=False,
            error=f"Model requires 3 channels (RGB), got {channels}",
            suggestions=["Convert image to RGB format"]
        )

    suggestions = []
    target_width, target_height = model_config.target_size
    max_size = model_config.max_input_size

    if width > max_size or height > max_size:
        suggestions.append(f"Resize image to {max_size}x{max_size} or smaller")

    if width != target_width or height != target_height:
        suggestions.append(f"Resize image to {target_width}x{target_height} for optimal results")

    if not _is_power_of_two(width) or not _is_power_of_two(height):
        suggestions.append("Consider using dimensions that are powers of 2 (e.g., 256, 512)")

    return ImageCompatibility(is_valid=True, suggestions=suggestions)
