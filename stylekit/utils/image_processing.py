"""
Raster encoding utilities for pipeline results.
"""

import base64
import io
from enum import Enum

import structlog
from PIL import Image

logger = structlog.get_logger()


class ImageFormat(Enum):
    """Supported output formats."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def supports_alpha(self) -> bool:
        return self is not ImageFormat.JPEG


def encode_image(
    image: Image.Image,
    output_format: ImageFormat = ImageFormat.PNG,
    quality: int = 92
) -> bytes:
    """
    Encode an image for output.

    Args:
        image: PIL image in RGB or RGBA mode
        output_format: Desired output format
        quality: Encoder quality for lossy formats

    Returns:
        Encoded image bytes
    """
    # JPEG has no alpha channel
    if not output_format.supports_alpha and image.mode != 'RGB':
        image = image.convert('RGB')

    save_kwargs = {}

    if output_format == ImageFormat.JPEG:
        save_kwargs.update({
            'format': 'JPEG',
            'quality': quality,
            'optimize': True
        })
    elif output_format == ImageFormat.PNG:
        save_kwargs.update({
            'format': 'PNG',
            'optimize': True
        })
    elif output_format == ImageFormat.WEBP:
        save_kwargs.update({
            'format': 'WEBP',
            'quality': quality,
            'method': 6  # Best compression
        })

    with io.BytesIO() as output_buffer:
        image.save(output_buffer, **save_kwargs)
        image_bytes = output_buffer.getvalue()

    logger.debug("Encoded image", size=len(image_bytes), format=output_format.value)
    return image_bytes


def image_to_data_url(image_bytes: bytes, output_format: ImageFormat = ImageFormat.PNG) -> str:
    """Wrap encoded image bytes in a base64 data URL."""
    encoded = base64.b64encode(image_bytes).decode('ascii')
    return f"data:{output_format.mime_type};base64,{encoded}"
