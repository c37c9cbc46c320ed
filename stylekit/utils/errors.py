"""
Error kinds raised by the style transfer pipeline.

Only DecodeError, RenderSurfaceError, UnknownStyleError and
UnsupportedFallbackError reach the caller of a transfer. The remaining
kinds are raised on the inference path and turned into a fallback result.
"""


class StyleTransferError(Exception):
    """Base class for all pipeline errors."""
    pass


class DecodeError(StyleTransferError):
    """Source image is unreadable, empty, too large or of an unsupported format."""
    pass


class RenderSurfaceError(StyleTransferError):
    """A working pixel surface could not be created, resampled or padded."""
    pass


class UnknownStyleError(StyleTransferError):
    """Style identifier is not present in the model registry."""
    pass


class ShapeMismatchError(StyleTransferError):
    """Prepared tensor does not satisfy the model's input contract."""
    pass


class ModelLoadError(StyleTransferError):
    """Model file is missing or could not be turned into a session."""
    pass


class InferenceRuntimeError(StyleTransferError):
    """Model execution failed."""
    pass


class MissingOutputError(StyleTransferError):
    """Session ran successfully but produced no outputs."""
    pass


class UnsupportedFallbackError(StyleTransferError):
    """Style cannot be simulated and inference did not succeed."""
    pass
