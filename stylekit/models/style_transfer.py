"""
Inference orchestration for style transfer models.

A transfer either runs the model (inference path) or, when validation,
loading or execution fails, renders a simulated image from the same
preprocessed tensor (fallback path).
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union

import numpy as np
import structlog
from PIL import Image

from ..postprocessing.fallback_simulator import FallbackSimulator
from ..postprocessing.output_decoder import OutputDecoder, decode_session_outputs
from ..preprocessing.image_processor import PreparedTensor
from ..utils.errors import (
    InferenceRuntimeError,
    MissingOutputError,
    StyleTransferError,
    UnsupportedFallbackError,
)
from ..utils.image_processing import ImageFormat, encode_image, image_to_data_url
from ..utils.monitoring import record_error, record_transfer
from .registry import ModelConfig
from .session_cache import SessionCache
from .utils import TensorSnapshot, validate_model_inputs

logger = structlog.get_logger()


class ProcessingPath(Enum):
    """Which path produced the result image."""
    INFERENCE = "inference"
    FALLBACK = "fallback"


@dataclass
class InferencePath:
    """Model ran and its output was decoded."""
    input_snapshot: TensorSnapshot
    output_snapshot: TensorSnapshot
    image: Image.Image


@dataclass
class FallbackPath:
    """Inference was not possible; carries the triggering error."""
    reason: str
    error: StyleTransferError


Outcome = Union[InferencePath, FallbackPath]


@dataclass
class InferenceResult:
    """Final image and diagnostics for one transfer."""
    image_bytes: bytes
    image_format: ImageFormat
    width: int
    height: int
    processing_time: float
    path: ProcessingPath
    style_id: str
    status_message: str
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    input_tensor: Optional[TensorSnapshot] = None
    output_tensor: Optional[TensorSnapshot] = None

    @property
    def used_fallback(self) -> bool:
        return self.path is ProcessingPath.FALLBACK

    @property
    def onnx_status(self) -> str:
        return "connected" if self.path is ProcessingPath.INFERENCE else "failed"

    @property
    def data_url(self) -> str:
        return image_to_data_url(self.image_bytes, self.image_format)


class InferenceOrchestrator:
    """
    Runs a prepared tensor through its model, degrading to the fallback
    simulator on any inference-path failure.
    """

    def __init__(
        self,
        session_cache: SessionCache,
        decoder: Optional[OutputDecoder] = None,
        simulator: Optional[FallbackSimulator] = None,
        output_format: ImageFormat = ImageFormat.PNG,
        quality: int = 92,
        enable_metrics: Optional[bool] = None
    ):
        self.session_cache = session_cache
        self.decoder = decoder or OutputDecoder()
        self.simulator = simulator or FallbackSimulator()
        self.output_format = output_format
        self.quality = quality
        self.enable_metrics = enable_metrics

    async def run(
        self,
        tensor: PreparedTensor,
        model_config: ModelConfig,
        start_time: Optional[float] = None
    ) -> InferenceResult:
        """
        Produce a result image for a tensor.

        Args:
            tensor: Preprocessed input
            model_config: Target model
            start_time: perf_counter() value the elapsed time is measured from

        Returns:
            InferenceResult tagged with the path taken

        Raises:
            UnsupportedFallbackError: If inference failed for a style
                without a simulated fallback
        """
        start_time = time.perf_counter() if start_time is None else start_time
        with_alpha = self.output_format.supports_alpha
        warnings: List[str] = []

        outcome = await self.attempt(tensor, model_config, warnings, with_alpha)

        if isinstance(outcome, InferencePath):
            image = outcome.image
            path = ProcessingPath.INFERENCE
            status_message = f"{model_config.name} applied with ONNX inference"
            error = None
            input_tensor, output_tensor = outcome.input_snapshot, outcome.output_snapshot
        else:
            logger.warning("Inference unavailable, using fallback",
                           style=model_config.style_id,
                           model=model_config.filename,
                           error_type=type(outcome.error).__name__,
                           reason=outcome.reason)
            try:
                image = self.simulator.simulate(tensor, model_config.name, with_alpha)
            except UnsupportedFallbackError as e:
                record_transfer(model_config.style_id, "failed", time.perf_counter() - start_time,
                                self.enable_metrics)
                raise UnsupportedFallbackError(f"{e}. Inference failed: {outcome.reason}") from outcome.error

            path = ProcessingPath.FALLBACK
            status_message = f"{model_config.name} simulated after inference failure"
            error = outcome.reason
            input_tensor = output_tensor = None

        image_bytes = encode_image(image, self.output_format, self.quality)
        processing_time = time.perf_counter() - start_time
        record_transfer(model_config.style_id, path.value, processing_time, self.enable_metrics)

        logger.info("Style transfer completed",
                    style=model_config.style_id,
                    path=path.value,
                    size=image.size,
                    duration=processing_time)

        return InferenceResult(
            image_bytes=image_bytes,
            image_format=self.output_format,
            width=image.width,
            height=image.height,
            processing_time=processing_time,
            path=path,
            style_id=model_config.style_id,
            status_message=status_message,
            error=error,
            warnings=warnings,
            input_tensor=input_tensor,
            output_tensor=output_tensor,
        )

    async def attempt(
        self,
        tensor: PreparedTensor,
        model_config: ModelConfig,
        warnings: Optional[List[str]] = None,
        with_alpha: bool = False
    ) -> Outcome:
        """Try the inference path, returning the failure instead of raising it."""
        try:
            validation = validate_model_inputs(tensor, model_config)
            if warnings is not None:
                warnings.extend(validation.warnings)

            session = await self.session_cache.get(model_config.filename)
            input_array = tensor.as_array()
            output = await self._invoke(session, input_array, model_config)
            decoded = self.decoder.decode(output, model_config, with_alpha)
        except StyleTransferError as e:
            record_error(e, 'orchestrator', self.enable_metrics)
            return FallbackPath(reason=str(e), error=e)

        return InferencePath(
            input_snapshot=TensorSnapshot.from_array(input_array),
            output_snapshot=TensorSnapshot.from_array(output),
            image=decoded.image,
        )

    async def _invoke(self, session: Any, input_array: np.ndarray, model_config: ModelConfig) -> np.ndarray:
        """Run the session with the tensor bound to its first declared input."""
        try:
            inputs = session.get_inputs()
            outputs = session.get_outputs()
        except Exception as e:
            raise InferenceRuntimeError(f"Cannot inspect session for {model_config.filename}: {e}") from e

        if not inputs:
            raise InferenceRuntimeError(f"Model {model_config.filename} declares no inputs")
        if not outputs:
            raise MissingOutputError(f"Model {model_config.filename} declares no outputs")

        input_name = inputs[0].name
        output_name = outputs[0].name

        loop = asyncio.get_running_loop()
        try:
            results = await loop.run_in_executor(
                None, session.run, [output_name], {input_name: input_array}
            )
        except Exception as e:
            raise InferenceRuntimeError(f"Inference failed for {model_config.filename}: {e}") from e

        logger.debug("Inference finished", model=model_config.filename,
                     input_name=input_name, output_name=output_name)
        return decode_session_outputs(results)
