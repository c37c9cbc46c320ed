"""
Style Transfer Pipeline

Explicit pipeline context tying together the registry, preprocessor,
session cache and inference orchestrator. Each pipeline owns its own
session cache; independent pipelines share no state.
"""

import time
from dataclasses import fields
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from ..models.registry import STYLE_MODELS, ModelConfig
from ..models.session_cache import OnnxSessionLoader, SessionCache
from ..models.style_transfer import InferenceOrchestrator, InferenceResult
from ..preprocessing.image_processor import (
    ImageProcessor,
    ImageSource,
    PreparedTensor,
    PreprocessingConfig,
)
from ..utils.config import AppSettings, get_settings
from ..utils.errors import UnknownStyleError
from ..utils.image_processing import ImageFormat
from ..utils.monitoring import MetricsContext

logger = structlog.get_logger()

PREPROCESSING_FIELDS = frozenset(f.name for f in fields(PreprocessingConfig))

PreprocessingOptions = Union[PreprocessingConfig, Mapping[str, Any]]


class StyleTransferPipeline:
    """
    Entry point for style transfer requests.

    Decode, render-surface, unknown-style and unsupported-fallback errors
    reach the caller; every other failure yields a fallback result.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        session_cache: Optional[SessionCache] = None,
        processor: Optional[ImageProcessor] = None,
        registry: Optional[Mapping[str, ModelConfig]] = None
    ):
        self.settings = settings or get_settings()
        self.registry: Dict[str, ModelConfig] = dict(registry if registry is not None else STYLE_MODELS)

        enable_metrics = self.settings.monitoring.enable_metrics

        if session_cache is None:
            session_cache = SessionCache(
                self.settings.model.models_dir,
                OnnxSessionLoader(self.settings.model, enable_metrics=enable_metrics),
                enable_metrics=enable_metrics
            )
        self.session_cache = session_cache

        self.processor = processor if processor is not None else ImageProcessor(
            max_file_size=self.settings.processing.max_file_size,
            supported_formats=self.settings.processing.supported_formats
        )
        self.orchestrator = InferenceOrchestrator(
            self.session_cache,
            output_format=ImageFormat(self.settings.processing.output_format),
            quality=self.settings.processing.jpeg_quality,
            enable_metrics=enable_metrics
        )

        logger.info("Style transfer pipeline initialized",
                    models_dir=str(self.session_cache.models_dir),
                    styles=list(self.registry))

    def available_styles(self) -> List[ModelConfig]:
        return list(self.registry.values())

    def resolve_style(self, style: Union[str, ModelConfig]) -> ModelConfig:
        """
        Look up a style by identifier.

        Raises:
            UnknownStyleError: If the identifier is not registered
        """
        if isinstance(style, ModelConfig):
            return style

        model_config = self.registry.get(style)
        if model_config is None:
            raise UnknownStyleError(
                f"Unknown style '{style}'. Available: {sorted(self.registry)}"
            )
        return model_config

    def preprocessing_config(
        self,
        model_config: ModelConfig,
        options: Optional[PreprocessingOptions] = None
    ) -> PreprocessingConfig:
        """Model-optimal preprocessing options with caller overrides applied."""
        if isinstance(options, PreprocessingConfig):
            return options

        overrides = dict(options or {})
        unknown = set(overrides) - PREPROCESSING_FIELDS
        if unknown:
            raise ValueError(f"Unknown preprocessing options: {sorted(unknown)}")

        return PreprocessingConfig.for_model(model_config, **overrides)

    def preprocess(
        self,
        image: ImageSource,
        config: Optional[PreprocessingConfig] = None
    ) -> PreparedTensor:
        """Preprocess an image without running a model."""
        if config is None:
            size = self.settings.processing.default_size
            config = PreprocessingConfig(target_width=size, target_height=size)
        return self.processor.preprocess(image, config)

    async def transfer_style(
        self,
        image: ImageSource,
        style: Union[str, ModelConfig],
        options: Optional[PreprocessingOptions] = None
    ) -> InferenceResult:
        """
        Apply a style to an image.

        Args:
            image: Encoded bytes, file path, PIL image or uint8 array
            style: Style identifier or model configuration
            options: PreprocessingConfig or mapping of field overrides

        Returns:
            InferenceResult from the inference or fallback path
        """
        start_time = time.perf_counter()
        model_config = self.resolve_style(style)

        with MetricsContext("transfer_style", component="pipeline",
                           enabled=self.settings.monitoring.enable_metrics):
            config = self.preprocessing_config(model_config, options)
            tensor = self.processor.preprocess(
                image, config, supported_formats=model_config.supported_formats
            )
            result = await self.orchestrator.run(tensor, model_config, start_time=start_time)

        return result

    def clear_cache(self) -> int:
        """Release all cached model sessions."""
        released = self.session_cache.clear()
        logger.info("Session cache cleared", released=released)
        return released
