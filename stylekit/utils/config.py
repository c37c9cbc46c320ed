"""
Configuration Management

Centralized configuration system using Pydantic settings with
environment variable support and validation.
"""

import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

import onnxruntime as ort
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_ENV_CONFIG = SettingsConfigDict(
    env_prefix="STYLE_",
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
)


class ModelSettings(BaseSettings):
    """Model storage and ONNX Runtime session configuration."""

    model_config = _ENV_CONFIG

    models_dir: str = Field(
        default="./models",
        description="Directory model files are resolved against by filename"
    )

    execution_providers: Annotated[List[str], NoDecode] = Field(
        default=["CPUExecutionProvider"]
    )

    graph_optimization_level: str = Field(
        default="disabled"
    )

    enable_cpu_mem_arena: bool = Field(
        default=False
    )

    enable_mem_pattern: bool = Field(
        default=False
    )

    # 0: verbose, 1: info, 2: warning, 3: error, 4: fatal
    log_severity_level: int = Field(
        default=3,
        ge=0,
        le=4
    )

    intra_op_num_threads: int = Field(
        default=0,
        ge=0
    )

    @field_validator('execution_providers', mode='before')
    @classmethod
    def parse_execution_providers(cls, v):
        if isinstance(v, str):
            return [provider.strip() for provider in v.split(',') if provider.strip()]
        return v

    @field_validator('graph_optimization_level')
    @classmethod
    def validate_graph_optimization_level(cls, v):
        valid_levels = ['disabled', 'basic', 'extended', 'all']
        if v.lower() not in valid_levels:
            raise ValueError(f"Graph optimization level must be one of {valid_levels}")
        return v.lower()


class ProcessingSettings(BaseSettings):
    """Image processing configuration."""

    model_config = _ENV_CONFIG

    default_size: int = Field(
        default=256,
        gt=0
    )

    max_file_size_mb: int = Field(
        default=10,
        gt=0
    )

    supported_formats: Annotated[List[str], NoDecode] = Field(
        default=["jpg", "jpeg", "png", "webp", "bmp"]
    )

    output_format: str = Field(
        default="png"
    )

    jpeg_quality: int = Field(
        default=92,
        ge=1,
        le=100
    )

    @field_validator('supported_formats', mode='before')
    @classmethod
    def parse_supported_formats(cls, v):
        if isinstance(v, str):
            return [fmt.strip().lower() for fmt in v.split(',') if fmt.strip()]
        return [fmt.lower() for fmt in v]

    @field_validator('output_format')
    @classmethod
    def validate_output_format(cls, v):
        valid_formats = ['png', 'jpeg', 'webp']
        if v.lower() not in valid_formats:
            raise ValueError(f"Output format must be one of {valid_formats}")
        return v.lower()

    @property
    def max_file_size(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class MonitoringSettings(BaseSettings):
    """Logging and metrics configuration."""

    model_config = _ENV_CONFIG

    log_level: str = Field(
        default="INFO"
    )

    log_format: str = Field(
        default="console"
    )

    enable_metrics: bool = Field(
        default=True
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        if v.lower() not in ['json', 'console']:
            raise ValueError("Log format must be json or console")
        return v.lower()


class AppSettings(BaseSettings):
    """Main application configuration."""

    model_config = _ENV_CONFIG

    app_name: str = Field(
        default="stylekit"
    )

    app_version: str = Field(
        default="0.1.0"
    )

    environment: str = Field(
        default="development"
    )

    # Nested settings
    model: ModelSettings = Field(default_factory=ModelSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_envs = ['development', 'staging', 'production']
        if v not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings (singleton pattern)."""
    global _settings

    if _settings is None:
        _settings = AppSettings()

    return _settings


def reload_settings() -> AppSettings:
    """Reload settings from environment."""
    global _settings
    _settings = AppSettings()
    return _settings


def get_testing_config() -> Dict[str, Any]:
    """Get testing-specific configuration overrides."""
    return {
        "model": {
            "execution_providers": ["CPUExecutionProvider"],
            "log_severity_level": 3
        },
        "processing": {
            "max_file_size_mb": 5
        },
        "monitoring": {
            "log_level": "DEBUG",
            "enable_metrics": False
        }
    }


# Configuration validation
def validate_config(settings: AppSettings) -> List[str]:
    """Validate configuration and return list of warnings."""

    warnings = []

    models_dir = Path(settings.model.models_dir)
    if not models_dir.is_dir():
        warnings.append(
            f"Models directory {models_dir} does not exist - every transfer will use the fallback path"
        )

    available = ort.get_available_providers()
    unknown = [p for p in settings.model.execution_providers if p not in available]
    if unknown:
        warnings.append(f"Execution providers not available in this runtime: {unknown}")

    if settings.is_production and settings.monitoring.log_level == "DEBUG":
        warnings.append("Debug logging enabled in production")

    if settings.is_production and os.environ.get("STYLE_MODELS_DIR") is None:
        warnings.append("STYLE_MODELS_DIR not set in production, using default models directory")

    return warnings
