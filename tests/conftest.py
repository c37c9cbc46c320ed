"""Shared fixtures for stylekit tests.

This module provides pytest fixtures for:
- Synthetic source images (PIL and encoded bytes)
- Fake ONNX-like sessions and loaders with call counting
- Pipeline settings bound to a temporary models directory
"""

import asyncio
import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from stylekit.utils.config import AppSettings, ModelSettings, MonitoringSettings


class FakeNode:
    """Stand-in for onnxruntime NodeArg."""

    def __init__(self, name):
        self.name = name


class FakeSession:
    """Session exposing the subset of the onnxruntime API the pipeline uses."""

    def __init__(self, transform=None, input_name="input", output_names=("output",), error=None,
                 release_error=None):
        self.transform = transform or (lambda array: array)
        self.input_name = input_name
        self.output_names = list(output_names)
        self.error = error
        self.release_error = release_error
        self.calls = []
        self.released = False

    def get_inputs(self):
        return [FakeNode(self.input_name)]

    def get_outputs(self):
        return [FakeNode(name) for name in self.output_names]

    def run(self, output_names, feeds):
        self.calls.append((list(output_names), {k: v.shape for k, v in feeds.items()}))
        if self.error is not None:
            raise self.error
        return [self.transform(feeds[self.input_name])]

    def release(self):
        if self.release_error is not None:
            raise self.release_error
        self.released = True


class FakeLoader:
    """Async session loader recording every path it is asked to load."""

    def __init__(self, session_factory=FakeSession, delay=0.0, error=None):
        self.session_factory = session_factory
        self.delay = delay
        self.error = error
        self.calls = []
        self.sessions = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, path: Path):
        self.calls.append(path)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            session = self.session_factory()
            self.sessions.append(session)
            return session
        finally:
            self.active -= 1


def make_image(width, height, color=None, mode="RGB", seed=42):
    """Solid or random-noise image of the given size."""
    channels = len(mode)
    if color is not None:
        return Image.new(mode, (width, height), color)
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, (height, width, channels), dtype=np.uint8)
    return Image.fromarray(pixels)


def encode(image, fmt="PNG", **kwargs):
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def png_bytes():
    """PNG bytes of a 64x48 noise image."""
    return encode(make_image(64, 48))


@pytest.fixture
def models_dir(tmp_path) -> Path:
    """Empty temporary models directory."""
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def settings(models_dir) -> AppSettings:
    """Settings resolving model files under the temporary models directory."""
    return AppSettings(
        model=ModelSettings(models_dir=str(models_dir)),
        monitoring=MonitoringSettings(enable_metrics=False, log_level="DEBUG")
    )


@pytest.fixture
def fake_loader():
    return FakeLoader()
