"""Tests for logging, metrics and raster encoding helpers."""

import io

import pytest
from PIL import Image
from prometheus_client import REGISTRY

from stylekit.utils.config import reload_settings
from stylekit.utils.image_processing import ImageFormat, encode_image, image_to_data_url
from stylekit.utils.monitoring import MetricsContext, record_error, record_transfer, setup_logging


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def fresh_settings(monkeypatch):
    monkeypatch.delenv("STYLE_ENABLE_METRICS", raising=False)
    yield reload_settings()
    monkeypatch.undo()
    reload_settings()


class TestMetrics:

    def test_record_transfer(self, fresh_settings):
        before = sample("stylekit_transfers_total", style="test-style", path="fallback")

        record_transfer("test-style", "fallback", 0.25)

        assert sample("stylekit_transfers_total", style="test-style", path="fallback") == before + 1

    def test_record_transfer_disabled(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("STYLE_ENABLE_METRICS", "false")
        reload_settings()
        before = sample("stylekit_transfers_total", style="quiet-style", path="inference")

        record_transfer("quiet-style", "inference", 0.1)

        assert sample("stylekit_transfers_total", style="quiet-style", path="inference") == before

    def test_record_error(self, fresh_settings):
        before = sample("stylekit_errors_total", error_type="ValueError", component="tests")
        record_error(ValueError("bad"), "tests")
        assert sample("stylekit_errors_total", error_type="ValueError", component="tests") == before + 1

    def test_record_error_disabled(self):
        before = sample("stylekit_errors_total", error_type="ValueError", component="quiet")
        record_error(ValueError("bad"), "quiet", enabled=False)
        assert sample("stylekit_errors_total", error_type="ValueError", component="quiet") == before

    def test_metrics_context_counts_failures(self):
        before = sample("stylekit_errors_total", error_type="KeyError", component="context-test")

        with pytest.raises(KeyError):
            with MetricsContext("lookup", component="context-test"):
                raise KeyError("missing")

        assert sample("stylekit_errors_total", error_type="KeyError", component="context-test") == before + 1

    def test_metrics_context_disabled(self):
        before = sample("stylekit_errors_total", error_type="KeyError", component="quiet-context")

        with pytest.raises(KeyError):
            with MetricsContext("lookup", component="quiet-context", enabled=False):
                raise KeyError("missing")

        assert sample("stylekit_errors_total", error_type="KeyError", component="quiet-context") == before

    def test_metrics_context_duration(self):
        with MetricsContext("noop") as context:
            pass
        assert context.duration >= 0.0


class TestLogging:

    def test_setup_logging(self, settings):
        logger = setup_logging(settings)
        logger.info("Logging test", component="tests")


class TestEncoding:

    def test_jpeg_drops_alpha(self):
        image = Image.new("RGBA", (8, 8), (10, 20, 30, 255))

        data = encode_image(image, ImageFormat.JPEG, quality=90)

        with Image.open(io.BytesIO(data)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.mode == "RGB"

    def test_png_keeps_alpha(self):
        image = Image.new("RGBA", (8, 8), (10, 20, 30, 255))

        with Image.open(io.BytesIO(encode_image(image, ImageFormat.PNG))) as decoded:
            assert decoded.mode == "RGBA"

    def test_data_url(self):
        assert image_to_data_url(b"abc", ImageFormat.WEBP) == "data:image/webp;base64,YWJj"
