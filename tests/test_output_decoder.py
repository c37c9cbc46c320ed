"""Tests for output tensor decoding."""

import numpy as np
import pytest

from stylekit.models.registry import get_model_config
from stylekit.postprocessing.output_decoder import OutputDecoder, decode_session_outputs, to_uint8
from stylekit.utils.errors import InferenceRuntimeError, MissingOutputError, ShapeMismatchError


@pytest.fixture
def decoder():
    return OutputDecoder()


class TestOutputDecoder:

    def test_symmetric_output(self, decoder):
        output = np.array([-1.0, 0.0, 1.0], dtype=np.float32).reshape(1, 1, 1, 3)

        decoded = decoder.decode(output, get_model_config("anime"))

        assert np.asarray(decoded.image)[0, 0].tolist() == [0, 128, 255]

    def test_unit_range_output_is_clamped(self, decoder):
        output = np.array([0.5, 1.7, -0.2], dtype=np.float32).reshape(1, 1, 1, 3)

        decoded = decoder.decode(output, get_model_config("van-gogh"))

        assert np.asarray(decoded.image)[0, 0].tolist() == [128, 255, 0]

    def test_nan_becomes_zero(self, decoder):
        output = np.array([np.nan, np.inf, -np.inf], dtype=np.float32).reshape(1, 1, 1, 3)

        decoded = decoder.decode(output, get_model_config("cyberpunk"))

        assert np.asarray(decoded.image)[0, 0].tolist() == [0, 255, 0]

    def test_size_comes_from_output_shape(self, decoder):
        output = np.zeros((1, 64, 32, 3), dtype=np.float32)

        decoded = decoder.decode(output, get_model_config("anime"))

        assert (decoded.width, decoded.height) == (32, 64)
        assert decoded.image.size == (32, 64)

    def test_channel_first_output(self, decoder):
        output = np.zeros((1, 3, 4, 5), dtype=np.float32)
        output[0, 0] = 1.0

        decoded = decoder.decode(output, get_model_config("picasso"))
        pixels = np.asarray(decoded.image)

        assert decoded.image.size == (5, 4)
        assert pixels[:, :, 0].min() == 255
        assert pixels[:, :, 1].max() == 0

    def test_grayscale_output_expanded(self, decoder):
        output = np.full((1, 2, 2, 1), 0.5, dtype=np.float32)

        decoded = decoder.decode(output, get_model_config("cyberpunk"))

        assert decoded.image.mode == "RGB"
        assert np.asarray(decoded.image)[0, 0].tolist() == [128, 128, 128]

    def test_alpha_is_opaque(self, decoder):
        output = np.zeros((1, 3, 3, 4), dtype=np.float32)

        decoded = decoder.decode(output, get_model_config("cyberpunk"), with_alpha=True)
        pixels = np.asarray(decoded.image)

        assert decoded.image.mode == "RGBA"
        assert np.all(pixels[:, :, 3] == 255)

    def test_two_channel_output_rejected(self, decoder):
        with pytest.raises(ShapeMismatchError):
            decoder.decode(np.zeros((1, 5, 5, 2), dtype=np.float32), get_model_config("cyberpunk"))


class TestSessionOutputs:

    def test_first_output_selected(self):
        first = np.ones((1, 2, 2, 3))
        result = decode_session_outputs([first, np.zeros(3)])
        assert result.dtype == np.float32
        assert result.shape == (1, 2, 2, 3)

    def test_no_outputs(self):
        with pytest.raises(MissingOutputError):
            decode_session_outputs([])

    def test_non_numeric_output(self):
        with pytest.raises(InferenceRuntimeError, match="not a numeric tensor"):
            decode_session_outputs([np.array(["sky", "sea"])])


def test_to_uint8_rounds_half_up():
    assert to_uint8(np.array([0.49, 0.5, 254.5, 300.0, -4.0])).tolist() == [0, 1, 255, 255, 0]
