"""Tests for tensor validation against model contracts."""

from dataclasses import replace

import numpy as np
import pytest

from conftest import make_image
from stylekit.models.registry import TensorLayout, get_model_config
from stylekit.models.utils import (
    TensorSnapshot,
    array_min_max,
    check_output_shape,
    validate_model_inputs,
)
from stylekit.preprocessing.image_processor import ImageProcessor, PreprocessingConfig
from stylekit.utils.errors import ShapeMismatchError


def prepare(style_id, **overrides):
    config = PreprocessingConfig.for_model(get_model_config(style_id), **overrides)
    return ImageProcessor().preprocess(make_image(40, 30), config)


class TestValidateModelInputs:

    @pytest.mark.parametrize("style_id", ["anime", "picasso", "van-gogh"])
    def test_matching_tensor_passes(self, style_id):
        validation = validate_model_inputs(prepare(style_id), get_model_config(style_id))
        assert validation.ok
        assert validation.warnings == []

    def test_spatial_mismatch(self):
        tensor = prepare("van-gogh", target_width=256, target_height=256)
        with pytest.raises(ShapeMismatchError, match="dimension 1"):
            validate_model_inputs(tensor, get_model_config("van-gogh"))

    def test_layout_mismatch(self):
        tensor = prepare("picasso", layout=TensorLayout.NHWC)
        with pytest.raises(ShapeMismatchError):
            validate_model_inputs(tensor, get_model_config("picasso"))

    def test_data_length_mismatch(self):
        tensor = prepare("cyberpunk")
        tensor = replace(tensor, data=tensor.data[:-3])
        with pytest.raises(ShapeMismatchError, match="data length"):
            validate_model_inputs(tensor, get_model_config("cyberpunk"))

    def test_channel_count_mismatch(self):
        tensor = replace(prepare("cyberpunk"), channels=4)
        with pytest.raises(ShapeMismatchError, match="3 channels"):
            validate_model_inputs(tensor, get_model_config("cyberpunk"))

    def test_range_anomaly_is_warning(self):
        tensor = prepare("anime")
        tensor = replace(tensor, data=tensor.data * 3.0)

        validation = validate_model_inputs(tensor, get_model_config("anime"))

        assert len(validation.warnings) == 1
        assert "outside expected range" in validation.warnings[0]

    def test_scheme_disagreement_is_warning(self):
        tensor = prepare("anime", normalize=False)
        validation = validate_model_inputs(tensor, get_model_config("anime"))
        assert any("identity" in warning for warning in validation.warnings)


class TestHelpers:

    def test_array_min_max(self):
        assert array_min_max(np.array([3.0, np.nan, -2.0])) == (-2.0, 3.0)
        assert array_min_max(np.array([])) == (0.0, 0.0)

    def test_snapshot_copies_data(self):
        array = np.ones((1, 2, 2, 3), dtype=np.float32)
        snapshot = TensorSnapshot.from_array(array)
        array[:] = 5.0

        assert snapshot.dims == (1, 2, 2, 3)
        assert snapshot.data_range == (1.0, 1.0)
        assert snapshot.data.max() == 1.0

    @pytest.mark.parametrize("dims,expected", [
        ((1, 64, 32, 3), (32, 64, 3, TensorLayout.NHWC)),
        ((1, 3, 64, 32), (32, 64, 3, TensorLayout.NCHW)),
        ((64, 32, 3), (32, 64, 3, TensorLayout.NHWC)),
    ])
    def test_check_output_shape(self, dims, expected):
        assert check_output_shape(dims) == expected

    def test_check_output_shape_rejects_2d(self):
        with pytest.raises(ShapeMismatchError):
            check_output_shape((64, 32))
