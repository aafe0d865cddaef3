"""Tests for AnalysisConfig validation and loading."""

import json

import pytest

from soundcanvas.config import AnalysisConfig, is_power_of_two, load_config
from soundcanvas.errors import SoundCanvasError, UnsupportedConfigurationError


class TestAnalysisConfig:
    """Tests for configuration defaults and validation."""

    def test_defaults(self):
        config = AnalysisConfig().validate()
        assert config.fft_size == 2048
        assert config.hop_size == 512
        assert config.window_function == "hann"
        assert config.transform == "dft"

    def test_derived_properties(self):
        config = AnalysisConfig(sample_rate=44100, fft_size=2048)
        assert config.nyquist == 22050.0
        assert config.n_bins == 1024
        assert config.bin_width == pytest.approx(44100 / 2048)

    @pytest.mark.parametrize("fft_size", [1000, 0, -512, 16])
    def test_rejects_bad_fft_size(self, fft_size):
        with pytest.raises(UnsupportedConfigurationError):
            AnalysisConfig(fft_size=fft_size).validate()

    @pytest.mark.parametrize(
        "changes",
        [
            {"hop_size": 0},
            {"window_function": "kaiser"},
            {"transform": "wavelet"},
            {"smoothing_time_constant": 1.0},
            {"min_decibels": -10.0, "max_decibels": -90.0},
            {"sample_rate": 0},
            {"smoothing_time_constant": "0.8"},
            {"min_decibels": "-90"},
            {"max_decibels": float("nan")},
            {"min_decibels": float("-inf")},
            {"smoothing_time_constant": True},
        ],
    )
    def test_rejects_bad_options(self, changes):
        with pytest.raises(UnsupportedConfigurationError):
            AnalysisConfig(**changes).validate()

    def test_error_hierarchy(self):
        with pytest.raises(ValueError):
            AnalysisConfig(fft_size=3).validate()
        with pytest.raises(SoundCanvasError):
            AnalysisConfig(fft_size=3).validate()

    def test_replace_validates(self):
        config = AnalysisConfig()
        assert config.replace(fft_size=1024).fft_size == 1024
        with pytest.raises(UnsupportedConfigurationError):
            config.replace(fft_size=1023)

    def test_frozen(self):
        config = AnalysisConfig()
        with pytest.raises(AttributeError):
            config.fft_size = 1024

    def test_from_dict_camel_case(self):
        config = AnalysisConfig.from_dict(
            {"fftSize": 1024, "smoothingTimeConstant": 0.5, "windowFunction": "blackman"}
        )
        assert config.fft_size == 1024
        assert config.smoothing_time_constant == 0.5
        assert config.window_function == "blackman"

    def test_from_dict_unknown_key(self):
        with pytest.raises(UnsupportedConfigurationError):
            AnalysisConfig.from_dict({"frameRate": 60})

    def test_dict_round_trip(self):
        config = AnalysisConfig(fft_size=512, hop_size=128, transform="fft")
        assert AnalysisConfig.from_dict(config.to_dict()) == config

    def test_is_power_of_two(self):
        assert is_power_of_two(1024)
        assert not is_power_of_two(1000)
        assert not is_power_of_two(0)


class TestLoadConfig:
    """Tests for JSON config files."""

    def test_load(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"fft_size": 512, "hopSize": 128}))

        config = load_config(path)

        assert config.fft_size == 512
        assert config.hop_size == 128

    def test_load_invalid_value(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"fft_size": 500}))

        with pytest.raises(UnsupportedConfigurationError):
            load_config(path)

    def test_load_wrong_type(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"smoothingTimeConstant": "0.8"}))

        with pytest.raises(UnsupportedConfigurationError):
            load_config(path)

    def test_load_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")

        with pytest.raises(UnsupportedConfigurationError):
            load_config(path)
