"""Tests for framing and window functions."""

import numpy as np
import pytest

from soundcanvas.core.windowing import Windower, create_window, frame_count, iter_frames
from soundcanvas.errors import UnsupportedConfigurationError


class TestCreateWindow:
    """Tests for window coefficients."""

    def test_hann_formula(self):
        n = np.arange(64)
        expected = 0.5 * (1 - np.cos(2 * np.pi * n / 63))
        np.testing.assert_allclose(create_window(64, "hann"), expected, atol=1e-12)

    def test_hamming_formula(self):
        n = np.arange(64)
        expected = 0.54 - 0.46 * np.cos(2 * np.pi * n / 63)
        np.testing.assert_allclose(create_window(64, "hamming"), expected, atol=1e-12)

    def test_blackman_formula(self):
        n = np.arange(64)
        expected = (
            0.42
            - 0.5 * np.cos(2 * np.pi * n / 63)
            + 0.08 * np.cos(4 * np.pi * n / 63)
        )
        np.testing.assert_allclose(create_window(64, "blackman"), expected, atol=1e-12)

    @pytest.mark.parametrize("name", ["hann", "hamming", "blackman"])
    def test_symmetric(self, name):
        window = create_window(128, name)
        np.testing.assert_allclose(window, window[::-1], atol=1e-12)

    def test_read_only(self):
        window = create_window(32)
        with pytest.raises(ValueError):
            window[0] = 1.0

    def test_unknown_window(self):
        with pytest.raises(UnsupportedConfigurationError):
            create_window(64, "kaiser")

    def test_bad_size(self):
        with pytest.raises(UnsupportedConfigurationError):
            create_window(0)


class TestFraming:
    """Tests for frame iteration."""

    def test_frame_count(self):
        assert frame_count(1000, 256, 128) == 6
        assert frame_count(256, 256, 128) == 1
        assert frame_count(255, 256, 128) == 0

    def test_frames_start_on_hop(self):
        samples = np.arange(1000, dtype=np.float64)
        starts = [start for start, _ in iter_frames(samples, 256, 128)]
        assert starts == [0, 128, 256, 384, 512, 640]

    def test_last_frame_fits(self):
        samples = np.ones(1000)
        frames = list(iter_frames(samples, 256, 100))
        last_start, last_frame = frames[-1]
        assert last_start + 256 <= 1000
        assert len(last_frame) == 256
        assert len(frames) == frame_count(1000, 256, 100)

    def test_frames_are_windowed(self):
        samples = np.ones(512)
        _, frame = next(iter_frames(samples, 512, 256, "hamming"))
        np.testing.assert_allclose(frame, create_window(512, "hamming"))

    def test_short_buffer_yields_nothing(self):
        assert list(iter_frames(np.ones(100), 256, 64)) == []

    def test_iteration_is_lazy(self):
        gen = iter_frames(np.ones(10_000), 256, 128)
        start, _ = next(gen)
        assert start == 0

    def test_bad_hop(self):
        with pytest.raises(UnsupportedConfigurationError):
            list(iter_frames(np.ones(1000), 256, 0))


class TestWindower:
    """Tests for the fixed-parameter windower."""

    def test_window_at(self):
        windower = Windower(64, 32)
        samples = np.ones(256)
        np.testing.assert_allclose(windower.window_at(samples, 10), windower.window)

    def test_window_at_out_of_bounds(self):
        windower = Windower(64, 32)
        samples = np.ones(256)
        assert windower.window_at(samples, -1) is None
        assert windower.window_at(samples, 193) is None
        assert windower.window_at(samples, 192) is not None

    def test_count_matches_frames(self):
        windower = Windower(128, 50, "blackman")
        samples = np.random.default_rng(0).standard_normal(1234)
        assert windower.count(len(samples)) == len(list(windower.frames(samples)))
