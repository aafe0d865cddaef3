"""Tests for the streaming RealtimeEngine."""

import itertools

import numpy as np
import pytest

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.frame import RealtimeFeatureFrame
from soundcanvas.core.realtime import EngineState, RealtimeEngine
from soundcanvas.core.source import (
    ArraySampleSource,
    DecodedAudio,
    QueueSampleSource,
    to_mono,
)
from soundcanvas.core.spectrum import SpectrumReading
from soundcanvas.errors import NotInitializedError


def fake_clock(step: float = 1 / 60):
    """Deterministic clock advancing one display frame per call."""
    ticks = itertools.count()
    return lambda: next(ticks) * step


class ScriptedProvider:
    """Spectrum provider replaying a fixed list of dB spectra."""

    def __init__(self, spectra, fft_size: int = 64):
        self.spectra = list(spectra)
        self.fft_size = fft_size
        self.source = None
        self.disconnects = 0

    def connect(self, source):
        self.source = source

    def disconnect(self):
        self.source = None
        self.disconnects += 1

    def pull(self) -> SpectrumReading:
        decibels = self.spectra.pop(0)
        return SpectrumReading(
            waveform=np.zeros(self.fft_size),
            frequency_bins=np.zeros(len(decibels), dtype=np.uint8),
            decibels=decibels,
        )


class ResettableProvider(ScriptedProvider):
    """Scripted provider that counts reset calls."""

    def __init__(self, spectra, fft_size: int = 64):
        super().__init__(spectra, fft_size)
        self.resets = 0

    def reset(self):
        self.resets += 1


@pytest.fixture
def realtime_config(sample_rate) -> AnalysisConfig:
    return AnalysisConfig(sample_rate=sample_rate, fft_size=1024)


class TestRealtimeEngine:
    """Tests for pull-based feature extraction."""

    def test_not_connected_raises(self, realtime_config):
        engine = RealtimeEngine(realtime_config)
        with pytest.raises(NotInitializedError):
            engine.get_features()

    def test_frame_shape(self, realtime_config, pure_sine):
        y, _ = pure_sine
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y, block_size=1024))

        frame = engine.get_features()

        assert isinstance(frame, RealtimeFeatureFrame)
        assert frame.waveform.shape == (1024,)
        assert frame.frequency_bins.shape == (512,)
        assert frame.magnitude_spectrum.shape == (512,)
        assert frame.sample_rate == realtime_config.sample_rate

    def test_timestamps_from_clock(self, realtime_config, pure_sine):
        y, _ = pure_sine
        engine = RealtimeEngine(realtime_config, clock=fake_clock(0.5))
        engine.connect(ArraySampleSource(y))

        stamps = [engine.get_features().timestamp for _ in range(3)]

        assert stamps == [0.0, 0.5, 1.0]

    def test_sine_features(self, realtime_config, pure_sine):
        y, sr = pure_sine
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y, block_size=1024))

        for _ in range(5):
            frame = engine.get_features()

        assert frame.rms == pytest.approx(0.5 / np.sqrt(2), rel=0.05)
        assert frame.zcr == pytest.approx(2 * 440.0 / sr, abs=0.005)
        assert frame.fundamental_freq == pytest.approx(440.0, abs=10.0)
        assert frame.energy == frame.rms
        assert 0.0 < frame.brightness < 1.0
        assert frame.spectral_centroid > 0.0

    def test_all_scalars_finite(self, realtime_config, white_noise):
        y, _ = white_noise
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y))

        for _ in range(10):
            values = engine.get_features().to_dict(include_arrays=False)
            assert all(np.isfinite(v) for v in values.values())

    def test_silence(self, realtime_config, silence):
        y, _ = silence
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y))

        for _ in range(5):
            frame = engine.get_features()
            assert frame.rms == 0.0
            assert frame.zcr == 0.0
            assert frame.spectral_centroid == 0.0
            assert frame.spectral_flux == 0.0
            assert frame.fundamental_freq == 0.0
            assert frame.harmonicity == 0.0
            assert frame.onset_strength == 0.0
            assert not np.any(frame.frequency_bins)

    def test_onset_from_spectrum_jump(self):
        quiet = [np.full(32, -60.0)] * 10
        loud = [np.full(32, -20.0)]
        provider = ScriptedProvider(quiet + loud)
        engine = RealtimeEngine(
            AnalysisConfig(fft_size=64),
            provider=provider,
            clock=fake_clock(0.05),
        )
        engine.connect(object())

        frames = [engine.get_features() for _ in range(11)]

        assert [f.onset_strength for f in frames[:10]] == [0.0] * 10
        assert frames[10].is_onset
        assert frames[10].spectral_flux > 0.0

    def test_live_queue_source(self, realtime_config, pure_sine):
        y, _ = pure_sine
        source = QueueSampleSource()
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(source)

        source.push(y[:512])
        source.push(y[512:1024])
        frame = engine.get_features()

        assert frame.rms > 0.0
        assert source.read().size == 0

    def test_reset_clears_trackers(self, realtime_config, pure_sine):
        y, _ = pure_sine
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y))
        engine.get_features()
        engine.reset()

        assert engine.get_features().spectral_flux == 0.0

    def test_reset_forwards_to_provider(self):
        provider = ResettableProvider([np.full(32, -40.0)])
        engine = RealtimeEngine(AnalysisConfig(fft_size=64), provider=provider)
        engine.connect(object())

        engine.reset()

        assert provider.resets == 1

    def test_reset_without_provider_reset(self):
        engine = RealtimeEngine(AnalysisConfig(fft_size=64), provider=ScriptedProvider([]))
        engine.connect(object())
        engine.reset()
        assert engine.is_running

    def test_reset_clears_smoothed_spectrum(self, realtime_config, pure_sine):
        y, _ = pure_sine
        engine = RealtimeEngine(realtime_config, clock=fake_clock())
        engine.connect(ArraySampleSource(y, block_size=1024))
        engine.get_features()
        assert np.any(engine.provider._smoothed)

        engine.reset()

        assert not np.any(engine.provider._smoothed)
        assert not np.any(engine.provider._buffer)

    def test_dispose_is_idempotent(self):
        provider = ScriptedProvider([])
        engine = RealtimeEngine(AnalysisConfig(fft_size=64), provider=provider)
        engine.connect(object())

        engine.dispose()
        engine.dispose()

        assert engine.state is EngineState.IDLE
        assert provider.disconnects == 1
        with pytest.raises(NotInitializedError):
            engine.get_features()

    def test_context_manager(self, realtime_config, pure_sine):
        y, _ = pure_sine
        with RealtimeEngine(realtime_config, clock=fake_clock()) as engine:
            engine.connect(ArraySampleSource(y))
            assert engine.is_running
            engine.get_features()
        assert not engine.is_running


class TestSampleSources:
    """Tests for the channels-first input layout shared by every source."""

    @pytest.fixture
    def stereo(self):
        left = np.linspace(-1.0, 1.0, 256)
        return np.stack([left, np.zeros(256)])

    def test_to_mono_averages_channels(self, stereo):
        mono = to_mono(stereo)
        assert mono.shape == (256,)
        np.testing.assert_allclose(mono, stereo[0] / 2.0)

    def test_queue_push_matches_decoded_audio(self, stereo):
        source = QueueSampleSource()
        source.push(stereo)

        pushed = source.read()
        decoded = DecodedAudio.from_array(stereo, 22050).samples

        assert pushed.shape == (256,)
        np.testing.assert_allclose(pushed, decoded)

    def test_array_source_reduces_channels(self, stereo):
        source = ArraySampleSource(stereo, block_size=128)
        np.testing.assert_allclose(source.read(), stereo[0, :128] / 2.0)
        assert source.read().shape == (128,)
        assert source.exhausted
