"""
Shared per-frame feature computation.

Both engines hand a time-domain frame, its linear magnitude spectrum and
its byte spectrum to ``FeatureAnalyzer``; the analyzer runs the whole
feature set and the stateful trackers so the two paths compute features
with exactly the same code.
"""

from typing import Any

import numpy as np

from soundcanvas.config import (
    BASS_BAND,
    MID_BAND,
    ONSET_COOLDOWN_SEC,
    ROLLOFF_THRESHOLD,
    TREBLE_BAND,
    AnalysisConfig,
)
from soundcanvas.core import features
from soundcanvas.core.trackers import TrackerState, track


class FeatureAnalyzer:
    """
    Computes every feature field of an ``AudioFeatureFrame``.

    The analyzer itself holds no history; cross-frame state is passed in
    as a ``TrackerState`` owned by the calling engine.
    """

    def __init__(
        self,
        config: AnalysisConfig,
        rolloff_threshold: float = ROLLOFF_THRESHOLD,
        onset_cooldown: float = ONSET_COOLDOWN_SEC,
    ):
        """
        Initialize the analyzer.

        Args:
            config: Engine configuration (sample rate, FFT size).
            rolloff_threshold: Energy share used for spectral rolloff.
            onset_cooldown: Minimum seconds between two onsets.
        """
        self.config = config
        self.rolloff_threshold = rolloff_threshold
        self.onset_cooldown = onset_cooldown

    def analyze(
        self,
        waveform: np.ndarray,
        magnitude: np.ndarray,
        frequency_bins: np.ndarray,
        state: TrackerState,
        time_sec: float,
    ) -> dict[str, Any]:
        """
        Extract the feature fields for one frame.

        Args:
            waveform: Time-domain samples of the frame.
            magnitude: Linear magnitude spectrum, ``fft_size / 2`` bins.
            frequency_bins: Byte view of the same spectrum.
            state: Tracker state to read and update.
            time_sec: Frame time used by onset cooldown and tempo.

        Returns:
            Keyword arguments for an ``AudioFeatureFrame`` without stamping.
        """
        sr = self.config.sample_rate
        nyquist = sr / 2.0
        bin_width = nyquist / len(magnitude) if len(magnitude) else 0.0

        rms = features.rms(waveform)
        zcr = features.zero_crossing_rate(waveform)

        centroid = features.spectral_centroid(magnitude, bin_width)
        rolloff = features.spectral_rolloff(magnitude, bin_width, self.rolloff_threshold)

        tracked = track(state, magnitude, time_sec, cooldown_sec=self.onset_cooldown)

        f0 = features.fundamental_frequency(waveform, sr)
        harmonicity = features.harmonicity(magnitude, f0, bin_width)

        return {
            "waveform": waveform,
            "rms": rms,
            "zcr": zcr,
            "frequency_bins": frequency_bins,
            "magnitude_spectrum": magnitude,
            "spectral_centroid": centroid,
            "spectral_rolloff": rolloff,
            "spectral_flux": tracked.flux,
            "energy": rms,
            "brightness": features.brightness(centroid, nyquist),
            "noisiness": features.noisiness(zcr, nyquist),
            "onset_strength": tracked.onset_strength,
            "bpm": tracked.bpm,
            "fundamental_freq": f0,
            "harmonicity": harmonicity,
            "bass_energy": features.band_energy(frequency_bins, BASS_BAND, bin_width),
            "mid_energy": features.band_energy(frequency_bins, MID_BAND, bin_width),
            "treble_energy": features.band_energy(frequency_bins, TREBLE_BAND, bin_width),
            "sample_rate": sr,
        }
