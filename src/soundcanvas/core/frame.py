"""
Feature frame records produced by both engines.

The realtime and offline variants share every feature field and differ
only in how they are stamped.
"""

from dataclasses import dataclass, fields
from typing import Any

import numpy as np


@dataclass
class AudioFeatureFrame:
    """Audio descriptors for one analysis frame."""

    # Time domain
    waveform: np.ndarray
    rms: float
    zcr: float

    # Frequency domain
    frequency_bins: np.ndarray      # uint8, 0-255 per bin
    magnitude_spectrum: np.ndarray  # linear magnitude, fft_size / 2 bins
    spectral_centroid: float        # Hz
    spectral_rolloff: float         # Hz
    spectral_flux: float

    # Perceptual
    energy: float
    brightness: float
    noisiness: float

    # Rhythm
    onset_strength: float           # 0.0 or 1.0
    bpm: float

    # Harmony
    fundamental_freq: float         # Hz, 0 when undetected
    harmonicity: float

    # Band levels from the byte spectrum [0, 1]
    bass_energy: float
    mid_energy: float
    treble_energy: float

    sample_rate: int

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2.0

    @property
    def is_onset(self) -> bool:
        return self.onset_strength > 0.5

    def to_dict(self, include_arrays: bool = True) -> dict[str, Any]:
        """
        Plain-Python view of the frame, safe for ``json.dump``.

        Args:
            include_arrays: Include waveform and spectrum arrays as lists.
        """
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                if include_arrays:
                    data[f.name] = value.tolist()
            elif isinstance(value, (np.integer, int)) and not isinstance(value, bool):
                data[f.name] = int(value)
            else:
                data[f.name] = float(value)
        return data


@dataclass
class RealtimeFeatureFrame(AudioFeatureFrame):
    """Frame from the streaming engine, stamped with monotonic clock time."""

    timestamp: float = 0.0


@dataclass
class OfflineFeatureFrame(AudioFeatureFrame):
    """Frame from the batch engine, stamped with a sample-accurate position."""

    frame_index: int = 0
    time_position: float = 0.0


ARRAY_FIELDS = ("waveform", "frequency_bins", "magnitude_spectrum")

SCALAR_FIELDS = tuple(
    f.name for f in fields(AudioFeatureFrame) if f.name not in ARRAY_FIELDS
)
