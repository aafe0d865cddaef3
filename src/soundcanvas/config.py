"""
Shared configuration and tuning constants.

Both engines read their defaults from this module so the streaming and
batch paths cannot drift apart.
"""

import json
import math
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Union

from soundcanvas.errors import UnsupportedConfigurationError

# Onset detection
ONSET_THRESHOLD_MULTIPLIER = 1.5
ONSET_HISTORY_SIZE = 10
ONSET_COOLDOWN_SEC = 0.1

# Tempo estimation
TEMPO_WINDOW_SEC = 10.0
TEMPO_MIN_ONSETS = 4

# Spectral descriptors
ROLLOFF_THRESHOLD = 0.85
HARMONIC_COUNT = 6

# Autocorrelation pitch search bounds (Hz)
PITCH_MIN_HZ = 80.0
PITCH_MAX_HZ = 800.0

# Frequency bands for the byte-spectrum band energies (Hz)
BASS_BAND = (20.0, 250.0)
MID_BAND = (250.0, 4000.0)
TREBLE_BAND = (4000.0, 20000.0)

WINDOW_FUNCTIONS = ("hann", "hamming", "blackman")
TRANSFORMS = ("dft", "fft")

MIN_FFT_SIZE = 32

# camelCase option names used by the browser front end
_CAMEL_CASE_KEYS = {
    "fftSize": "fft_size",
    "hopSize": "hop_size",
    "smoothingTimeConstant": "smoothing_time_constant",
    "windowFunction": "window_function",
    "minDecibels": "min_decibels",
    "maxDecibels": "max_decibels",
    "sampleRate": "sample_rate",
}


def is_power_of_two(value: int) -> bool:
    """Return True if value is a positive power of two."""
    return value > 0 and (value & (value - 1)) == 0


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class AnalysisConfig:
    """Engine configuration shared by the realtime and offline paths."""

    sample_rate: int = 44100
    fft_size: int = 2048
    hop_size: int = 512
    smoothing_time_constant: float = 0.8
    window_function: str = "hann"
    min_decibels: float = -90.0
    max_decibels: float = -10.0
    transform: str = "dft"

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2.0

    @property
    def n_bins(self) -> int:
        """Number of magnitude bins per frame."""
        return self.fft_size // 2

    @property
    def bin_width(self) -> float:
        """Width of one magnitude bin in Hz."""
        return self.nyquist / self.n_bins

    def validate(self) -> "AnalysisConfig":
        """
        Check every option and raise on the first unsupported value.

        Returns:
            The config itself, so calls can be chained.
        """
        if not isinstance(self.sample_rate, int) or self.sample_rate <= 0:
            raise UnsupportedConfigurationError(
                f"sample_rate must be a positive integer, got {self.sample_rate!r}"
            )
        if not isinstance(self.fft_size, int) or not is_power_of_two(self.fft_size):
            raise UnsupportedConfigurationError(
                f"fft_size must be a power of two, got {self.fft_size!r}"
            )
        if self.fft_size < MIN_FFT_SIZE:
            raise UnsupportedConfigurationError(
                f"fft_size must be at least {MIN_FFT_SIZE}, got {self.fft_size}"
            )
        if not isinstance(self.hop_size, int) or self.hop_size <= 0:
            raise UnsupportedConfigurationError(
                f"hop_size must be a positive integer, got {self.hop_size!r}"
            )
        for name in ("smoothing_time_constant", "min_decibels", "max_decibels"):
            value = getattr(self, name)
            if not _is_finite_number(value):
                raise UnsupportedConfigurationError(
                    f"{name} must be a finite number, got {value!r}"
                )
        if not 0.0 <= self.smoothing_time_constant < 1.0:
            raise UnsupportedConfigurationError(
                "smoothing_time_constant must be in [0, 1), "
                f"got {self.smoothing_time_constant}"
            )
        if self.window_function not in WINDOW_FUNCTIONS:
            raise UnsupportedConfigurationError(
                f"Unknown window function {self.window_function!r}; "
                f"expected one of {', '.join(WINDOW_FUNCTIONS)}"
            )
        if self.min_decibels >= self.max_decibels:
            raise UnsupportedConfigurationError(
                "min_decibels must be lower than max_decibels "
                f"({self.min_decibels} >= {self.max_decibels})"
            )
        if self.transform not in TRANSFORMS:
            raise UnsupportedConfigurationError(
                f"Unknown transform {self.transform!r}; "
                f"expected one of {', '.join(TRANSFORMS)}"
            )
        return self

    def replace(self, **changes: Any) -> "AnalysisConfig":
        """Return a validated copy with the given fields changed."""
        return replace(self, **changes).validate()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        """
        Build a config from a mapping of options.

        Accepts both snake_case field names and the camelCase names used by
        the browser front end (``fftSize``, ``hopSize``, ...).

        Args:
            data: Option mapping, e.g. parsed from a JSON config file.

        Returns:
            Validated AnalysisConfig.
        """
        known = {f.name for f in fields(cls)}
        options: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                raise UnsupportedConfigurationError(f"Unknown config option: {key!r}")
            options[name] = value
        return cls(**options).validate()


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """
    Load an AnalysisConfig from a JSON file.

    Args:
        path: Path to a JSON object of config options.

    Returns:
        Validated AnalysisConfig.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise UnsupportedConfigurationError(
            f"Config file must contain a JSON object: {path}"
        )
    return AnalysisConfig.from_dict(data)
