"""
Spectrum providers and unit normalization.

Two families of provider feed the feature extractors:

* ``SpectrumTransform`` implementations turn one windowed frame into a
  linear magnitude (and phase) spectrum. ``DFTTransform`` is the direct,
  correctness-first reference used by batch analysis; ``FFTTransform`` is
  the O(N log N) equivalent.
* ``StreamingAnalyser`` models the browser's accelerated analyser: it keeps
  the most recent samples from a live source and reports a smoothed
  spectrum as decibels and as bytes scaled from a decibel window.

Whatever the source, feature extraction only ever sees linear magnitude.
``SpectrumReading.magnitude`` performs that normalization.
"""

import abc
import logging
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
import scipy.fft

from soundcanvas.config import AnalysisConfig, is_power_of_two
from soundcanvas.core.windowing import create_window
from soundcanvas.errors import UnsupportedConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class SpectrumResult:
    """Magnitude and phase for bins ``[0, N/2)`` of one frame."""

    magnitude: np.ndarray
    phase: np.ndarray


class SpectrumTransform(abc.ABC):
    """Turns a windowed frame of length N into N/2 spectrum bins."""

    name = "abstract"

    @abc.abstractmethod
    def transform(self, frame: np.ndarray) -> SpectrumResult:
        """Compute the spectrum of one frame."""

    def magnitude(self, frame: np.ndarray) -> np.ndarray:
        return self.transform(frame).magnitude


@lru_cache(maxsize=4)
def _dft_basis(size: int) -> tuple[np.ndarray, np.ndarray]:
    k = np.arange(size // 2, dtype=np.int64)[:, None]
    n = np.arange(size, dtype=np.int64)[None, :]
    # Reduce k*n modulo N before scaling to keep the angles exact
    angle = -2.0 * np.pi * ((k * n) % size) / size
    cos_basis = np.cos(angle)
    sin_basis = np.sin(angle)
    cos_basis.setflags(write=False)
    sin_basis.setflags(write=False)
    return cos_basis, sin_basis


class DFTTransform(SpectrumTransform):
    """
    Direct discrete Fourier transform.

    For every bin ``k`` in ``[0, N/2)``::

        Re = sum(x[n] * cos(-2*pi*k*n/N))
        Im = sum(x[n] * sin(-2*pi*k*n/N))
        magnitude[k] = sqrt(Re**2 + Im**2)

    O(N^2) per frame. The basis matrices are cached per frame size.
    """

    name = "dft"

    def transform(self, frame: np.ndarray) -> SpectrumResult:
        x = np.asarray(frame, dtype=np.float64)
        if x.ndim != 1 or len(x) < 2:
            raise UnsupportedConfigurationError(
                f"DFT needs a 1-D frame of at least 2 samples, got shape {x.shape}"
            )
        cos_basis, sin_basis = _dft_basis(len(x))
        real = cos_basis @ x
        imag = sin_basis @ x
        return SpectrumResult(
            magnitude=np.sqrt(real * real + imag * imag),
            phase=np.arctan2(imag, real),
        )


class FFTTransform(SpectrumTransform):
    """Real-input FFT; matches ``DFTTransform`` within floating-point tolerance."""

    name = "fft"

    def transform(self, frame: np.ndarray) -> SpectrumResult:
        x = np.asarray(frame, dtype=np.float64)
        if x.ndim != 1 or not is_power_of_two(len(x)) or len(x) < 2:
            raise UnsupportedConfigurationError(
                f"FFT needs a 1-D power-of-two frame, got shape {x.shape}"
            )
        spectrum = scipy.fft.rfft(x)[: len(x) // 2]
        return SpectrumResult(magnitude=np.abs(spectrum), phase=np.angle(spectrum))


_TRANSFORMS = {
    DFTTransform.name: DFTTransform,
    FFTTransform.name: FFTTransform,
}


def get_transform(name: str = "dft") -> SpectrumTransform:
    """Look up a spectrum transform by name ("dft" or "fft")."""
    try:
        return _TRANSFORMS[name]()
    except KeyError:
        raise UnsupportedConfigurationError(
            f"Unknown transform {name!r}; expected one of {', '.join(_TRANSFORMS)}"
        ) from None


# ---------------------------------------------------------------------------
# Unit conversions
# ---------------------------------------------------------------------------

def decibels_to_magnitude(decibels: np.ndarray) -> np.ndarray:
    """Convert dB values to linear magnitude; non-finite input maps to 0."""
    db = np.asarray(decibels, dtype=np.float64)
    magnitude = np.zeros_like(db)
    finite = np.isfinite(db)
    magnitude[finite] = np.power(10.0, db[finite] / 20.0)
    return magnitude


def bytes_to_magnitude(
    frequency_bins: np.ndarray,
    min_decibels: float,
    max_decibels: float,
) -> np.ndarray:
    """
    Convert an analyser byte spectrum back to linear magnitude.

    Bytes span ``[min_decibels, max_decibels]`` linearly. Byte 0 means the
    bin sat at or below the floor and is treated as silence.
    """
    bins = np.asarray(frequency_bins, dtype=np.float64)
    db = min_decibels + (bins / 255.0) * (max_decibels - min_decibels)
    magnitude = np.power(10.0, db / 20.0)
    magnitude[bins <= 0] = 0.0
    return magnitude


def decibels_to_bytes(
    decibels: np.ndarray,
    min_decibels: float,
    max_decibels: float,
) -> np.ndarray:
    """Scale dB values into ``[0, 255]`` bytes over the given decibel window."""
    db = np.asarray(decibels, dtype=np.float64)
    scaled = (255.0 / (max_decibels - min_decibels)) * (db - min_decibels)
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)


def magnitude_to_bytes(magnitude: np.ndarray) -> np.ndarray:
    """
    Peak-normalize a linear magnitude spectrum into bytes.

    An all-zero spectrum maps to all-zero bytes.
    """
    mag = np.asarray(magnitude, dtype=np.float64)
    if mag.size == 0:
        return np.zeros(0, dtype=np.uint8)
    peak = float(np.max(mag))
    if not np.isfinite(peak) or peak <= 0.0:
        return np.zeros(mag.shape, dtype=np.uint8)
    scaled = np.floor(mag / peak * 255.0)
    return np.clip(scaled, 0, 255).astype(np.uint8)


# ---------------------------------------------------------------------------
# Streaming provider
# ---------------------------------------------------------------------------

@dataclass
class SpectrumReading:
    """
    One pull from a streaming spectrum provider.

    ``decibels`` is optional: providers that only expose a byte spectrum
    leave it as None and magnitude is recovered from the bytes.
    """

    waveform: np.ndarray
    frequency_bins: np.ndarray
    decibels: np.ndarray | None = None

    def magnitude(self, min_decibels: float, max_decibels: float) -> np.ndarray:
        """Linear magnitude spectrum, whichever representation was supplied."""
        if self.decibels is not None:
            return decibels_to_magnitude(self.decibels)
        return bytes_to_magnitude(self.frequency_bins, min_decibels, max_decibels)


class StreamingAnalyser:
    """
    Live spectrum provider fed by a sample source.

    Every ``pull()`` drains whatever the source has produced since the last
    call into a ring buffer holding the latest ``fft_size`` samples, then
    computes a Blackman-windowed FFT, smooths it against the previous pull
    with ``smoothing_time_constant`` and reports it in decibels and bytes.
    """

    def __init__(
        self,
        fft_size: int = 2048,
        smoothing_time_constant: float = 0.8,
        min_decibels: float = -90.0,
        max_decibels: float = -10.0,
    ):
        if not is_power_of_two(fft_size):
            raise UnsupportedConfigurationError(
                f"fft_size must be a power of two, got {fft_size}"
            )
        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = create_window(fft_size, "blackman")
        self._buffer = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._source = None

    @classmethod
    def from_config(cls, config: AnalysisConfig) -> "StreamingAnalyser":
        return cls(
            fft_size=config.fft_size,
            smoothing_time_constant=config.smoothing_time_constant,
            min_decibels=config.min_decibels,
            max_decibels=config.max_decibels,
        )

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def is_connected(self) -> bool:
        return self._source is not None

    def connect(self, source) -> None:
        """Attach a sample source, replacing any previous one."""
        if self._source is not None and self._source is not source:
            logger.debug("Replacing streaming source %r", self._source)
        self._source = source

    def disconnect(self) -> None:
        self._source = None

    def reset(self) -> None:
        """Forget buffered samples and smoothing history."""
        self._buffer[:] = 0.0
        self._smoothed[:] = 0.0

    def write(self, samples: np.ndarray) -> None:
        """Append samples to the ring buffer, keeping the latest ``fft_size``."""
        chunk = np.asarray(samples, dtype=np.float64).ravel()
        if chunk.size == 0:
            return
        if chunk.size >= self.fft_size:
            self._buffer[:] = chunk[-self.fft_size:]
        else:
            self._buffer = np.concatenate((self._buffer[chunk.size:], chunk))

    def pull(self) -> SpectrumReading:
        """Drain the source and return the current spectrum snapshot."""
        if self._source is not None:
            self.write(self._source.read())

        spectrum = scipy.fft.rfft(self._buffer * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)

        return SpectrumReading(
            waveform=self._buffer.copy(),
            frequency_bins=decibels_to_bytes(decibels, self.min_decibels, self.max_decibels),
            decibels=decibels,
        )
