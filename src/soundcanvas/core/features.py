"""
Per-frame feature extraction.

Pure functions over a time-domain frame or a linear magnitude spectrum.
Every function returns a finite float; silence and zero-energy spectra
yield 0.0 rather than NaN.
"""

import math

import numpy as np

from soundcanvas.config import (
    HARMONIC_COUNT,
    PITCH_MAX_HZ,
    PITCH_MIN_HZ,
    ROLLOFF_THRESHOLD,
)


def _finite(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


def _nearest_bin(frequency: float, bin_width: float) -> int:
    # Round half up, not numpy's half-to-even
    return int(math.floor(frequency / bin_width + 0.5))


# ---------------------------------------------------------------------------
# Time domain
# ---------------------------------------------------------------------------

def rms(frame: np.ndarray) -> float:
    """Root mean square amplitude."""
    x = np.asarray(frame, dtype=np.float64)
    if x.size == 0:
        return 0.0
    return _finite(np.sqrt(np.mean(x * x)))


def zero_crossing_rate(frame: np.ndarray) -> float:
    """
    Fraction of adjacent sample pairs whose sign differs.

    A sample counts as positive when ``>= 0``. The count is divided by the
    frame length, so the result lies in ``[0, 1)``.
    """
    x = np.asarray(frame, dtype=np.float64)
    if x.size == 0:
        return 0.0
    positive = x >= 0
    crossings = np.count_nonzero(positive[1:] != positive[:-1])
    return crossings / x.size


def fundamental_frequency(
    frame: np.ndarray,
    sample_rate: int,
    min_freq: float = PITCH_MIN_HZ,
    max_freq: float = PITCH_MAX_HZ,
) -> float:
    """
    Estimate F0 by autocorrelation.

    Periods ``p`` in ``[floor(sr/max_freq), floor(sr/min_freq))`` and below
    half the frame length are tried; the one with the largest positive
    ``sum(x[i] * x[i+p])`` wins, earliest first on ties.

    Args:
        frame: Time-domain samples.
        sample_rate: Sample rate in Hz.
        min_freq: Lowest detectable frequency.
        max_freq: Highest detectable frequency.

    Returns:
        ``sample_rate / best_period`` in Hz, or 0.0 when no period has a
        positive correlation.
    """
    x = np.asarray(frame, dtype=np.float64)
    min_period = max(1, int(math.floor(sample_rate / max_freq)))
    max_period = int(math.floor(sample_rate / min_freq))
    limit = x.size / 2

    best_correlation = 0.0
    best_period = 0
    period = min_period
    while period < max_period and period < limit:
        correlation = float(np.dot(x[:-period], x[period:]))
        if correlation > best_correlation:
            best_correlation = correlation
            best_period = period
        period += 1

    if best_period == 0:
        return 0.0
    return sample_rate / best_period


# ---------------------------------------------------------------------------
# Frequency domain
# ---------------------------------------------------------------------------

def spectral_centroid(magnitude: np.ndarray, bin_width: float) -> float:
    """Magnitude-weighted mean frequency in Hz; 0.0 for an empty spectrum."""
    m = np.asarray(magnitude, dtype=np.float64)
    total = float(np.sum(m))
    if total <= 0.0 or not math.isfinite(total):
        return 0.0
    frequencies = np.arange(m.size) * bin_width
    return _finite(np.dot(frequencies, m) / total)


def spectral_rolloff(
    magnitude: np.ndarray,
    bin_width: float,
    threshold: float = ROLLOFF_THRESHOLD,
) -> float:
    """
    Frequency below which ``threshold`` of the squared energy lies.

    Returns the first bin whose cumulative squared magnitude reaches
    ``threshold * total``. A threshold of 1.0 or more asks for the whole
    spectrum and always answers with the last bin's frequency, as does a
    threshold that is never reached.
    """
    m = np.asarray(magnitude, dtype=np.float64)
    if m.size == 0:
        return 0.0
    last_bin_freq = (m.size - 1) * bin_width
    if threshold >= 1.0:
        return last_bin_freq

    cumulative = np.cumsum(m * m)
    target = threshold * cumulative[-1]
    reached = np.nonzero(cumulative >= target)[0]
    if reached.size == 0:
        return last_bin_freq
    return float(reached[0] * bin_width)


def harmonicity(
    magnitude: np.ndarray,
    fundamental_freq: float,
    bin_width: float,
    n_harmonics: int = HARMONIC_COUNT,
) -> float:
    """
    Share of spectral magnitude sitting on the first harmonics of F0.

    Sums the magnitude at the nearest bin to each of the first
    ``n_harmonics`` multiples of ``fundamental_freq`` and divides by the
    total magnitude. Harmonics above the last bin are skipped.

    Returns:
        Value in [0, 1]; 0.0 when F0 is 0 or the spectrum is silent.
    """
    if fundamental_freq <= 0.0:
        return 0.0
    m = np.asarray(magnitude, dtype=np.float64)
    total = float(np.sum(m))
    if total <= 0.0 or not math.isfinite(total):
        return 0.0

    harmonic_energy = 0.0
    for harmonic in range(1, n_harmonics + 1):
        index = _nearest_bin(fundamental_freq * harmonic, bin_width)
        if index < m.size:
            harmonic_energy += m[index]

    return min(1.0, max(0.0, _finite(harmonic_energy / total)))


# ---------------------------------------------------------------------------
# Derived descriptors
# ---------------------------------------------------------------------------

def brightness(centroid: float, nyquist: float) -> float:
    return centroid / nyquist if nyquist > 0 else 0.0


def noisiness(zcr: float, nyquist: float) -> float:
    return zcr / nyquist if nyquist > 0 else 0.0


def band_energy(
    frequency_bins: np.ndarray,
    band: tuple[float, float],
    bin_width: float,
) -> float:
    """
    Mean byte level of a frequency band, scaled to [0, 1].

    Bins from ``floor(low / bin_width)`` through ``floor(high / bin_width)``
    are included, clipped to the spectrum length.
    """
    bins = np.asarray(frequency_bins, dtype=np.float64)
    low, high = band
    start = int(low // bin_width)
    end = min(int(high // bin_width), bins.size - 1)
    if start > end:
        return 0.0
    return float(np.mean(bins[start:end + 1]) / 255.0)


def spectral_bands(
    frequency_bins: np.ndarray,
    sample_rate: int,
    band_count: int = 32,
    scale: str = "linear",
    min_freq: float = 20.0,
    max_freq: float | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Reduce a byte spectrum to ``band_count`` averaged bands.

    Args:
        frequency_bins: Byte spectrum.
        sample_rate: Sample rate in Hz.
        band_count: Number of output bands.
        scale: "linear" for equal-width bands, "log" for logarithmically
            spaced bands between ``min_freq`` and ``max_freq``.
        min_freq: Lower edge of the log scale.
        max_freq: Upper edge of the log scale (default: Nyquist).

    Returns:
        Tuple of (band levels in [0, 1], band centre frequencies in Hz).
    """
    bins = np.asarray(frequency_bins, dtype=np.float64)
    n_bins = bins.size
    nyquist = sample_rate / 2.0
    levels = np.zeros(band_count, dtype=np.float64)
    centres = np.zeros(band_count, dtype=np.float64)
    if n_bins == 0 or band_count <= 0:
        return levels, centres

    if scale == "linear":
        per_band = max(1, n_bins // band_count)
        for i in range(band_count):
            start = min(i * per_band, n_bins - 1)
            end = min(start + per_band, n_bins)
            levels[i] = np.mean(bins[start:end]) / 255.0
            centres[i] = (start + end) / 2.0 * nyquist / n_bins
    elif scale == "log":
        top = max_freq or nyquist
        edges = np.geomspace(min_freq, top, band_count + 1)
        for i in range(band_count):
            start = min(int(edges[i] / nyquist * n_bins), n_bins - 1)
            end = min(max(int(edges[i + 1] / nyquist * n_bins), start + 1), n_bins)
            levels[i] = np.mean(bins[start:end]) / 255.0
            centres[i] = math.sqrt(edges[i] * edges[i + 1])
    else:
        raise ValueError(f"Unknown band scale: {scale!r}")

    return levels, centres
