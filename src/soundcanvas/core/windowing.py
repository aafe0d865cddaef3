"""
Framing and windowing of sample buffers.

Frame ``k`` starts at sample ``k * hop_size`` and iteration stops as soon
as a full frame no longer fits in the buffer.
"""

from functools import lru_cache
from typing import Iterator

import numpy as np
from scipy.signal import windows as scipy_windows

from soundcanvas.config import WINDOW_FUNCTIONS
from soundcanvas.errors import UnsupportedConfigurationError


@lru_cache(maxsize=16)
def _cached_window(size: int, window_function: str) -> np.ndarray:
    # sym=True gives the (N-1) denominator used by all three formulas
    if window_function == "hann":
        window = scipy_windows.hann(size, sym=True)
    elif window_function == "hamming":
        window = scipy_windows.hamming(size, sym=True)
    else:
        window = scipy_windows.blackman(size, sym=True)
    window.setflags(write=False)
    return window


def create_window(size: int, window_function: str = "hann") -> np.ndarray:
    """
    Build window coefficients of the given length.

    Args:
        size: Window length in samples.
        window_function: "hann", "hamming" or "blackman".

    Returns:
        Read-only float64 array of ``size`` coefficients.
    """
    if window_function not in WINDOW_FUNCTIONS:
        raise UnsupportedConfigurationError(
            f"Unknown window function {window_function!r}; "
            f"expected one of {', '.join(WINDOW_FUNCTIONS)}"
        )
    if size <= 0:
        raise UnsupportedConfigurationError(f"Window size must be positive, got {size}")
    return _cached_window(int(size), window_function)


def frame_count(length: int, frame_size: int, hop_size: int) -> int:
    """Number of full frames that fit in a buffer of ``length`` samples."""
    if length < frame_size:
        return 0
    return (length - frame_size) // hop_size + 1


def iter_frames(
    samples: np.ndarray,
    frame_size: int,
    hop_size: int,
    window_function: str = "hann",
) -> Iterator[tuple[int, np.ndarray]]:
    """
    Lazily yield windowed frames over a sample buffer.

    Args:
        samples: 1-D sample buffer.
        frame_size: Frame length N.
        hop_size: Distance H between frame starts.
        window_function: Window applied to every frame.

    Yields:
        ``(start, frame)`` where ``frame = samples[start:start+N] * window``.
    """
    if hop_size <= 0:
        raise UnsupportedConfigurationError(f"hop_size must be positive, got {hop_size}")
    window = create_window(frame_size, window_function)
    samples = np.asarray(samples, dtype=np.float64)
    for start in range(0, len(samples) - frame_size + 1, hop_size):
        yield start, samples[start:start + frame_size] * window


class Windower:
    """Frames and windows buffers with a fixed frame size, hop and window."""

    def __init__(self, frame_size: int, hop_size: int, window_function: str = "hann"):
        self.frame_size = frame_size
        self.hop_size = hop_size
        self.window_function = window_function
        self.window = create_window(frame_size, window_function)

    def count(self, length: int) -> int:
        return frame_count(length, self.frame_size, self.hop_size)

    def frames(self, samples: np.ndarray) -> Iterator[tuple[int, np.ndarray]]:
        return iter_frames(samples, self.frame_size, self.hop_size, self.window_function)

    def window_at(self, samples: np.ndarray, start: int) -> np.ndarray | None:
        """Return the windowed frame starting at ``start``, or None if it does not fit."""
        if start < 0 or start + self.frame_size > len(samples):
            return None
        chunk = np.asarray(samples[start:start + self.frame_size], dtype=np.float64)
        return chunk * self.window
