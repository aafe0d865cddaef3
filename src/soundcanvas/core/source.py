"""
Sample sources: decoded buffers for batch analysis and live sample
streams for the realtime engine.

Multi-channel input is always channels-first, ``(channels, n)``, the
layout ``librosa.load(mono=False)`` returns. Capture callbacks that deliver
``(frames, channels)`` blocks must transpose before pushing. Every entry
point reduces to mono through ``to_mono``.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union

import librosa
import numpy as np

logger = logging.getLogger(__name__)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average a channels-first buffer down to one float64 channel."""
    y = np.asarray(samples, dtype=np.float64)
    if y.ndim > 1:
        y = librosa.to_mono(y)
    return y


@dataclass
class DecodedAudio:
    """Container for a single-channel decoded sample buffer."""

    samples: np.ndarray
    sample_rate: int
    duration: float

    @property
    def n_samples(self) -> int:
        """Total number of samples in the buffer."""
        return len(self.samples)

    @classmethod
    def from_array(cls, samples: np.ndarray, sample_rate: int) -> "DecodedAudio":
        """
        Wrap an in-memory buffer, reducing multi-channel input to mono.

        Args:
            samples: 1-D samples, or 2-D ``(channels, n)``.
            sample_rate: Sample rate in Hz.
        """
        y = to_mono(samples)
        return cls(
            samples=y,
            sample_rate=int(sample_rate),
            duration=len(y) / float(sample_rate),
        )


def load_audio(
    audio_path: Union[str, Path],
    sample_rate: int | None = None,
) -> DecodedAudio:
    """
    Decode an audio file to a mono buffer.

    Args:
        audio_path: Path to audio file (wav, mp3, flac).
        sample_rate: Target sample rate. None preserves the file's rate.

    Returns:
        DecodedAudio with the mono signal.
    """
    y, sr_out = librosa.load(audio_path, sr=sample_rate, mono=True)
    logger.debug("Loaded %s: %d samples @ %d Hz", audio_path, len(y), sr_out)
    return DecodedAudio.from_array(y, sr_out)


class SampleSource(Protocol):
    """Anything that hands over newly produced samples on request."""

    def read(self) -> np.ndarray:
        """Return the samples produced since the last call (may be empty)."""
        ...


class ArraySampleSource:
    """
    Replays a buffer in fixed-size blocks, one block per ``read()``.

    Useful for driving the realtime engine from a decoded file or in tests.
    """

    def __init__(self, samples: np.ndarray, block_size: int = 735):
        self.samples = to_mono(samples).ravel()
        self.block_size = block_size
        self.position = 0

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.samples)

    def read(self) -> np.ndarray:
        block = self.samples[self.position:self.position + self.block_size]
        self.position += len(block)
        return block

    def rewind(self) -> None:
        self.position = 0


class QueueSampleSource:
    """
    Hand-off between a capture callback and the realtime engine.

    A capture driver calls ``push()`` from its own thread; the engine
    drains everything pushed so far on each ``read()``. At most
    ``max_blocks`` blocks are kept so a stalled reader cannot grow memory.
    """

    def __init__(self, max_blocks: int = 64):
        self._blocks: deque = deque(maxlen=max_blocks)
        self._lock = threading.Lock()

    def push(self, samples: np.ndarray) -> None:
        block = to_mono(samples)
        with self._lock:
            self._blocks.append(block.copy())

    def read(self) -> np.ndarray:
        with self._lock:
            blocks = list(self._blocks)
            self._blocks.clear()
        if not blocks:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate(blocks)
