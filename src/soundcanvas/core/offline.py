"""
Batch feature extraction over a decoded sample buffer.

Frames are produced at a fixed hop with the reference DFT, stamped with a
sample-accurate frame index and time position. Each analysis call starts
from empty tracker state, so the same buffer always yields the same frames
no matter what was analysed before.
"""

import logging
import math
from pathlib import Path
from typing import Callable, Iterator, Union

import librosa
import numpy as np

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.analyzer import FeatureAnalyzer
from soundcanvas.core.frame import OfflineFeatureFrame
from soundcanvas.core.source import DecodedAudio, load_audio
from soundcanvas.core.spectrum import (
    SpectrumTransform,
    get_transform,
    magnitude_to_bytes,
)
from soundcanvas.core.trackers import TrackerState, update_flux
from soundcanvas.core.windowing import Windower
from soundcanvas.errors import (
    AnalysisCancelledError,
    NotInitializedError,
    UnsupportedConfigurationError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]
BufferLike = Union[DecodedAudio, np.ndarray]


class OfflineEngine:
    """
    Deterministic, frame-accurate batch analysis.

    A buffer is attached with ``load()`` / ``load_file()`` or passed directly
    to the ``analyze_*`` methods.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        transform: SpectrumTransform | None = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (FFT size, hop, window, sample rate).
            transform: Spectrum transform; defaults to ``config.transform``
                (the reference DFT unless configured otherwise).
        """
        self.config = (config or AnalysisConfig()).validate()
        self.transform = transform or get_transform(self.config.transform)
        self.windower = Windower(
            self.config.fft_size,
            self.config.hop_size,
            self.config.window_function,
        )
        self.analyzer = FeatureAnalyzer(self.config)

        self.audio: DecodedAudio | None = None
        self._trackers = TrackerState()

    # ------------------------------------------------------------------
    # Buffer management
    # ------------------------------------------------------------------

    def load(self, samples: BufferLike, sample_rate: int | None = None) -> DecodedAudio:
        """
        Attach a sample buffer.

        Buffers at a rate other than the configured one are resampled.

        Args:
            samples: DecodedAudio or raw samples (mono, or channels-first).
            sample_rate: Rate of raw samples (default: configured rate).

        Returns:
            The attached DecodedAudio.
        """
        if isinstance(samples, DecodedAudio):
            audio = samples
        else:
            audio = DecodedAudio.from_array(samples, sample_rate or self.config.sample_rate)

        if audio.sample_rate != self.config.sample_rate:
            logger.info(
                "Resampling buffer from %d Hz to %d Hz",
                audio.sample_rate,
                self.config.sample_rate,
            )
            resampled = librosa.resample(
                audio.samples,
                orig_sr=audio.sample_rate,
                target_sr=self.config.sample_rate,
            )
            audio = DecodedAudio.from_array(resampled, self.config.sample_rate)

        self.audio = audio
        self._trackers.reset()
        return audio

    def load_file(self, audio_path: Union[str, Path]) -> DecodedAudio:
        """Decode an audio file at the configured rate and attach it."""
        return self.load(load_audio(audio_path, sample_rate=self.config.sample_rate))

    @property
    def duration(self) -> float:
        return self.audio.duration if self.audio is not None else 0.0

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    def reset(self) -> None:
        """Clear tracker state carried over with ``carry_state=True``."""
        self._trackers.reset()

    def _require_samples(self, buffer: BufferLike | None) -> np.ndarray:
        if buffer is not None:
            self.load(buffer)
        if self.audio is None:
            raise NotInitializedError("No audio buffer loaded")
        return self.audio.samples

    # ------------------------------------------------------------------
    # Frame computation
    # ------------------------------------------------------------------

    def _analyze_frame(
        self,
        frame: np.ndarray,
        frame_index: int,
        time_position: float,
        state: TrackerState,
    ) -> OfflineFeatureFrame:
        magnitude = self.transform.magnitude(frame)
        values = self.analyzer.analyze(
            waveform=frame,
            magnitude=magnitude,
            frequency_bins=magnitude_to_bytes(magnitude),
            state=state,
            time_sec=time_position,
        )
        return OfflineFeatureFrame(
            **values,
            frame_index=frame_index,
            time_position=time_position,
        )

    def _sample_range(
        self,
        n_samples: int,
        start_time: float | None,
        end_time: float | None,
    ) -> tuple[int, int]:
        sr = self.config.sample_rate
        start = 0 if start_time is None else self._to_sample(start_time)
        end = n_samples if end_time is None else self._to_sample(end_time)
        if start < 0 or end > n_samples:
            logger.warning(
                "Range %d-%d clamped to buffer of %d samples (%.3fs)",
                start,
                end,
                n_samples,
                n_samples / sr,
            )
        return min(max(start, 0), n_samples), min(max(end, 0), n_samples)

    def _to_sample(self, time_sec: float) -> int:
        if not math.isfinite(time_sec):
            raise UnsupportedConfigurationError(f"Range bounds must be finite, got {time_sec}")
        return int(math.floor(time_sec * self.config.sample_rate))

    def iter_features(
        self,
        start_time: float | None = None,
        end_time: float | None = None,
        buffer: BufferLike | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
        carry_state: bool = False,
    ) -> Iterator[OfflineFeatureFrame]:
        """
        Lazily analyse the loaded buffer, or a range of it, one hop at a time.

        Args:
            start_time: Range start in seconds (default: buffer start).
            end_time: Range end in seconds (default: buffer end).
            buffer: Buffer to load before analysing.
            progress_callback: Called with ``(frames_done, frames_total)``
                after every frame.
            should_cancel: Polled before every frame; returning True stops
                the loop with ``AnalysisCancelledError``.
            carry_state: Continue from the tracker state of the previous
                call instead of starting fresh. Breaks determinism across
                calls; use only for contiguous ranges.

        Returns:
            Iterator of OfflineFeatureFrame, one per hop, ``frame_index``
            counting from 0. Buffer and range are checked before the first
            frame is produced.
        """
        samples = self._require_samples(buffer)
        range_start, range_end = self._sample_range(len(samples), start_time, end_time)

        if not carry_state:
            self._trackers = TrackerState()

        return self._frames(
            samples[range_start:range_end],
            range_start,
            self._trackers,
            progress_callback,
            should_cancel,
        )

    def _frames(
        self,
        segment: np.ndarray,
        range_start: int,
        state: TrackerState,
        progress_callback: ProgressCallback | None,
        should_cancel: CancelCheck | None,
    ) -> Iterator[OfflineFeatureFrame]:
        sr = self.config.sample_rate
        total = self.windower.count(len(segment))

        for frame_index, (pos, frame) in enumerate(self.windower.frames(segment)):
            if should_cancel is not None and should_cancel():
                logger.warning("Offline analysis cancelled at frame %d/%d", frame_index, total)
                raise AnalysisCancelledError(frame_index)

            time_position = float(librosa.samples_to_time(range_start + pos, sr=sr))
            yield self._analyze_frame(frame, frame_index, time_position, state)

            if progress_callback is not None:
                progress_callback(frame_index + 1, total)

    def analyze_complete(
        self,
        buffer: BufferLike | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
        carry_state: bool = False,
    ) -> list[OfflineFeatureFrame]:
        """
        Analyse the whole buffer.

        Args:
            buffer: Buffer to load first (default: the attached one).
            progress_callback: See ``iter_features``.
            should_cancel: See ``iter_features``.
            carry_state: See ``iter_features``.

        Returns:
            Frames in order, one per hop.

        Raises:
            NotInitializedError: If no buffer is loaded.
        """
        frames = list(
            self.iter_features(
                buffer=buffer,
                progress_callback=progress_callback,
                should_cancel=should_cancel,
                carry_state=carry_state,
            )
        )
        logger.info("Analyzed %d frames (%.2fs of audio)", len(frames), self.duration)
        return frames

    def analyze_range(
        self,
        start_time: float,
        end_time: float,
        buffer: BufferLike | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
        carry_state: bool = False,
    ) -> list[OfflineFeatureFrame]:
        """
        Analyse ``[start_time, end_time)`` of the buffer.

        Bounds outside the buffer are clamped; an empty or inverted range
        returns an empty list. Time positions stay absolute.
        """
        return list(
            self.iter_features(
                start_time=start_time,
                end_time=end_time,
                buffer=buffer,
                progress_callback=progress_callback,
                should_cancel=should_cancel,
                carry_state=carry_state,
            )
        )

    def get_features_at_time(self, time_sec: float) -> OfflineFeatureFrame | None:
        """
        Analyse a single frame centred on ``time_sec``.

        Spectral flux is measured against the frame one hop earlier using a
        scratch tracker state, so the result never depends on previous calls.

        Returns:
            The frame, or None if the centred window leaves the buffer.

        Raises:
            NotInitializedError: If no buffer is loaded.
        """
        samples = self._require_samples(None)
        if not math.isfinite(time_sec):
            return None

        sr = self.config.sample_rate
        start = int(math.floor(time_sec * sr - self.config.fft_size / 2))
        frame = self.windower.window_at(samples, start)
        if frame is None:
            return None

        scratch = TrackerState()
        previous = self.windower.window_at(samples, start - self.config.hop_size)
        if previous is not None:
            update_flux(scratch, self.transform.magnitude(previous))

        frame_index = int(math.floor(time_sec * sr / self.config.hop_size))
        return self._analyze_frame(frame, frame_index, float(time_sec), scratch)
