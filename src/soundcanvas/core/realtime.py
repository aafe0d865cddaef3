"""
Streaming feature extraction for live visualization.

Architecture Overview
---------------------
::

    Sample source (microphone, file playback, ...)
        │
        ▼  connect(source)
    StreamingAnalyser  (ring buffer, smoothed spectrum, dB / bytes)
        │
        ▼  get_features()   one call per display frame
    FeatureAnalyzer + TrackerState (flux, onset, tempo)
        │
        └─► RealtimeFeatureFrame  (returned to the caller for rendering)

The engine never spawns work: each ``get_features()`` call pulls the
latest spectrum, computes one frame and returns.
"""

import enum
import logging
import time
from typing import Callable

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.analyzer import FeatureAnalyzer
from soundcanvas.core.frame import RealtimeFeatureFrame
from soundcanvas.core.spectrum import StreamingAnalyser
from soundcanvas.core.trackers import TrackerState
from soundcanvas.errors import NotInitializedError

logger = logging.getLogger(__name__)


class EngineState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class RealtimeEngine:
    """Pull-based streaming analysis engine."""

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        provider=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration. ``fft_size``,
                ``smoothing_time_constant`` and the decibel window configure
                the default provider.
            provider: Streaming spectrum provider with ``connect``,
                ``disconnect`` and ``pull`` methods (default:
                StreamingAnalyser).
            clock: Monotonic clock in seconds used to stamp frames and time
                onsets.
        """
        self.config = (config or AnalysisConfig()).validate()
        self.provider = provider or StreamingAnalyser.from_config(self.config)
        self.clock = clock

        self.analyzer = FeatureAnalyzer(self.config)
        self.state = EngineState.IDLE
        self._trackers = TrackerState()

    @property
    def is_running(self) -> bool:
        return self.state is EngineState.RUNNING

    def connect(self, source) -> None:
        """Attach a sample source and start running."""
        self.provider.connect(source)
        if self.state is not EngineState.RUNNING:
            logger.debug("Realtime engine running (fft_size=%d)", self.config.fft_size)
        self.state = EngineState.RUNNING

    def get_features(self) -> RealtimeFeatureFrame:
        """
        Extract one feature frame from the current spectrum.

        Returns:
            RealtimeFeatureFrame stamped with the clock time.

        Raises:
            NotInitializedError: If no source is connected.
        """
        if self.state is not EngineState.RUNNING:
            raise NotInitializedError("Realtime engine has no connected source")

        now = float(self.clock())
        reading = self.provider.pull()
        magnitude = reading.magnitude(self.config.min_decibels, self.config.max_decibels)

        values = self.analyzer.analyze(
            waveform=reading.waveform,
            magnitude=magnitude,
            frequency_bins=reading.frequency_bins,
            state=self._trackers,
            time_sec=now,
        )
        return RealtimeFeatureFrame(**values, timestamp=now)

    def reset(self) -> None:
        """Clear flux, onset and tempo history and the provider's smoothing."""
        self._trackers.reset()
        provider_reset = getattr(self.provider, "reset", None)
        if provider_reset is not None:
            provider_reset()

    def dispose(self) -> None:
        """Release the source connection. Safe to call repeatedly."""
        if self.state is EngineState.IDLE:
            return
        self.provider.disconnect()
        self._trackers.reset()
        self.state = EngineState.IDLE
        logger.debug("Realtime engine disposed")

    def __enter__(self) -> "RealtimeEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
