"""
Cross-frame trackers: spectral flux, onset detection and tempo.

All history lives in an explicit ``TrackerState`` that the owning engine
threads through these functions, one update per produced frame. A state
is never shared between engines.
"""

from collections import deque
from dataclasses import dataclass, field

import numpy as np

from soundcanvas.config import (
    ONSET_COOLDOWN_SEC,
    ONSET_HISTORY_SIZE,
    ONSET_THRESHOLD_MULTIPLIER,
    TEMPO_MIN_ONSETS,
    TEMPO_WINDOW_SEC,
)


@dataclass
class TrackerState:
    """History carried between frames by one engine."""

    previous_magnitude: np.ndarray | None = None
    flux_history: deque = field(
        default_factory=lambda: deque(maxlen=ONSET_HISTORY_SIZE)
    )
    last_onset_time: float | None = None
    onset_times: list = field(default_factory=list)

    def reset(self) -> None:
        """Drop all history, e.g. after a seek."""
        self.previous_magnitude = None
        self.flux_history.clear()
        self.last_onset_time = None
        self.onset_times.clear()


@dataclass
class TrackerOutput:
    """Tracker results for one frame."""

    flux: float
    onset_strength: float
    bpm: float


def update_flux(state: TrackerState, magnitude: np.ndarray) -> float:
    """
    Half-wave rectified spectral flux against the previous spectrum.

    ``mean(max(0, magnitude - previous))``: only increases count. The first
    call, or a call whose spectrum length differs from the previous one,
    returns 0.0 and seeds the state.
    """
    current = np.array(magnitude, dtype=np.float64)
    previous = state.previous_magnitude
    state.previous_magnitude = current

    if previous is None or previous.shape != current.shape or current.size == 0:
        return 0.0

    flux = float(np.mean(np.maximum(current - previous, 0.0)))
    return flux if np.isfinite(flux) else 0.0


def detect_onset(
    state: TrackerState,
    flux: float,
    time_sec: float,
    threshold_multiplier: float = ONSET_THRESHOLD_MULTIPLIER,
    cooldown_sec: float = ONSET_COOLDOWN_SEC,
) -> float:
    """
    Adaptive-threshold onset trigger.

    Every flux value enters the rolling history. An onset fires when the
    flux exceeds ``threshold_multiplier`` times the history mean and at
    least ``cooldown_sec`` has passed since the previous onset.

    Returns:
        1.0 on an onset, else 0.0.
    """
    state.flux_history.append(flux)
    threshold = threshold_multiplier * (sum(state.flux_history) / len(state.flux_history))

    if flux <= threshold:
        return 0.0
    if state.last_onset_time is not None and time_sec - state.last_onset_time < cooldown_sec:
        return 0.0

    state.last_onset_time = time_sec
    return 1.0


def estimate_tempo(
    state: TrackerState,
    onset_strength: float,
    time_sec: float,
    window_sec: float = TEMPO_WINDOW_SEC,
    min_onsets: int = TEMPO_MIN_ONSETS,
) -> float:
    """
    Tempo from the mean inter-onset interval.

    Onsets are recorded with their timestamp and forgotten once older than
    ``window_sec``. With at least ``min_onsets`` remaining the estimate is
    ``60 / mean(interval)``. Intervals are not clustered, so one irregular
    gap skews the result.

    The current estimate is reported on every frame, not only on frames
    that carry an onset, so the value holds steady between beats instead
    of dropping to 0.0.

    Returns:
        BPM, or 0.0 when too few onsets are known.
    """
    if onset_strength > 0.5:
        state.onset_times.append(time_sec)

    cutoff = time_sec - window_sec
    state.onset_times[:] = [t for t in state.onset_times if t > cutoff]

    if len(state.onset_times) < min_onsets:
        return 0.0

    intervals = np.diff(np.asarray(state.onset_times, dtype=np.float64))
    mean_interval = float(np.mean(intervals))
    if mean_interval <= 0.0 or not np.isfinite(mean_interval):
        return 0.0
    return 60.0 / mean_interval


def track(
    state: TrackerState,
    magnitude: np.ndarray,
    time_sec: float,
    cooldown_sec: float = ONSET_COOLDOWN_SEC,
) -> TrackerOutput:
    """Run flux, onset and tempo tracking for one frame."""
    flux = update_flux(state, magnitude)
    onset_strength = detect_onset(state, flux, time_sec, cooldown_sec=cooldown_sec)
    bpm = estimate_tempo(state, onset_strength, time_sec)
    return TrackerOutput(flux=flux, onset_strength=onset_strength, bpm=bpm)


class FluxTracker:
    """Spectral flux with its own previous-spectrum memory."""

    def __init__(self):
        self.state = TrackerState()

    def update(self, magnitude: np.ndarray) -> float:
        return update_flux(self.state, magnitude)

    def reset(self) -> None:
        self.state.reset()


class OnsetDetector:
    """Onset trigger with its own flux history and cooldown timer."""

    def __init__(
        self,
        threshold_multiplier: float = ONSET_THRESHOLD_MULTIPLIER,
        cooldown_sec: float = ONSET_COOLDOWN_SEC,
    ):
        self.threshold_multiplier = threshold_multiplier
        self.cooldown_sec = cooldown_sec
        self.state = TrackerState()

    def update(self, flux: float, time_sec: float) -> float:
        return detect_onset(
            self.state,
            flux,
            time_sec,
            threshold_multiplier=self.threshold_multiplier,
            cooldown_sec=self.cooldown_sec,
        )

    def reset(self) -> None:
        self.state.reset()


class TempoEstimator:
    """BPM estimate over a sliding window of onset timestamps."""

    def __init__(
        self,
        window_sec: float = TEMPO_WINDOW_SEC,
        min_onsets: int = TEMPO_MIN_ONSETS,
    ):
        self.window_sec = window_sec
        self.min_onsets = min_onsets
        self.state = TrackerState()

    def update(self, onset_strength: float, time_sec: float) -> float:
        return estimate_tempo(
            self.state,
            onset_strength,
            time_sec,
            window_sec=self.window_sec,
            min_onsets=self.min_onsets,
        )

    def reset(self) -> None:
        self.state.reset()
