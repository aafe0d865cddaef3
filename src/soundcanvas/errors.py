"""
Error types raised by the feature extraction pipeline.

Configuration and precondition problems are raised immediately. Numeric
edge cases inside a frame (silence, zero energy) never raise; they come
back as zero-valued features instead.
"""


class SoundCanvasError(Exception):
    """Base class for all pipeline errors."""


class NotInitializedError(SoundCanvasError, RuntimeError):
    """An engine was used before a source or buffer was attached."""


class UnsupportedConfigurationError(SoundCanvasError, ValueError):
    """A configuration value is outside what the pipeline supports."""


class OutOfRangeError(SoundCanvasError, IndexError):
    """A requested time or sample range lies outside the loaded buffer."""


class AnalysisCancelledError(SoundCanvasError):
    """A batch analysis loop was cancelled between hops."""

    def __init__(self, frames_completed: int):
        super().__init__(f"Analysis cancelled after {frames_completed} frames")
        self.frames_completed = frames_completed
