"""Core feature extraction modules."""

from soundcanvas.core.analyzer import FeatureAnalyzer
from soundcanvas.core.features import band_energy, spectral_bands
from soundcanvas.core.offline import OfflineEngine
from soundcanvas.core.realtime import RealtimeEngine
from soundcanvas.core.source import to_mono

__all__ = [
    "FeatureAnalyzer",
    "OfflineEngine",
    "RealtimeEngine",
    "band_energy",
    "spectral_bands",
    "to_mono",
]
