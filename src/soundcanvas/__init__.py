"""Audio feature extraction for real-time and offline visualization."""

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.frame import AudioFeatureFrame, OfflineFeatureFrame, RealtimeFeatureFrame
from soundcanvas.core.offline import OfflineEngine
from soundcanvas.core.realtime import RealtimeEngine
from soundcanvas.io.exporter import FeatureExporter
from soundcanvas.pipeline import AnalysisPipeline

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "AudioFeatureFrame",
    "RealtimeFeatureFrame",
    "OfflineFeatureFrame",
    "RealtimeEngine",
    "OfflineEngine",
    "FeatureExporter",
    "AnalysisPipeline",
]
