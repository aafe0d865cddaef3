"""Manifest export."""

from soundcanvas.io.exporter import FeatureExporter

__all__ = ["FeatureExporter"]
