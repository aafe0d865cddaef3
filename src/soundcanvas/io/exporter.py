"""
Feature manifest serialization.

Exports offline feature frames to a JSON manifest (or a NumPy archive)
for rendering and video export front ends.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, Union

import numpy as np

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.frame import ARRAY_FIELDS, SCALAR_FIELDS, OfflineFeatureFrame


@dataclass
class ManifestMetadata:
    """Metadata header for the feature manifest."""

    bpm: float
    duration: float
    sample_rate: int
    fft_size: int
    hop_size: int
    window_function: str
    transform: str
    n_frames: int
    version: str = "1.0"
    schema_version: str = "1.0"


def summary_bpm(frames: Sequence[OfflineFeatureFrame]) -> float:
    """Median of the non-zero per-frame BPM estimates, 0.0 if there are none."""
    estimates = [f.bpm for f in frames if f.bpm > 0.0]
    if not estimates:
        return 0.0
    return float(np.median(estimates))


class FeatureExporter:
    """
    Exports offline feature frames to manifest formats.

    Each manifest frame carries the frame stamp and every scalar feature;
    waveform and spectrum arrays are included on request.
    """

    def __init__(self, precision: int = 4, include_arrays: bool = False):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
            include_arrays: Include waveform, byte and magnitude spectra in
                JSON frames.
        """
        self.precision = precision
        self.include_arrays = include_arrays

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _build_frame(self, frame: OfflineFeatureFrame) -> dict[str, Any]:
        data: dict[str, Any] = {
            "frame_index": int(frame.frame_index),
            "time": self._round(frame.time_position),
            "is_onset": frame.is_onset,
        }
        for name in SCALAR_FIELDS:
            value = getattr(frame, name)
            data[name] = int(value) if name == "sample_rate" else self._round(value)

        if self.include_arrays:
            data["waveform"] = [self._round(v) for v in frame.waveform]
            data["magnitude_spectrum"] = [self._round(v) for v in frame.magnitude_spectrum]
            data["frequency_bins"] = frame.frequency_bins.astype(int).tolist()

        return data

    def build_manifest(
        self,
        frames: Sequence[OfflineFeatureFrame],
        duration: float,
        config: AnalysisConfig,
    ) -> dict[str, Any]:
        """
        Build the complete manifest dictionary.

        Args:
            frames: Frames from the offline engine, in order.
            duration: Audio duration in seconds.
            config: Configuration the frames were produced with.

        Returns:
            Complete manifest dictionary ready for serialization.
        """
        metadata = ManifestMetadata(
            bpm=self._round(summary_bpm(frames)),
            duration=self._round(duration),
            sample_rate=config.sample_rate,
            fft_size=config.fft_size,
            hop_size=config.hop_size,
            window_function=config.window_function,
            transform=config.transform,
            n_frames=len(frames),
        )

        return {
            "metadata": {
                "bpm": metadata.bpm,
                "duration": metadata.duration,
                "sample_rate": metadata.sample_rate,
                "fft_size": metadata.fft_size,
                "hop_size": metadata.hop_size,
                "window_function": metadata.window_function,
                "transform": metadata.transform,
                "n_frames": metadata.n_frames,
                "version": metadata.version,
                "schema_version": metadata.schema_version,
            },
            "frames": [self._build_frame(f) for f in frames],
        }

    def export_json(
        self,
        frames: Sequence[OfflineFeatureFrame],
        duration: float,
        config: AnalysisConfig,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Export manifest to JSON file.

        Returns:
            Path to written file.
        """
        manifest = self.build_manifest(frames, duration, config)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=indent)

        return output_path

    def export_numpy(
        self,
        frames: Sequence[OfflineFeatureFrame],
        config: AnalysisConfig,
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export frames as a NumPy .npz archive for faster loading.

        Scalar features become 1-D arrays of length ``n_frames``; waveform
        and spectra become 2-D ``(n_frames, bins)`` arrays.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)
        n_bins = config.fft_size // 2

        arrays: dict[str, np.ndarray] = {
            "frame_index": np.array([f.frame_index for f in frames], dtype=np.int64),
            "time_position": np.array([f.time_position for f in frames], dtype=np.float64),
        }
        for name in SCALAR_FIELDS:
            arrays[name] = np.array([getattr(f, name) for f in frames], dtype=np.float64)

        widths = {
            "waveform": config.fft_size,
            "magnitude_spectrum": n_bins,
            "frequency_bins": n_bins,
        }
        for name in ARRAY_FIELDS:
            dtype = np.uint8 if name == "frequency_bins" else np.float64
            if frames:
                arrays[name] = np.stack([getattr(f, name) for f in frames]).astype(dtype)
            else:
                arrays[name] = np.zeros((0, widths[name]), dtype=dtype)

        np.savez_compressed(
            output_path,
            fft_size=config.fft_size,
            hop_size=config.hop_size,
            n_frames=len(frames),
            **arrays,
        )

        return output_path

    def to_dict(
        self,
        frames: Sequence[OfflineFeatureFrame],
        duration: float,
        config: AnalysisConfig,
    ) -> dict[str, Any]:
        """Return manifest as dictionary (for in-memory use)."""
        return self.build_manifest(frames, duration, config)
