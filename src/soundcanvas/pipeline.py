"""
File-to-manifest analysis pipeline.

Orchestrates the complete flow from audio file to feature manifest:
decode, offline analysis, export, with a content-addressed manifest cache.
"""

import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Union

from soundcanvas.config import AnalysisConfig
from soundcanvas.core.frame import OfflineFeatureFrame
from soundcanvas.core.offline import CancelCheck, OfflineEngine, ProgressCallback
from soundcanvas.core.source import DecodedAudio
from soundcanvas.io.exporter import FeatureExporter, summary_bpm

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """
    Complete audio-to-manifest processing pipeline.

    Combines decoding, offline feature extraction and export into a
    single unified interface.
    """

    # Version of the analysis logic/schema.
    # Increment whenever feature extraction changes so cached manifests
    # are invalidated and re-generated.
    ANALYSIS_VERSION = "1.0"

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        precision: int = 4,
        include_arrays: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Analysis configuration (default: AnalysisConfig()).
            precision: Decimal places for manifest floats.
            include_arrays: Include waveform and spectra in JSON frames.
        """
        self.config = (config or AnalysisConfig()).validate()
        self.engine = OfflineEngine(self.config)
        self.exporter = FeatureExporter(precision=precision, include_arrays=include_arrays)

    def _get_cache_dir(self) -> Path:
        """Return the directory for caching manifests."""
        cache_dir = Path.home() / ".cache" / "soundcanvas" / "manifests"
        cache_dir.mkdir(parents=True, exist_ok=True)
        return cache_dir

    def _calculate_file_hash(self, file_path: Path) -> str:
        """Calculate SHA256 hash of the file."""
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for byte_block in iter(lambda: f.read(4096), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()

    def _get_config_hash(
        self,
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> str:
        """Hash of everything that changes the manifest besides the audio."""
        config = {
            "version": self.ANALYSIS_VERSION,
            "analysis": self.config.to_dict(),
            "precision": self.exporter.precision,
            "include_arrays": self.exporter.include_arrays,
            "range": [start_time, end_time],
        }
        return hashlib.md5(json.dumps(config, sort_keys=True).encode("utf-8")).hexdigest()

    def _get_cache_path(
        self,
        audio_path: Path,
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> Path:
        """Get the cache file path for a given audio file and range."""
        file_hash = self._calculate_file_hash(audio_path)
        config_hash = self._get_config_hash(start_time, end_time)
        return self._get_cache_dir() / f"manifest_{file_hash}_{config_hash}.json"

    def clear_cache(self) -> None:
        """Clear the manifest cache."""
        cache_dir = self._get_cache_dir()
        if cache_dir.exists():
            shutil.rmtree(cache_dir)
            cache_dir.mkdir(parents=True, exist_ok=True)

    def load(self, audio_path: Union[str, Path]) -> DecodedAudio:
        """
        Decode an audio file at the configured sample rate.

        Args:
            audio_path: Path to audio file.

        Returns:
            DecodedAudio attached to the pipeline's engine.
        """
        return self.engine.load_file(audio_path)

    def analyze(
        self,
        audio: DecodedAudio | None = None,
        start_time: float | None = None,
        end_time: float | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> list[OfflineFeatureFrame]:
        """
        Extract feature frames from the whole buffer or a time range.

        Args:
            audio: Buffer to analyse (default: the last loaded one).
            start_time: Range start in seconds.
            end_time: Range end in seconds.
            progress_callback: Called with ``(frames_done, frames_total)``.
            should_cancel: Polled before every frame.

        Returns:
            Frames in order.
        """
        return list(
            self.engine.iter_features(
                start_time=start_time,
                end_time=end_time,
                buffer=audio,
                progress_callback=progress_callback,
                should_cancel=should_cancel,
            )
        )

    def export(
        self,
        frames: list[OfflineFeatureFrame],
        duration: float,
        output_path: Union[str, Path],
        format: str = "json",
    ) -> Path:
        """
        Write frames to a manifest file.

        Args:
            frames: Analysed frames.
            duration: Audio duration in seconds.
            output_path: Output file path.
            format: "json" or "numpy".

        Returns:
            Path to written file.
        """
        if format == "numpy":
            return self.exporter.export_numpy(frames, self.config, output_path)
        return self.exporter.export_json(frames, duration, self.config, output_path)

    def process(
        self,
        audio_path: Union[str, Path],
        output_path: Union[str, Path] | None = None,
        format: str = "json",
        use_cache: bool = True,
        start_time: float | None = None,
        end_time: float | None = None,
        progress_callback: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> dict[str, Any]:
        """
        Run the complete pipeline from audio file to manifest.

        Args:
            audio_path: Path to input audio file.
            output_path: Path for output manifest. If None, only returns dict.
            format: Output format ("json" or "numpy").
            use_cache: Whether to use a cached manifest if available.
                NumPy export always re-analyses since only the JSON
                manifest is cached.
            start_time: Optional range start in seconds.
            end_time: Optional range end in seconds.
            progress_callback: Called with ``(frames_done, frames_total)``.
            should_cancel: Polled before every frame.

        Returns:
            Dictionary containing manifest data and processing info.
        """
        audio_path = Path(audio_path)
        use_cache = use_cache and format == "json"

        if use_cache:
            try:
                cache_path = self._get_cache_path(audio_path, start_time, end_time)
                if cache_path.exists():
                    with open(cache_path, "r", encoding="utf-8") as f:
                        manifest = json.load(f)

                    metadata = manifest.get("metadata", {})
                    logger.info("Loaded analysis from cache: %s", cache_path)

                    result = {
                        "manifest": manifest,
                        "bpm": metadata.get("bpm", 0.0),
                        "duration": metadata.get("duration", 0.0),
                        "n_frames": metadata.get("n_frames", 0),
                        "sample_rate": metadata.get("sample_rate", self.config.sample_rate),
                    }

                    if output_path:
                        with open(output_path, "w", encoding="utf-8") as f:
                            json.dump(manifest, f, indent=2)
                        result["output_path"] = str(output_path)

                    return result
            except (OSError, ValueError) as e:
                logger.warning("Failed to load cache: %s. Re-analyzing.", e)

        audio = self.load(audio_path)
        frames = self.analyze(
            audio,
            start_time=start_time,
            end_time=end_time,
            progress_callback=progress_callback,
            should_cancel=should_cancel,
        )

        manifest = self.exporter.to_dict(frames, audio.duration, self.config)

        if use_cache:
            try:
                cache_path = self._get_cache_path(audio_path, start_time, end_time)
                with open(cache_path, "w", encoding="utf-8") as f:
                    json.dump(manifest, f, indent=2)
            except OSError as e:
                logger.warning("Failed to save cache: %s", e)

        result = {
            "manifest": manifest,
            "bpm": summary_bpm(frames),
            "duration": audio.duration,
            "n_frames": len(frames),
            "sample_rate": self.config.sample_rate,
        }

        if output_path:
            written_path = self.export(frames, audio.duration, output_path, format)
            result["output_path"] = str(written_path)

        return result

    def process_to_manifest(self, audio_path: Union[str, Path]) -> dict[str, Any]:
        """Process audio and return the manifest dictionary directly."""
        return self.process(audio_path)["manifest"]
