"""
Command-line interface for audio feature extraction.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from soundcanvas.config import TRANSFORMS, WINDOW_FUNCTIONS, AnalysisConfig, load_config
from soundcanvas.errors import AnalysisCancelledError, SoundCanvasError
from soundcanvas.pipeline import AnalysisPipeline


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="soundcanvas-analyze",
        description="Extract per-frame audio features for visualization",
    )

    parser.add_argument(
        "input",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output manifest file path (default: <input>_features.json)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file of analysis options; flags below override it",
    )

    parser.add_argument(
        "--fft-size",
        type=int,
        default=None,
        help="Frame length in samples, a power of two (default: 2048)",
    )

    parser.add_argument(
        "--hop-size",
        type=int,
        default=None,
        help="Samples between frame starts (default: 512)",
    )

    parser.add_argument(
        "--window",
        choices=WINDOW_FUNCTIONS,
        default=None,
        help="Window function (default: hann)",
    )

    parser.add_argument(
        "--transform",
        choices=TRANSFORMS,
        default=None,
        help="Spectrum transform (default: dft)",
    )

    parser.add_argument(
        "-s", "--sample-rate",
        type=int,
        default=None,
        help="Analysis sample rate; audio is resampled (default: 44100)",
    )

    parser.add_argument(
        "--start",
        type=float,
        default=None,
        help="Range start in seconds",
    )

    parser.add_argument(
        "--end",
        type=float,
        default=None,
        help="Range end in seconds",
    )

    parser.add_argument(
        "--format",
        choices=["json", "numpy"],
        default="json",
        help="Output format (default: json)",
    )

    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore and do not write the manifest cache",
    )

    parser.add_argument(
        "--include-arrays",
        action="store_true",
        help="Include waveform and spectra in JSON frames",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print manifest summary to stdout",
    )

    return parser


def _resolve_config(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config) if args.config else AnalysisConfig()
    overrides = {
        "fft_size": args.fft_size,
        "hop_size": args.hop_size,
        "window_function": args.window,
        "transform": args.transform,
        "sample_rate": args.sample_rate,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    return config.replace(**changes) if changes else config


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )

    # Validate input
    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1
    if args.config is not None and not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        config = _resolve_config(args)
    except (SoundCanvasError, ValueError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    # Determine output path
    output_path = args.output
    if output_path is None:
        suffix = ".npz" if args.format == "numpy" else ".json"
        output_path = args.input.with_name(f"{args.input.stem}_features{suffix}")

    pipeline = AnalysisPipeline(config, include_arrays=args.include_arrays)

    if not args.quiet:
        print(f"Processing: {args.input}")
        print(
            f"FFT size: {config.fft_size}  Hop: {config.hop_size}  "
            f"Window: {config.window_function}  Transform: {config.transform}"
        )

    try:
        result = pipeline.process(
            args.input,
            output_path=output_path,
            format=args.format,
            use_cache=not args.no_cache,
            start_time=args.start,
            end_time=args.end,
            progress_callback=None if args.quiet else _progress_bar,
        )
    except AnalysisCancelledError as e:
        print(f"\nCancelled after {e.frames_completed} frames", file=sys.stderr)
        return 1
    except SoundCanvasError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"BPM: {result['bpm']:.1f}")
        print(f"Duration: {result['duration']:.2f}s")
        print(f"Frames: {result['n_frames']}")
        print(f"Output: {result['output_path']}")

    if args.summary:
        manifest = result["manifest"]
        print("\n--- Manifest Summary ---")
        print(json.dumps(manifest["metadata"], indent=2))

        frames = manifest["frames"]
        if len(frames) > 0:
            print(f"\nFirst frame: {json.dumps(frames[0], indent=2)}")
        if len(frames) > 1:
            mid = len(frames) // 2
            print(f"\nMiddle frame ({mid}): {json.dumps(frames[mid], indent=2)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
