"""
Command-line entry point.

    noise-remover recording.mp3 --method both --threshold 0.02 --amount 0.6

Options not given on the command line come from the persisted config, then
from the built-in defaults.
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from . import config as user_config
from .denoiser import AudioDenoiser, DenoiseMethod, ProcessingOptions
from .exceptions import NoiseRemoverError

logger = logging.getLogger(__name__)


_FORMAT_SUFFIXES = {"WAV": ".wav", "FLAC": ".flac", "OGG": ".ogg", "AIFF": ".aiff"}


def default_output_path(input_path: Path, format: Optional[str] = None) -> Path:
    suffix = _FORMAT_SUFFIXES.get(format, ".wav")
    return input_path.with_name(f"{input_path.stem}_denoised{suffix}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="noise-remover",
        description="Remove background noise from an audio file with a noise gate and high-pass blend.",
    )
    ap.add_argument("input", type=Path, help="Audio file to clean (WAV, FLAC, OGG, AIFF; MP3/M4A via ffmpeg)")
    ap.add_argument("-o", "--output", type=Path, default=None,
                    help="Output file (default: <input>_denoised with the --format suffix, else .wav)")
    ap.add_argument("--threshold", type=float, default=None,
                    help="Noise gate threshold, 0-1 (default: 0.01)")
    ap.add_argument("--amount", type=float, default=None,
                    help="Noise reduction amount, 0-1 (default: 0.5)")
    ap.add_argument("--method", choices=[m.value for m in DenoiseMethod], default=None,
                    help="Filters to apply (default: both)")
    ap.add_argument("--format", choices=["WAV", "FLAC", "OGG", "AIFF"], type=str.upper, default=None,
                    help="Output container (default: from the output suffix)")
    ap.add_argument("--save-defaults", action="store_true",
                    help="Remember these options for later runs")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def resolve_options(args: argparse.Namespace, stored: dict) -> ProcessingOptions:
    """Command-line values over stored values over defaults, validated once merged."""
    return ProcessingOptions.from_dict(
        user_config.stored_option_values(stored),
        noise_gate_threshold=args.threshold,
        noise_reduction_amount=args.amount,
        method=args.method,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    output_path = args.output or default_output_path(args.input, args.format)

    try:
        stored = user_config.load_config()
        options = resolve_options(args, stored)

        denoiser = AudioDenoiser.from_options(options)
        denoiser.load_audio(str(args.input))
        denoiser.process()
        denoiser.save(str(output_path), format=args.format)
    except NoiseRemoverError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved {output_path} ({denoiser.get_duration():.2f}s, "
          f"{denoiser.get_sample_rate()} Hz, method={options.method.value})")

    if args.save_defaults:
        path = user_config.save_config(
            user_config.remember_options(stored, options, output_path.parent)
        )
        logger.info("Saved defaults to %s", path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
