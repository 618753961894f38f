"""grainpy CLI batch processor.

Applies simulated film grain to image files without any UI.
"""

import os
import sys

os.environ.setdefault("NUMBA_THREADING_LAYER", "workqueue")

import argparse
import json
import logging
import time
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image

from grainpy.domain.errors import GrainError, InvalidInputError
from grainpy.domain.models import FilmType, GrainSettings, normalize_settings_keys
from grainpy.kernel.system.config import APP_CONFIG, DEFAULT_GRAIN_SETTINGS
from grainpy.kernel.system.logging import setup_logging
from grainpy.services.rendering.engine import GrainEngine

SUPPORTED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp")
FILM_CHOICES = tuple(f.value for f in FilmType)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grainpy",
        description="grainpy -- physically based film grain simulation",
        epilog="Example: grainpy --iso 800 --film ilford --output ./grain photo.png",
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        metavar="FILE_OR_DIR",
        help="Input images or directories containing images",
    )

    parser.add_argument(
        "--iso",
        type=float,
        default=None,
        metavar="FLOAT",
        help=f"Film speed; drives grain size and density (default: {DEFAULT_GRAIN_SETTINGS.iso:g})",
    )

    parser.add_argument(
        "--film",
        choices=FILM_CHOICES,
        default=None,
        help=f"Film stock response (default: {DEFAULT_GRAIN_SETTINGS.film_type.value})",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        metavar="INT",
        help="Random seed for reproducible grain placement",
    )

    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        metavar="INT",
        help=f"Development iteration budget, 1..20 (default: {DEFAULT_GRAIN_SETTINGS.max_iterations})",
    )

    parser.add_argument(
        "--convergence-threshold",
        type=float,
        default=None,
        metavar="FLOAT",
        help=f"Accepted lightness deviation (default: {DEFAULT_GRAIN_SETTINGS.convergence_threshold})",
    )

    parser.add_argument(
        "--sampling-density",
        type=float,
        default=None,
        metavar="FLOAT",
        help="Fraction of pixels used for trial prints during development "
        f"(default: {DEFAULT_GRAIN_SETTINGS.lightness_estimation_sampling_density})",
    )

    parser.add_argument(
        "--debug-centers",
        action="store_true",
        default=False,
        help="Mark every grain centre with a magenta cross",
    )

    parser.add_argument(
        "--settings",
        default=None,
        metavar="JSON_FILE",
        help="Load grain settings from a JSON file (CLI flags still win)",
    )

    parser.add_argument(
        "--output",
        default=APP_CONFIG.default_export_dir,
        metavar="DIR",
        help=f"Output directory (default: {APP_CONFIG.default_export_dir})",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log pipeline details",
    )

    return parser


def discover_files(inputs: List[str]) -> List[str]:
    """Resolves input paths to a sorted list of supported image files."""
    files = []
    for input_path in inputs:
        path = os.path.abspath(input_path)
        if os.path.isfile(path):
            if path.lower().endswith(SUPPORTED_EXTENSIONS):
                files.append(path)
            else:
                print(f"Warning: Skipping unsupported file: {path}", file=sys.stderr)
        elif os.path.isdir(path):
            for root, _dirs, filenames in os.walk(path):
                for fname in sorted(filenames):
                    if fname.lower().endswith(SUPPORTED_EXTENSIONS):
                        files.append(os.path.join(root, fname))
        else:
            print(f"Warning: Path not found: {path}", file=sys.stderr)
    return files


def build_settings(args: argparse.Namespace) -> GrainSettings:
    """Builds GrainSettings with loading priority:
    DEFAULT -> --settings file -> CLI flags
    """
    merged: Dict[str, Any] = DEFAULT_GRAIN_SETTINGS.to_dict()

    if args.settings:
        with open(os.path.abspath(args.settings), "r") as f:
            file_settings = json.load(f)
        if not isinstance(file_settings, dict):
            raise InvalidInputError(
                f"Settings file must hold a JSON object, got {type(file_settings).__name__}"
            )
        merged.update(normalize_settings_keys(file_settings))

    overrides = {
        "iso": args.iso,
        "film_type": args.film,
        "seed": args.seed,
        "max_iterations": args.max_iterations,
        "convergence_threshold": args.convergence_threshold,
        "lightness_estimation_sampling_density": args.sampling_density,
    }
    merged.update({k: v for k, v in overrides.items() if v is not None})
    if args.debug_centers:
        merged["debug_grain_centers"] = True

    return GrainSettings.from_dict(merged)


def load_rgba(path: str) -> np.ndarray:
    with Image.open(path) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.uint8)


def output_path_for(file_path: str, output_dir: str) -> str:
    name = os.path.splitext(os.path.basename(file_path))[0]
    return os.path.join(output_dir, f"{name}_grain.png")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns 0 on success, 1 on failure."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else APP_CONFIG.log_level)

    files = discover_files(args.inputs)
    if not files:
        print("Error: No supported image files found.", file=sys.stderr)
        return 1

    try:
        settings = build_settings(args)
    except (json.JSONDecodeError, OSError, GrainError) as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    output_dir = os.path.abspath(args.output)
    os.makedirs(output_dir, exist_ok=True)

    total = len(files)
    failed = 0
    print(f"Processing {total} file(s) -> {output_dir}", file=sys.stderr)
    t_start = time.monotonic()

    for i, file_path in enumerate(files, 1):
        name = os.path.basename(file_path)
        print(f"  [{i}/{total}] {name} ...", file=sys.stderr, end="", flush=True)
        t_file = time.monotonic()

        try:
            rgba = load_rgba(file_path)
            height, width = rgba.shape[:2]
            # Fresh engine per file so a fixed seed gives the same grain on every image
            result = GrainEngine(settings).process(rgba, width, height)
            Image.fromarray(result.image).save(
                output_path_for(file_path, output_dir), format="PNG"
            )
            elapsed = time.monotonic() - t_file
            print(
                f" OK ({elapsed:.1f}s, {result.metrics['grain_count']} grains)",
                file=sys.stderr,
            )
        except (OSError, GrainError) as e:
            print(f" ERROR: {e}", file=sys.stderr)
            failed += 1

    total_time = time.monotonic() - t_start
    succeeded = total - failed
    print(f"Done: {succeeded}/{total} succeeded in {total_time:.1f}s", file=sys.stderr)

    return 1 if failed > 0 else 0


def cli_entry() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main())
