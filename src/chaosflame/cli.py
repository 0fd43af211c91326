"""
CLI entry point for the chaos game flame renderer.

Usage:
    chaosflame [preset] [options]
    chaosflame --flame my_flame.json -o out.png -w 4
    mpiexec -n 4 chaosflame fern4 --mpi
    python -m chaosflame [preset] [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from chaosflame.core.histogram import AccumulationMode, MergePolicy
from chaosflame.errors import FlameError
from chaosflame.io.flame_file import load_flame
from chaosflame.io.rasterizer import rasterize, save_png
from chaosflame.pipeline import FlameConfig, FlamePipeline, print_histogram
from chaosflame.presets import load_preset, preset_names


def _parse_color(text: str):
    """'#rrggbb' or 'r,g,b' with components in [0, 1]."""
    text = text.strip()
    if text.startswith("#") and len(text) == 7:
        return tuple(int(text[i:i + 2], 16) / 255.0 for i in (1, 3, 5))
    parts = text.split(",")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected '#rrggbb' or 'r,g,b', got '{text}'")
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"bad color '{text}'") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chaosflame",
        description="Chaos game renderer for iterated function system flames",
    )

    parser.add_argument(
        "preset", nargs="?", default="fern4", choices=preset_names(),
        help="Built-in transform set (default: fern4)",
    )
    parser.add_argument("--flame", type=Path, default=None, help="JSON flame file (overrides preset)")
    parser.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output PNG path (default: <name>.png)",
    )

    # Raster
    parser.add_argument("--width", type=int, default=1600, help="Image width (default: 1600)")
    parser.add_argument("--height", type=int, default=1200, help="Image height (default: 1200)")
    parser.add_argument(
        "--background", type=_parse_color, default=(0.0, 0.0, 0.0),
        help="Background color as '#rrggbb' or 'r,g,b' (default: black)",
    )

    # Sampling
    parser.add_argument(
        "-n", "--iterations", type=int, default=1_000_000,
        help="Total chaos game iterations across all workers (default: 1000000)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Root random seed")

    # Parallelism
    parser.add_argument("-w", "--workers", type=int, default=1, help="In-process workers (default: 1)")
    parser.add_argument("--tasks", type=int, default=1, help="Accumulation tasks per worker (default: 1)")
    parser.add_argument("--mpi", action="store_true", help="Run as one rank of an mpiexec job")
    parser.add_argument(
        "--timeout", type=float, default=60.0,
        help="Seconds to wait at each collective exchange (default: 60)",
    )

    # Reduction
    parser.add_argument(
        "--accumulation", type=str, default=AccumulationMode.LEGACY.value,
        choices=[m.value for m in AccumulationMode],
        help="Per-pixel color rule (default: legacy)",
    )
    parser.add_argument(
        "--merge-policy", type=str, default=MergePolicy.FIRST_WINS.value,
        choices=[p.value for p in MergePolicy],
        help="Cross-worker merge rule (default: first_wins)",
    )
    parser.add_argument("--shared-bounds", action="store_true", help="Normalize all workers against one bounding box")
    parser.add_argument(
        "--corrected", action="store_true",
        help="Shorthand for --accumulation mean --merge-policy weighted --shared-bounds",
    )
    parser.add_argument("--no-recenter", action="store_true", help="Skip the recentering post transform")

    # Diagnostics
    parser.add_argument("--dump", type=int, default=None, metavar="N", help="Print the first N histogram entries")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-v info, -vv debug)")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    comm = None
    if args.mpi:
        from chaosflame.distributed.comm import MPICommunicator

        comm = MPICommunicator(timeout=args.timeout)

    try:
        if args.flame is not None:
            if not args.flame.exists():
                print(f"Error: Flame file not found: {args.flame}", file=sys.stderr)
                sys.exit(1)
            transform_set, post_transform = load_flame(args.flame)
            name = transform_set.name or args.flame.stem
        else:
            transform_set, post_transform = load_preset(args.preset), None
            name = args.preset

        config = FlameConfig(
            width=args.width,
            height=args.height,
            iterations=args.iterations,
            seed=args.seed,
            workers=comm.size if comm is not None else args.workers,
            local_tasks=args.tasks,
            timeout=args.timeout,
            accumulation=args.accumulation,
            merge_policy=args.merge_policy,
            shared_bounds=args.shared_bounds,
            recenter=not args.no_recenter,
            background=args.background,
        )
        if args.corrected:
            config = config.corrected()
        pipeline = FlamePipeline(transform_set, config, post_transform=post_transform)
    except FlameError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    is_root = comm is None or comm.rank == 0
    output = args.output or Path(f"{name}.png")

    if is_root:
        print(f"Rendering '{name}': {len(transform_set)} transforms")
        print(f"  {config.iterations} iterations over {config.workers} worker(s) at {config.width}x{config.height}")
    t0 = time.time()

    try:
        if comm is not None:
            histogram = pipeline.run_worker(comm)
        else:
            histogram = pipeline.render()
    except FlameError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if not is_root:
        return

    print(f"  Sampling+merge took {time.time() - t0:.1f}s")
    print(f"  {len(histogram)} pixels, {histogram.total_hits} hits, max {histogram.max_hits}")

    if args.dump:
        print_histogram(histogram, limit=args.dump)

    image = rasterize(histogram, config.width, config.height, config.background)
    save_png(image, output)
    print(f"\nDone! Output: {output}")


if __name__ == "__main__":
    main()
