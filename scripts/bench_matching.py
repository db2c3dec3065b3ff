from __future__ import annotations

import argparse
import logging
import statistics
import time
from pathlib import Path
from typing import List, Sequence, Tuple
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import cv2
import numpy as np

from tmplstream.channel import ComputationChannel
from tmplstream.config import MatchConfig, MatchMethod, Settings, load_settings
from tmplstream.io import load_image
from tmplstream.types import Template


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Measure template matching accuracy and latency through the worker.")
    parser.add_argument("--frame", type=Path, default=None, help="Frame image. A synthetic scene is used when omitted.")
    parser.add_argument(
        "--template",
        type=Path,
        action="append",
        default=None,
        help="Template image; repeat for batch runs. Synthetic crops are used when omitted.",
    )
    parser.add_argument("--settings", type=Path, default=None, help="JSON settings file merged over defaults.")
    parser.add_argument("--templates", type=int, default=4, help="Number of synthetic templates.")
    parser.add_argument("--template-size", type=int, default=48, help="Side of synthetic templates in pixels.")
    parser.add_argument("--threshold", type=float, default=None, help="Match threshold in [0, 1].")
    parser.add_argument("--downsample", type=float, default=None, help="Downsample factor in (0, 1].")
    parser.add_argument(
        "--scales",
        type=float,
        nargs="+",
        default=None,
        help="Scale multipliers swept for each template.",
    )
    parser.add_argument(
        "--method",
        type=str,
        choices=[method.value for method in MatchMethod],
        default=None,
        help="Correlation method.",
    )
    parser.add_argument("--iterations", type=int, default=20, help="Number of timed rounds.")
    parser.add_argument("--batch", action="store_true", help="Send all templates in one batch request per round.")
    parser.add_argument("--seed", type=int, default=7, help="Seed for the synthetic scene.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def synthetic_scene(
    seed: int,
    count: int,
    size: int,
    width: int = 1280,
    height: int = 720,
) -> Tuple[np.ndarray, List[Template], List[Tuple[int, int]]]:
    """
    Smooth random texture plus crops taken at random positions.
    """
    rng = np.random.default_rng(seed)
    noise = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    frame = cv2.GaussianBlur(noise, (0, 0), sigmaX=2.0)
    templates: List[Template] = []
    positions: List[Tuple[int, int]] = []
    for index in range(count):
        x = int(rng.integers(0, width - size))
        y = int(rng.integers(0, height - size))
        templates.append(Template(name=f"synthetic-{index}", data=frame[y : y + size, x : x + size].copy()))
        positions.append((x, y))
    return frame, templates, positions


def build_config(args: argparse.Namespace, base: MatchConfig) -> MatchConfig:
    values = base.to_dict()
    if args.threshold is not None:
        values["threshold"] = args.threshold
    if args.downsample is not None:
        values["downsample"] = args.downsample
    if args.scales:
        values["scales"] = args.scales
    if args.method is not None:
        values["method"] = args.method
    return MatchConfig.from_dict(values)


def load_inputs(args: argparse.Namespace) -> Tuple[np.ndarray, List[Template], Sequence[Tuple[int, int]] | None]:
    if args.frame is None:
        return synthetic_scene(args.seed, args.templates, args.template_size)
    frame = load_image(args.frame)
    paths = args.template or []
    if not paths:
        raise SystemExit("--template is required together with --frame")
    templates = [Template(name=path.stem, data=load_image(path)) for path in paths]
    return frame, templates, None


def evaluate() -> None:
    args = parse_arguments()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.settings) if args.settings else Settings()
    config = build_config(args, settings.match)
    frame, templates, positions = load_inputs(args)

    latencies_ms: List[float] = []
    worker_ms: List[float] = []
    pixel_errors: List[float] = []
    hits = 0

    with ComputationChannel(settings) as channel:
        channel.ready.result(timeout=10)
        for round_index in range(args.iterations):
            start = time.perf_counter()
            if args.batch:
                batch = channel.batch_match(frame, templates, config).result()
                items = [(item.name, item.score, item.x, item.y, item.duration, item.matched) for item in batch.results]
            else:
                items = []
                for template in templates:
                    result = channel.match(frame, template.data, config).result()
                    items.append(
                        (template.name, result.score, result.x, result.y, result.duration, result.matched(config.threshold))
                    )
            latencies_ms.append((time.perf_counter() - start) * 1000.0)

            for index, (name, score, x, y, duration, matched) in enumerate(items):
                worker_ms.append(duration)
                hits += int(matched)
                error_text = ""
                if positions is not None:
                    expected_x, expected_y = positions[index]
                    error = float(np.hypot(x - expected_x, y - expected_y))
                    pixel_errors.append(error)
                    error_text = f" | err_px={error:6.2f}"
                if round_index == 0:
                    print(f"{name:24s} | score={score: .4f} | pos=({x:7.1f},{y:7.1f}) | worker={duration:7.2f}ms{error_text}")

        stats = channel.stats().result(timeout=10)

    print("\nSummary")
    print("-" * 72)
    print(f"Rounds           : {args.iterations} ({'batch' if args.batch else 'single'} requests)")
    print(f"Templates        : {len(templates)}")
    print(f"Matched          : {hits}/{len(worker_ms)}")
    print(f"Round trip (ms)  : mean={statistics.fmean(latencies_ms):.2f}, median={statistics.median(latencies_ms):.2f}, max={max(latencies_ms):.2f}")
    print(f"Worker time (ms) : mean={statistics.fmean(worker_ms):.2f}, median={statistics.median(worker_ms):.2f}, max={max(worker_ms):.2f}")
    if pixel_errors:
        print(f"Pixel error (px) : mean={statistics.fmean(pixel_errors):.3f}, max={max(pixel_errors):.3f}")
    cache = stats["cache"]
    print(f"Template cache   : size={cache['size']}/{cache['capacity']}, hit_rate={cache['hit_rate']:.2%}")


if __name__ == "__main__":
    evaluate()
