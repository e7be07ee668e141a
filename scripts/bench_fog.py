#!/usr/bin/env python3
"""Benchmark fog passes on a synthetic scene.

Builds a map with a grid of closed obstruction boxes and a handful of
observer tokens, then times passes where one token moves per pass (the
common case the shadow cache is built for).

Usage (from the repo root):
    python scripts/bench_fog.py              # default: 5 iterations, 8 tokens
    python scripts/bench_fog.py -n 10        # 10 iterations
    python scripts/bench_fog.py -t 20 -b 6   # 20 tokens, 6x6 boxes
"""

import argparse
import logging
import statistics
import sys
from pathlib import Path

REPO_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_DIR))

from dynfog.session import VisionSession  # noqa: E402
from dynfog.store import InMemoryStore  # noqa: E402
from dynfog.types import SceneItem, meta_key  # noqa: E402

MAP_SIZE = 3000.0


def build_scene(num_tokens: int, boxes_per_side: int) -> InMemoryStore:
    items = [
        SceneItem(
            id="map",
            layer="MAP",
            type="IMAGE",
            image_width=MAP_SIZE,
            image_height=MAP_SIZE,
            image_dpi=150.0,
            metadata={meta_key("isBackgroundImage"): True},
        )
    ]
    cell = MAP_SIZE / boxes_per_side
    half = cell * 0.15
    for i in range(boxes_per_side):
        for j in range(boxes_per_side):
            cx = (i + 0.5) * cell
            cy = (j + 0.5) * cell
            items.append(
                SceneItem(
                    id=f"box-{i}-{j}",
                    layer="DRAWING",
                    type="CURVE",
                    points=[
                        (cx - half, cy - half),
                        (cx + half, cy - half),
                        (cx + half, cy + half),
                        (cx - half, cy + half),
                    ],
                    closed=True,
                    metadata={meta_key("isVisionLine"): True},
                )
            )
    for k in range(num_tokens):
        items.append(
            SceneItem(
                id=f"token-{k}",
                layer="CHARACTER",
                type="IMAGE",
                position=(cell * (k % boxes_per_side), 37.0 * k + 10.0),
                metadata={meta_key("hasVision"): True},
            )
        )
    return InMemoryStore(
        items,
        metadata={
            meta_key("visionEnabled"): True,
            meta_key("fowEnabled"): True,
        },
    )


def main():
    parser = argparse.ArgumentParser(description="Benchmark fog passes")
    parser.add_argument(
        "-n",
        "--iterations",
        type=int,
        default=5,
        help="Number of timed passes (default: 5)",
    )
    parser.add_argument(
        "-t",
        "--tokens",
        type=int,
        default=8,
        help="Number of observer tokens (default: 8)",
    )
    parser.add_argument(
        "-b",
        "--boxes",
        type=int,
        default=4,
        help="Obstruction boxes per map side (default: 4)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log each pass"
    )
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    store = build_scene(args.tokens, args.boxes)
    session = VisionSession(store)

    print(
        f"Benchmark: {args.tokens} tokens, "
        f"{args.boxes * args.boxes} boxes, {args.iterations} passes"
    )
    print()

    print("Cold pass...", end=" ", flush=True)
    cold = session.evaluate()
    print(f"{cold.compute_time_ms:.1f} ms")

    compute_ms = []
    store_ms = []
    for i in range(args.iterations):
        token_id = f"token-{i % args.tokens}"

        def _nudge(items):
            for item in items:
                x, y = item.position
                item.position = (x + 5.0, y)

        store.update_items([token_id], _nudge)
        report = session.evaluate()
        compute_ms.append(report.compute_time_ms)
        store_ms.append(report.communication_time_ms)
        print(
            f"  Pass {i + 1}: {report.compute_time_ms:.1f} ms compute, "
            f"{report.communication_time_ms:.1f} ms store, "
            f"cache {report.cache_hits}/{report.cache_misses}"
        )

    print()
    print(f"Median compute: {statistics.median(compute_ms):.1f} ms")
    print(f"Mean compute:   {statistics.mean(compute_ms):.1f} ms")
    print(f"Median store:   {statistics.median(store_ms):.1f} ms")
    if len(compute_ms) > 1:
        print(f"Stdev compute:  {statistics.stdev(compute_ms):.1f} ms")


if __name__ == "__main__":
    main()
