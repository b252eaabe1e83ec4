#!/usr/bin/env python3
"""
Compose the latest Himawari full-disk capture once and save it as PNG.
Zoom 1.0 at 1080 px wide -> 2x2 tiles of 550 px -> 1080x1080 image.
"""
import argparse
import asyncio
import logging
from pathlib import Path

from himawari_live.config import DEFAULT_CONCURRENCY, TILE_WIDTH
from himawari_live.errors import RefreshError
from himawari_live.services.http import build_http_client
from himawari_live.services.pipeline import compose_latest
from himawari_live.utils import grid_for_zoom

OUT_PATH = Path("himawari-latest.png")


async def _run(args: argparse.Namespace) -> int:
    grid = grid_for_zoom(args.width, args.zoom, TILE_WIDTH)
    print(f"grid {grid.tile_count}x{grid.tile_count} -> {grid.output_pixel_size}px")
    async with build_http_client(args.concurrency) as client:
        try:
            frame = await compose_latest(client, grid, concurrency=args.concurrency)
        except RefreshError as exc:
            print(f"failed: {exc}")
            return 1
    args.out.parent.mkdir(parents=True, exist_ok=True)
    frame.image.save(args.out, format="PNG")
    print(f"saved capture {frame.identity} to {args.out.resolve()}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Save the latest Himawari full disk")
    parser.add_argument("--width", type=int, default=1080, help="Display width in pixels")
    parser.add_argument("--zoom", type=float, default=1.0, help="Zoom factor (0.1-10.0)")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)
    parser.add_argument("--out", type=Path, default=OUT_PATH)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
