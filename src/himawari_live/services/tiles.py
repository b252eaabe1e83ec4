import asyncio
import logging
from io import BytesIO
from typing import AsyncIterator, Iterable, List, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from ..config import DEFAULT_CONCURRENCY, TILE_BASE_URL, TILE_EXTENSION
from ..errors import CancelledCycle, DecodeError, FetchError
from ..models import CaptureIdentity, CycleState, DecodedTile, GridSpec, TileLocation

log = logging.getLogger(__name__)


def resolve_tiles(
    identity: CaptureIdentity,
    grid: GridSpec,
    base_url: str = TILE_BASE_URL,
    extension: str = TILE_EXTENSION,
) -> List[TileLocation]:
    """
    One location per grid cell, row-major (y outer, x inner).
    """
    base = base_url.rstrip("/")
    prefix = (
        f"{base}/{grid.tile_count}d/{grid.tile_pixel_width}/"
        f"{identity.year}/{identity.month}/{identity.day}/{identity.stamp}"
    )
    return [
        TileLocation(url=f"{prefix}_{x}_{y}.{extension}", grid_x=x, grid_y=y)
        for y in range(grid.tile_count)
        for x in range(grid.tile_count)
    ]


def decode_tile(data: bytes, location: Optional[TileLocation] = None) -> Image.Image:
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Undecodable tile image: {exc}", location) from exc


async def fetch_tile(client: httpx.AsyncClient, location: TileLocation) -> DecodedTile:
    try:
        resp = await client.get(location.url)
    except httpx.HTTPError as exc:
        raise FetchError(f"Tile {location.grid_x},{location.grid_y} request failed: {exc}", location) from exc

    if resp.status_code != 200:
        raise FetchError(
            f"Tile {location.grid_x},{location.grid_y} HTTP {resp.status_code}", location
        )

    image = await asyncio.to_thread(decode_tile, resp.content, location)
    return DecodedTile(image=image, grid_x=location.grid_x, grid_y=location.grid_y)


async def fetch_tiles(
    client: httpx.AsyncClient,
    locations: Iterable[TileLocation],
    concurrency: int = DEFAULT_CONCURRENCY,
    cycle: Optional[CycleState] = None,
) -> AsyncIterator[DecodedTile]:
    """
    Fetch and decode every location concurrently, yielding tiles as they
    complete. The first failure propagates; closing the iterator early
    cancels whatever is still running.
    """
    sem = asyncio.Semaphore(max(1, concurrency))

    async def bounded_fetch(location: TileLocation) -> DecodedTile:
        async with sem:
            if cycle is not None and cycle.cancelled:
                raise CancelledCycle(f"Cycle {cycle.number} superseded")
            return await fetch_tile(client, location)

    tasks = [asyncio.create_task(bounded_fetch(loc)) for loc in locations]
    try:
        for coro in asyncio.as_completed(tasks):
            yield await coro
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if pending:
            log.debug("Cancelled %d outstanding tile fetches", len(pending))
