import asyncio
import logging
from contextlib import aclosing
from typing import Optional

import httpx

from ..config import DEFAULT_CONCURRENCY, DESCRIPTOR_URL, TILE_BASE_URL
from ..errors import CancelledCycle
from ..models import CycleState, DisplayFrame, GridSpec
from .capture import fetch_capture_identity
from .compositor import Compositor
from .tiles import fetch_tiles, resolve_tiles

log = logging.getLogger(__name__)


def _check(cycle: Optional[CycleState]) -> None:
    if cycle is not None and cycle.cancelled:
        raise CancelledCycle(f"Cycle {cycle.number} superseded")


async def compose_latest(
    client: httpx.AsyncClient,
    grid: GridSpec,
    cycle: Optional[CycleState] = None,
    *,
    descriptor_url: str = DESCRIPTOR_URL,
    tile_base_url: str = TILE_BASE_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> DisplayFrame:
    """
    One full pass: latest capture id, every tile of the grid, composite,
    rescale. Raises CancelledCycle as soon as ``cycle`` is superseded.
    """
    identity = await fetch_capture_identity(client, descriptor_url)
    _check(cycle)
    locations = resolve_tiles(identity, grid, tile_base_url)
    log.debug("Fetching %d tiles for capture %s", len(locations), identity)

    compositor = Compositor(grid, cycle)
    async with aclosing(fetch_tiles(client, locations, concurrency, cycle)) as tiles:
        async for tile in tiles:
            if not compositor.place(tile):
                raise CancelledCycle(f"Cycle {cycle.number} superseded")

    image = await asyncio.to_thread(compositor.finish, grid.output_pixel_size)
    _check(cycle)
    return DisplayFrame(
        image=image,
        identity=identity,
        grid=grid,
        cycle_number=cycle.number if cycle is not None else 0,
    )
