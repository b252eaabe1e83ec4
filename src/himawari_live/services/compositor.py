from __future__ import annotations

import logging
import threading
from typing import List, Optional, Set, Tuple

from PIL import Image

from ..errors import CompositeError, DecodeError
from ..models import CycleState, DecodedTile, GridSpec

log = logging.getLogger(__name__)


class Compositor:
    """
    Assembles one cycle's tiles into a single square raster.

    Tiles arrive from concurrent fetch tasks in any order; every write into
    the backing image goes through ``place`` under one lock, so there is
    only ever a single writer. Each slot is written independently, so the
    finished raster does not depend on arrival order.
    """

    def __init__(self, grid: GridSpec, cycle: Optional[CycleState] = None, mode: str = "RGB") -> None:
        self.grid = grid
        self.cycle = cycle
        self._raster = Image.new(mode, (grid.composite_size, grid.composite_size))
        self._lock = threading.Lock()
        self._placed: Set[Tuple[int, int]] = set()
        self._sealed = False

    @property
    def complete(self) -> bool:
        return len(self._placed) == self.grid.cell_count

    @property
    def placed_count(self) -> int:
        return len(self._placed)

    def missing(self) -> List[Tuple[int, int]]:
        n = self.grid.tile_count
        return [(x, y) for y in range(n) for x in range(n) if (x, y) not in self._placed]

    def place(self, tile: DecodedTile) -> bool:
        """
        Write ``tile`` at its grid slot. Returns False without writing when
        the owning cycle has been superseded.
        """
        n = self.grid.tile_count
        if not (0 <= tile.grid_x < n and 0 <= tile.grid_y < n):
            raise ValueError(f"Tile {tile.grid_x},{tile.grid_y} outside a {n}x{n} grid")
        width = self.grid.tile_pixel_width
        if tile.image.size != (width, width):
            raise DecodeError(
                f"Tile {tile.grid_x},{tile.grid_y} is {tile.image.size[0]}x{tile.image.size[1]}, "
                f"expected {width}x{width}"
            )

        with self._lock:
            if self.cycle is not None and self.cycle.cancelled:
                return False
            if self._sealed:
                raise CompositeError("Composite already finished")
            self._raster.paste(tile.image, (width * tile.grid_x, width * tile.grid_y))
            self._placed.add((tile.grid_x, tile.grid_y))
        return True

    def snapshot(self) -> Image.Image:
        with self._lock:
            return self._raster.copy()

    def finish(self, output_pixel_size: Optional[int] = None) -> Image.Image:
        """
        Seal the composite and rescale it to ``output_pixel_size`` square
        (defaults to the grid's output size). Needs every slot placed.
        """
        size = self.grid.output_pixel_size if output_pixel_size is None else output_pixel_size
        if size <= 0:
            raise ValueError("Output size must be positive")
        with self._lock:
            if not self.complete:
                raise CompositeError(
                    f"Only {len(self._placed)} of {self.grid.cell_count} tiles placed"
                )
            self._sealed = True
        if size == self.grid.composite_size:
            return self._raster.copy()
        log.debug("Resizing composite %dpx -> %dpx", self.grid.composite_size, size)
        return self._raster.resize((size, size), Image.Resampling.LANCZOS)
