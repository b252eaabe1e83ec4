import math

from .config import TILE_WIDTH, ZOOM_MAX, ZOOM_MIN
from .models import GridSpec


def clamp_zoom(zoom: float) -> float:
    return min(max(zoom, ZOOM_MIN), ZOOM_MAX)


def grid_for_zoom(display_width: int, zoom: float, tile_width: int = TILE_WIDTH) -> GridSpec:
    """
    Сколько тайлов по каждой оси нужно, чтобы покрыть экран при этом зуме,
    и до какого квадрата масштабируется итоговая мозаика.
    """
    if display_width <= 0:
        raise ValueError("Ширина экрана должна быть больше 0")
    if tile_width <= 0:
        raise ValueError("Ширина тайла должна быть больше 0")
    zoom = clamp_zoom(zoom)
    tile_count = max(1, math.ceil(display_width * zoom / tile_width))
    # половина округляется вверх: 540.5 -> 541
    output_size = max(1, math.floor(display_width * zoom + 0.5))
    return GridSpec(
        tile_count=tile_count,
        tile_pixel_width=tile_width,
        output_pixel_size=output_size,
    )


def pan_offset(fraction: float, display_width: int, zoom: float) -> float:
    # полный свайп по рабочим столам сдвигает диск на четверть его ширины
    fraction = min(max(fraction, 0.0), 1.0)
    return -fraction * int(display_width * clamp_zoom(zoom)) / 4
