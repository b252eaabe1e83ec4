from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_PERIOD_MINUTES, DEFAULT_ZOOM, TILE_WIDTH, ZOOM_MAX, ZOOM_MIN


class GridSpec(BaseModel):
    tile_count: int = Field(ge=1)
    tile_pixel_width: int = Field(default=TILE_WIDTH, ge=1)
    output_pixel_size: int = Field(ge=1)

    model_config = ConfigDict(frozen=True)

    @property
    def composite_size(self) -> int:
        return self.tile_pixel_width * self.tile_count

    @property
    def cell_count(self) -> int:
        return self.tile_count * self.tile_count


class CaptureIdentity(BaseModel):
    """
    Timestamp naming one full-disk capture. Tile paths use the components
    zero-padded to two digits, except the year.
    """

    captured_at: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def year(self) -> str:
        return f"{self.captured_at.year:04d}"

    @property
    def month(self) -> str:
        return f"{self.captured_at.month:02d}"

    @property
    def day(self) -> str:
        return f"{self.captured_at.day:02d}"

    @property
    def hour(self) -> str:
        return f"{self.captured_at.hour:02d}"

    @property
    def minute(self) -> str:
        return f"{self.captured_at.minute:02d}"

    @property
    def second(self) -> str:
        return f"{self.captured_at.second:02d}"

    @property
    def stamp(self) -> str:
        return f"{self.hour}{self.minute}{self.second}"

    def __str__(self) -> str:
        return f"{self.captured_at:%Y-%m-%d %H:%M:%S}"


class TileLocation(BaseModel):
    url: str
    grid_x: int = Field(ge=0)
    grid_y: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class ViewerSettings(BaseModel):
    period_minutes: int = Field(default=DEFAULT_PERIOD_MINUTES, ge=1)
    zoom: float = Field(default=DEFAULT_ZOOM, ge=ZOOM_MIN, le=ZOOM_MAX)
    wifi_only: bool = False

    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def period_seconds(self) -> float:
        return self.period_minutes * 60.0


@dataclass
class DecodedTile:
    image: Image.Image
    grid_x: int
    grid_y: int


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass
class CycleState:
    """
    Token for one refresh cycle. Work holding a cancelled token must not
    write into its composite or reach the publisher.
    """

    number: int
    grid: GridSpec
    settings: ViewerSettings
    reason: str = "manual"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: Optional[CycleOutcome] = None
    error: Optional[BaseException] = None
    _cancel_flag: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        self._cancel_flag.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_flag.is_set()


@dataclass(frozen=True)
class DisplayFrame:
    image: Image.Image
    identity: CaptureIdentity
    grid: GridSpec
    cycle_number: int
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height
