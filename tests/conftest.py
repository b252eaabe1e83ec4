import asyncio
import os
import tempfile
from io import BytesIO
from typing import Callable, Dict, List, Set, Tuple

# Keep the app database out of the working tree while tests import the package.
os.environ.setdefault("HIMAWARI_APP_DATA", tempfile.mkdtemp(prefix="himawari-tests-"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from PIL import Image  # noqa: E402

TILE = 8


def png_bytes(color: Tuple[int, int, int], size: int = TILE) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (size, size), color).save(buf, format="PNG")
    return buf.getvalue()


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class FakeHimawari:
    """
    Descriptor and tile endpoints behind httpx.MockTransport.
    Each descriptor request returns the next date in ``dates`` (the last
    one repeats). Tiles of a capture can be held back with ``gates``.
    """

    def __init__(self, dates: List[str]) -> None:
        self.dates = list(dates)
        self.descriptor_calls = 0
        self.tile_requests: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.colors: Dict[str, Tuple[int, int, int]] = {}
        self.failing: Set[Tuple[int, int]] = set()
        self.tile_size = TILE

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.endswith("latest.json"):
            date = self.dates[min(self.descriptor_calls, len(self.dates) - 1)]
            self.descriptor_calls += 1
            return httpx.Response(200, json={"date": date, "file": "PI_H09_FLDK.png"})

        self.tile_requests.append(url)
        name = url.rsplit("/", 1)[1].rsplit(".", 1)[0]
        stamp, x, y = name.split("_")
        gate = self.gates.get(stamp)
        if gate is not None:
            await gate.wait()
        if (int(x), int(y)) in self.failing:
            return httpx.Response(500)
        return httpx.Response(200, content=png_bytes(self.colors.get(stamp, (200, 30, 30)), self.tile_size))

    def requests_for(self, stamp: str) -> List[str]:
        return [url for url in self.tile_requests if f"/{stamp}_" in url]

    def client_factory(self, concurrency: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def make_server() -> Callable[..., FakeHimawari]:
    def _make(*dates: str) -> FakeHimawari:
        return FakeHimawari(list(dates) or ["2024-03-01 04:10:00"])

    return _make


def solid_tile(color: Tuple[int, int, int], size: int = TILE) -> Image.Image:
    return Image.new("RGB", (size, size), color)

