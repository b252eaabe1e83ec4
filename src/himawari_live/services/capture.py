import logging
from datetime import datetime
from typing import Any

import httpx

from ..config import DESCRIPTOR_URL
from ..errors import NetworkError, ParseError
from ..models import CaptureIdentity

log = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_descriptor(payload: Any) -> CaptureIdentity:
    """
    Extract the capture timestamp from the decoded "latest" descriptor.

    Only the fixed shape ``{"date": "yyyy-MM-dd HH:mm:ss", ...}`` is accepted;
    anything else is a ParseError rather than a guessed default.
    """
    if not isinstance(payload, dict):
        raise ParseError("Descriptor is not a JSON object")
    raw = payload.get("date")
    if not isinstance(raw, str):
        raise ParseError("Descriptor has no 'date' string")
    try:
        captured_at = datetime.strptime(raw.strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ParseError(f"Malformed capture date {raw!r}") from exc
    return CaptureIdentity(captured_at=captured_at)


async def fetch_capture_identity(
    client: httpx.AsyncClient,
    url: str = DESCRIPTOR_URL,
) -> CaptureIdentity:
    try:
        resp = await client.get(url)
    except httpx.HTTPError as exc:
        raise NetworkError(f"Descriptor request failed: {exc}") from exc

    if resp.status_code != 200:
        raise NetworkError(f"Descriptor HTTP {resp.status_code}")

    try:
        payload = resp.json()
    except ValueError as exc:
        raise ParseError(f"Descriptor is not JSON: {exc}") from exc

    identity = parse_descriptor(payload)
    log.debug("Latest capture is %s", identity)
    return identity
