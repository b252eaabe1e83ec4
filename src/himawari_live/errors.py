from __future__ import annotations

from typing import Optional

from .models import TileLocation


class RefreshError(Exception):
    """Base class for everything that aborts a refresh cycle."""


class NetworkError(RefreshError):
    pass


class FetchError(NetworkError):
    def __init__(self, message: str, location: Optional[TileLocation] = None) -> None:
        super().__init__(message)
        self.location = location


class ParseError(RefreshError):
    pass


class DecodeError(RefreshError):
    def __init__(self, message: str, location: Optional[TileLocation] = None) -> None:
        super().__init__(message)
        self.location = location


class CompositeError(RefreshError):
    pass


class CancelledCycle(RefreshError):
    """Raised when a newer cycle superseded the one doing the work."""
