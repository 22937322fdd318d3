"""Error types raised by the stores, the chapter source and the release engine.

The web layer maps each type to a response status; see ``web.py``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class DripfeedError(Exception):
    """Base class for all dripfeed errors."""


class NotFoundError(DripfeedError):
    """A subscription or story id is absent from its store."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"Failed to find {kind} with id {key}")


class StoreIOError(DripfeedError):
    """A store file could not be read or written."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class StoreParseError(DripfeedError):
    """A store line violates the record format. Treated as store corruption."""

    def __init__(self, path: Path, line_number: Optional[int], reason: str):
        self.path = path
        self.line_number = line_number
        self.reason = reason
        where = f"{path}:{line_number}" if line_number is not None else str(path)
        super().__init__(f"{where}: {reason}")


class UpstreamError(DripfeedError):
    """The remote chapter check failed at the transport level."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Checking {url} failed: {reason}")


class ConsistencyError(DripfeedError):
    """Stored data violates an invariant the renderer depends on."""
