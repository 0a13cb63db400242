"""Interfaces of collaborators that live outside the sync core."""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass
class ProcessedImage:
    """Both stored variants of an item photo."""

    original: bytes
    display: bytes


@runtime_checkable
class ImageProcessor(Protocol):
    """Turns a user-supplied image into the original/display JPEG pair."""

    async def process_image(self, source: Any) -> ProcessedImage:
        ...
