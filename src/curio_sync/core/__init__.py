"""Core sync logic package."""

from .assets import AssetCache
from .debounce import DebouncedWriter
from .interfaces import ImageProcessor, ProcessedImage
from .sync_engine import SyncEngine, SyncEngineError, SyncResult

__all__ = [
    "AssetCache",
    "DebouncedWriter",
    "ImageProcessor",
    "ProcessedImage",
    "SyncEngine",
    "SyncEngineError",
    "SyncResult",
]
