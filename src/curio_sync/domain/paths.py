"""Storage object path conventions for item photos."""

import re
from typing import NamedTuple, Optional
from urllib.parse import unquote

from .models import AssetVariant

# Value stored in Item.photo_url when the photo lives only in the asset cache.
LOCAL_ASSET_MARKER = "asset"

_EXTERNAL_PREFIXES = ("http://", "https://", "data:", "blob:", "/")
_STORAGE_URL = re.compile(r"/storage/v1/object/(?:(?:public|sign|authenticated)/)?[^/]+/(?P<path>[^?#]+)")
_VARIANT_SUFFIX = re.compile(r"([/_])(display|original|thumb|master)(\.[A-Za-z0-9]+)$", re.IGNORECASE)


class PhotoPaths(NamedTuple):
    """Storage paths of both variants of one photo."""
    original_path: str
    display_path: str

    def for_variant(self, variant: AssetVariant) -> str:
        if AssetVariant.parse(variant) == AssetVariant.ORIGINAL:
            return self.original_path
        return self.display_path


def build_asset_path(
    user_id: str,
    item_id: str,
    variant: AssetVariant,
    collection_id: Optional[str] = None
) -> str:
    """Remote object path for an item photo variant."""
    variant = AssetVariant.parse(variant)
    if collection_id:
        return f"{user_id}/collections/{collection_id}/{item_id}/{variant.value}.jpg"
    return f"{user_id}/{item_id}_{variant.value}.jpg"


def _extract_storage_path(url: str) -> Optional[str]:
    match = _STORAGE_URL.search(url)
    if match is None:
        return None
    raw = match.group("path")
    try:
        return unquote(raw, errors="strict")
    except UnicodeDecodeError:
        return raw


def normalize_photo_paths(path: Optional[str]) -> PhotoPaths:
    """Derive the original/display pair from any stored photo reference.

    Handles ``/display.ext`` and ``_display.ext`` style names, the legacy
    ``thumb``/``master`` names and Supabase storage URLs. External URLs and
    unrecognized paths map to themselves.
    """
    if not path:
        return PhotoPaths("", "")

    storage_path = _extract_storage_path(path) if path.startswith(("http://", "https://")) else None
    if storage_path is not None:
        path = storage_path
    elif path.startswith(_EXTERNAL_PREFIXES):
        return PhotoPaths(path, path)

    match = _VARIANT_SUFFIX.search(path)
    if match is None:
        return PhotoPaths(path, path)

    separator, name, extension = match.groups()
    stem = path[:match.start()]
    original = f"{stem}{separator}original{extension}"
    display = f"{stem}{separator}display{extension}"

    name = name.lower()
    if name == "display":
        return PhotoPaths(original, path)
    if name == "original":
        return PhotoPaths(path, display)
    return PhotoPaths(original, display)


def resolve_storage_path(hint: Optional[str], variant: AssetVariant) -> Optional[str]:
    """Storage path for a variant from a photo reference, if it names a stored object."""
    if not hint or hint == LOCAL_ASSET_MARKER:
        return None
    candidate = normalize_photo_paths(hint).for_variant(variant)
    if not candidate or candidate.startswith(_EXTERNAL_PREFIXES):
        return None
    return candidate
