"""Tests for storage path building and photo path normalization."""

import pytest

from curio_sync.domain.models import AssetVariant
from curio_sync.domain.paths import (
    LOCAL_ASSET_MARKER,
    PhotoPaths,
    build_asset_path,
    normalize_photo_paths,
    resolve_storage_path,
)


class TestBuildAssetPath:

    def test_collection_scoped_path(self):
        path = build_asset_path("user-1", "item-1", AssetVariant.DISPLAY, "col-1")
        assert path == "user-1/collections/col-1/item-1/display.jpg"

    def test_flat_path_without_collection(self):
        assert build_asset_path("user-1", "item-1", AssetVariant.ORIGINAL) == "user-1/item-1_original.jpg"

    def test_accepts_legacy_variant_names(self):
        assert build_asset_path("u", "i", "thumb") == "u/i_display.jpg"
        assert build_asset_path("u", "i", "master", "c") == "u/collections/c/i/original.jpg"


class TestNormalizePhotoPaths:
    """Derivation of original/display pairs."""

    @pytest.mark.parametrize("value", ["", None])
    def test_empty_values(self, value):
        assert normalize_photo_paths(value) == PhotoPaths("", "")

    @pytest.mark.parametrize("path, expected", [
        ("user123/collections/col1/item1/display.jpg",
         ("user123/collections/col1/item1/original.jpg", "user123/collections/col1/item1/display.jpg")),
        ("user123/collections/col1/item1/original.jpg",
         ("user123/collections/col1/item1/original.jpg", "user123/collections/col1/item1/display.jpg")),
        ("user123/item1_display.jpg", ("user123/item1_original.jpg", "user123/item1_display.jpg")),
        ("user123/item1_original.jpg", ("user123/item1_original.jpg", "user123/item1_display.jpg")),
        ("path/to/display.png", ("path/to/original.png", "path/to/display.png")),
        ("path/to/original.webp", ("path/to/original.webp", "path/to/display.webp")),
    ])
    def test_modern_names(self, path, expected):
        assert normalize_photo_paths(path) == expected

    def test_case_insensitive_detection_keeps_input_case(self):
        assert normalize_photo_paths("path/DISPLAY.JPG") == ("path/original.JPG", "path/DISPLAY.JPG")
        assert normalize_photo_paths("path/Original.PNG") == ("path/Original.PNG", "path/display.PNG")

    @pytest.mark.parametrize("path, expected", [
        ("user123/item1/thumb.jpg", ("user123/item1/original.jpg", "user123/item1/display.jpg")),
        ("user123/item1_thumb.jpg", ("user123/item1_original.jpg", "user123/item1_display.jpg")),
        ("user123/item1/master.jpg", ("user123/item1/original.jpg", "user123/item1/display.jpg")),
        ("user123/item1_master.jpg", ("user123/item1_original.jpg", "user123/item1_display.jpg")),
    ])
    def test_legacy_names(self, path, expected):
        assert normalize_photo_paths(path) == expected

    def test_legacy_names_replaced_in_lowercase(self):
        assert normalize_photo_paths("path/THUMB.JPG").display_path == "path/display.JPG"
        assert normalize_photo_paths("path/Master.PNG").original_path == "path/original.PNG"

    @pytest.mark.parametrize("value", [
        "http://example.com/photo.jpg",
        "https://example.com/images/display.jpg",
        "https://cdn.example.com/photo.jpg?view=display",
        "data:image/jpeg;base64,/9j/4AAQ",
        "blob:https://example.com/5f1c",
        "/var/photos/display.jpg",
    ])
    def test_external_references_unchanged(self, value):
        assert normalize_photo_paths(value) == PhotoPaths(value, value)

    def test_supabase_public_url(self):
        url = "https://abc123.supabase.co/storage/v1/object/public/curio-assets/user1/item1/display.jpg"
        assert normalize_photo_paths(url) == ("user1/item1/original.jpg", "user1/item1/display.jpg")

    def test_supabase_signed_url(self):
        url = "https://abc123.supabase.co/storage/v1/object/sign/curio-assets/user1/item1/original.jpg?token=xyz"
        assert normalize_photo_paths(url) == ("user1/item1/original.jpg", "user1/item1/display.jpg")

    def test_supabase_plain_object_url(self):
        url = "https://abc123.supabase.co/storage/v1/object/curio-assets/user1/collections/col1/item1/display.jpg"
        assert normalize_photo_paths(url) == (
            "user1/collections/col1/item1/original.jpg",
            "user1/collections/col1/item1/display.jpg",
        )

    def test_supabase_url_is_decoded(self):
        url = "https://abc123.supabase.co/storage/v1/object/public/curio-assets/user%20name/item%201/display.jpg"
        result = normalize_photo_paths(url)
        assert result.display_path == "user name/item 1/display.jpg"
        assert result.original_path == "user name/item 1/original.jpg"

    def test_supabase_url_with_bad_escape_kept_raw(self):
        url = "https://abc123.supabase.co/storage/v1/object/public/curio-assets/user%/display.jpg"
        assert normalize_photo_paths(url).display_path == "user%/display.jpg"

    @pytest.mark.parametrize("path", [
        "some/random/path.jpg",
        "some/path/without/extension",
        "photo.jpg",
        "display_folder/item1/photo.jpg",
        "display123/photo.jpg",
        "path/to/file.backup.display.jpg",
        LOCAL_ASSET_MARKER,
    ])
    def test_unrecognized_paths_unchanged(self, path):
        assert normalize_photo_paths(path) == PhotoPaths(path, path)

    def test_nested_and_special_characters(self):
        assert normalize_photo_paths("user.name/collection.v2/item.1/display.jpg").original_path == \
            "user.name/collection.v2/item.1/original.jpg"
        assert normalize_photo_paths("user-123/collection_abc/item@456/display.jpg").original_path == \
            "user-123/collection_abc/item@456/original.jpg"

    def test_only_the_final_name_counts(self):
        assert normalize_photo_paths("path/display_thumb.jpg") == (
            "path/display_original.jpg", "path/display_display.jpg"
        )
        assert normalize_photo_paths("path/thumb_display.jpg") == (
            "path/thumb_original.jpg", "path/thumb_display.jpg"
        )


class TestResolveStoragePath:

    def test_marker_and_empty_resolve_to_nothing(self):
        assert resolve_storage_path(LOCAL_ASSET_MARKER, AssetVariant.DISPLAY) is None
        assert resolve_storage_path("", AssetVariant.DISPLAY) is None
        assert resolve_storage_path(None, AssetVariant.ORIGINAL) is None

    def test_external_url_is_not_a_storage_path(self):
        assert resolve_storage_path("https://cdn.example.com/photo.jpg", AssetVariant.DISPLAY) is None

    def test_picks_requested_variant(self):
        hint = "user-1/collections/col-1/item-1/display.jpg"
        assert resolve_storage_path(hint, AssetVariant.ORIGINAL) == "user-1/collections/col-1/item-1/original.jpg"
        assert resolve_storage_path(hint, "thumb") == hint
