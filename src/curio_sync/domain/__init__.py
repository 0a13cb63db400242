"""Catalog domain: data model, typed fields, templates and the merge engine."""

from .models import (
    AssetVariant,
    Collection,
    CollectionSettings,
    FieldDefinition,
    FieldType,
    Item,
    SyncStatus,
    utc_now_iso
)

from .fields import (
    FieldValidationError,
    FieldValue,
    ValueKind,
    coerce_field_value,
    dump_field_values,
    validate_item_data
)

from .templates import (
    BUILTIN_TEMPLATES,
    CollectionTemplate,
    TemplateRegistry,
    get_template_registry
)

from .merge import (
    collect_entity_ids,
    compare_timestamps,
    has_local_only_data,
    merge_collections,
    merge_items,
    normalize_collection
)

from .paths import (
    LOCAL_ASSET_MARKER,
    PhotoPaths,
    build_asset_path,
    normalize_photo_paths
)

__all__ = [
    # Models
    "AssetVariant",
    "Collection",
    "CollectionSettings",
    "FieldDefinition",
    "FieldType",
    "Item",
    "SyncStatus",
    "utc_now_iso",

    # Typed fields
    "FieldValidationError",
    "FieldValue",
    "ValueKind",
    "coerce_field_value",
    "dump_field_values",
    "validate_item_data",

    # Templates
    "BUILTIN_TEMPLATES",
    "CollectionTemplate",
    "TemplateRegistry",
    "get_template_registry",

    # Merge
    "collect_entity_ids",
    "compare_timestamps",
    "has_local_only_data",
    "merge_collections",
    "merge_items",
    "normalize_collection",

    # Paths
    "LOCAL_ASSET_MARKER",
    "PhotoPaths",
    "build_asset_path",
    "normalize_photo_paths",
]
