"""Merge engine reconciling local and cloud collection/item sets.

Resolution is whole-entity last-writer-wins on the effective timestamp
(``updated_at``, else ``created_at``). Local copies win ties. Ids listed in
``cloud_deleted_ids`` never appear in the output, and ids known only to the
local side always survive.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Collection, CollectionSettings, Item
from .templates import TemplateRegistry, get_template_registry
from .timestamps import TimestampLike, to_epoch_millis


def compare_timestamps(a: TimestampLike, b: TimestampLike) -> int:
    """Compare two timestamps.

    Absent and unparsable values sort before every valid instant and are
    equal to each other.

    Returns:
        -1, 0 or 1
    """
    a_ms = to_epoch_millis(a)
    b_ms = to_epoch_millis(b)

    if a_ms is None and b_ms is None:
        return 0
    if a_ms is None:
        return -1
    if b_ms is None:
        return 1
    return (a_ms > b_ms) - (a_ms < b_ms)


def effective_timestamp(entity) -> Optional[str]:
    """Timestamp used for conflict resolution."""
    return entity.updated_at or entity.created_at


def _local_wins(local, cloud) -> bool:
    return compare_timestamps(effective_timestamp(local), effective_timestamp(cloud)) >= 0


def merge_items(
    local_items: Iterable[Item],
    cloud_items: Iterable[Item],
    cloud_deleted_ids: Optional[Iterable[str]] = None
) -> List[Item]:
    """Merge two item lists.

    Args:
        local_items: Items from the on-device cache
        cloud_items: Items from the authoritative store
        cloud_deleted_ids: Ids removed remotely; dropped from both sides

    Returns:
        Local order first, then cloud-only items in cloud order
    """
    deleted = set(cloud_deleted_ids or ())
    merged: Dict[str, Item] = {}

    for item in local_items or ():
        if item.id in deleted:
            continue
        merged[item.id] = item

    for cloud_item in cloud_items or ():
        if cloud_item.id in deleted:
            continue
        existing = merged.get(cloud_item.id)
        if existing is None or not _local_wins(existing, cloud_item):
            merged[cloud_item.id] = cloud_item

    return list(merged.values())


def normalize_collection(
    collection: Collection,
    templates: Optional[TemplateRegistry] = None
) -> Collection:
    """Repair a collection whose field schema is missing.

    An empty schema falls back to the referenced template's fields; if the
    display orderings are empty as well they are taken from the template too.
    """
    if collection.custom_fields:
        return collection

    registry = templates or get_template_registry()
    template = registry.get(collection.template_id)
    if template is None:
        return collection

    updates = {"custom_fields": registry.fields_for(collection.template_id)}
    if not collection.settings.display_fields and not collection.settings.badge_fields:
        updates["settings"] = CollectionSettings(
            display_fields=list(template.display_fields),
            badge_fields=list(template.badge_fields),
        )
    return collection.model_copy(update=updates)


def _rehome_items(collections: List[Collection]) -> List[Collection]:
    """Keep each item id once, under one collection, pointing at that collection."""
    owners: Dict[str, Tuple[int, Item]] = {}
    for index, collection in enumerate(collections):
        for item in collection.items:
            current = owners.get(item.id)
            if current is None or compare_timestamps(
                effective_timestamp(item), effective_timestamp(current[1])
            ) > 0:
                owners[item.id] = (index, item)

    result = []
    for index, collection in enumerate(collections):
        items = []
        changed = False
        for item in collection.items:
            owner_index, owner_item = owners[item.id]
            if owner_index != index or owner_item is not item:
                changed = True
                continue
            if item.collection_id != collection.id:
                item = item.model_copy(update={"collection_id": collection.id})
                changed = True
            items.append(item)
        result.append(collection.model_copy(update={"items": items}) if changed else collection)
    return result


def merge_collections(
    local_collections: Iterable[Collection],
    cloud_collections: Iterable[Collection],
    cloud_deleted_ids: Optional[Iterable[str]] = None,
    templates: Optional[TemplateRegistry] = None
) -> List[Collection]:
    """Merge two collection lists, recursing into each matched collection's items.

    Args:
        local_collections: Collections from the on-device cache
        cloud_collections: Collections from the authoritative store
        cloud_deleted_ids: Collection and item ids removed remotely
        templates: Registry used to repair empty field schemas

    Returns:
        Merged collections, local order first
    """
    registry = templates or get_template_registry()
    deleted = set(cloud_deleted_ids or ())
    merged: Dict[str, Collection] = {}

    for collection in local_collections or ():
        if collection.id in deleted:
            continue
        local = normalize_collection(collection, registry)
        merged[local.id] = local.model_copy(update={"items": merge_items(local.items, [], deleted)})

    for collection in cloud_collections or ():
        if collection.id in deleted:
            continue
        cloud = normalize_collection(collection, registry)
        existing = merged.get(cloud.id)

        if existing is None:
            merged[cloud.id] = cloud.model_copy(update={"items": merge_items([], cloud.items, deleted)})
            continue

        winner = existing if _local_wins(existing, cloud) else cloud
        items = merge_items(existing.items, cloud.items, deleted)
        merged[cloud.id] = winner.model_copy(update={"items": items})

    return _rehome_items(list(merged.values()))


def collect_entity_ids(collections: Iterable[Collection]) -> Set[str]:
    """All collection and item ids in a snapshot."""
    ids: Set[str] = set()
    for collection in collections:
        ids.add(collection.id)
        ids.update(item.id for item in collection.items)
    return ids


def has_local_only_data(local_collections: Iterable[Collection], cloud_collections: Iterable[Collection]) -> bool:
    """Whether the local snapshot holds any id the cloud has never seen."""
    cloud_ids = collect_entity_ids(cloud_collections)
    return any(entity_id not in cloud_ids for entity_id in collect_entity_ids(local_collections))
