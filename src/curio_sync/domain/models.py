"""Catalog data model shared by the local cache, the remote store and the merge engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FieldType(str, Enum):
    """Supported custom field types."""
    TEXT = "text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    RATING = "rating"
    SELECT = "select"


class AssetVariant(str, Enum):
    """Derived image representations stored per item."""
    ORIGINAL = "original"
    DISPLAY = "display"

    @classmethod
    def parse(cls, value: Any) -> "AssetVariant":
        """Resolve a variant name, accepting the legacy ``master``/``thumb`` names."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name == "master":
            return cls.ORIGINAL
        if name == "thumb":
            return cls.DISPLAY
        return cls(name)


class SyncStatus(str, Enum):
    """User-visible sync state of an entity."""
    SAVED_LOCALLY = "saved_locally"
    SYNCED = "synced"
    PENDING_RETRY = "pending_retry"


class FieldDefinition(BaseModel):
    """A single custom field in a collection schema."""
    id: str
    label: str = ""
    type: FieldType = FieldType.TEXT
    options: Optional[List[str]] = None  # select only
    required: bool = False


class CollectionSettings(BaseModel):
    """Display ordering of schema fields on cards and badges."""
    display_fields: List[str] = Field(default_factory=list)
    badge_fields: List[str] = Field(default_factory=list)


class Item(BaseModel):
    """A single cataloged object."""
    id: str = Field(..., min_length=1)
    collection_id: str
    title: str = ""
    rating: int = Field(default=0, ge=0, le=5)
    notes: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    photo_url: str = ""
    seed_key: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None

    @property
    def effective_timestamp(self) -> Optional[str]:
        """Timestamp used for conflict resolution."""
        return self.updated_at or self.created_at


class Collection(BaseModel):
    """A user-defined group of items sharing a field schema."""
    id: str = Field(..., min_length=1)
    template_id: str = "general"
    name: str = ""
    icon: str = ""
    custom_fields: List[FieldDefinition] = Field(default_factory=list)
    settings: CollectionSettings = Field(default_factory=CollectionSettings)
    items: List[Item] = Field(default_factory=list)
    owner_id: Optional[str] = None
    is_public: bool = False
    seed_key: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def effective_timestamp(self) -> Optional[str]:
        """Timestamp used for conflict resolution."""
        return self.updated_at or self.created_at

    def find_item(self, item_id: str) -> Optional[Item]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None
