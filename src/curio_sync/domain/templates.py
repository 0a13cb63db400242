"""Built-in collection templates and the registry used for schema fallback."""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .models import FieldDefinition, FieldType


class CollectionTemplate(BaseModel):
    """Static predefined schema used to seed new collections."""
    id: str
    name: str
    icon: str = ""
    description: str = ""
    accent_color: str = "stone"
    fields: List[FieldDefinition] = Field(default_factory=list)
    display_fields: List[str] = Field(default_factory=list)
    badge_fields: List[str] = Field(default_factory=list)


def _field(field_id: str, label: str, field_type: FieldType = FieldType.TEXT, options=None) -> FieldDefinition:
    return FieldDefinition(id=field_id, label=label, type=field_type, options=options)


BUILTIN_TEMPLATES: List[CollectionTemplate] = [
    CollectionTemplate(
        id="general",
        name="General / Mixed",
        icon="✨",
        description="For anything: tickets, receipts, stamps, etc.",
        accent_color="stone",
        fields=[
            _field("brand", "Brand/Issuer"),
            _field("category", "Category"),
            _field("date", "Date", FieldType.DATE),
            _field("location", "Location"),
        ],
        display_fields=["brand", "date"],
        badge_fields=["category"],
    ),
    CollectionTemplate(
        id="chocolate",
        name="Chocolate",
        icon="🍫",
        description="Bars, truffles, and cacao finds.",
        accent_color="orange",
        fields=[
            _field("brand", "Maker"),
            _field("cocoa_percent", "Cocoa %", FieldType.NUMBER),
            _field("origin", "Bean Origin"),
            _field("flavor_notes", "Flavor Notes"),
            _field("type", "Type", FieldType.SELECT, ["Dark", "Milk", "White", "Inclusion"]),
        ],
        display_fields=["brand", "cocoa_percent"],
        badge_fields=["type", "origin"],
    ),
    CollectionTemplate(
        id="vinyl",
        name="Vinyl Records",
        icon="🎵",
        description="LPs, EPs, and singles.",
        accent_color="indigo",
        fields=[
            _field("artist", "Artist"),
            _field("label", "Record Label"),
            _field("year", "Release Year", FieldType.NUMBER),
            _field("genre", "Genre"),
            _field("condition", "Condition", FieldType.SELECT,
                   ["Mint", "Near Mint", "Very Good", "Good", "Fair"]),
        ],
        display_fields=["artist", "year"],
        badge_fields=["genre", "condition"],
    ),
    CollectionTemplate(
        id="perfume",
        name="Fragrances",
        icon="✨",
        description="Perfumes, colognes, and scents.",
        accent_color="rose",
        fields=[
            _field("house", "House"),
            _field("concentration", "Concentration", FieldType.SELECT, ["Parfum", "EDP", "EDT", "Cologne"]),
            _field("main_accords", "Main Accords"),
            _field("nose", "Perfumer"),
        ],
        display_fields=["house", "concentration"],
        badge_fields=["main_accords"],
    ),
    CollectionTemplate(
        id="sneakers",
        name="Sneakers",
        icon="👟",
        description="Kicks, grails, and beaters.",
        accent_color="emerald",
        fields=[
            _field("brand", "Brand"),
            _field("model", "Model"),
            _field("colorway", "Colorway"),
            _field("size", "Size", FieldType.NUMBER),
        ],
        display_fields=["model", "size"],
        badge_fields=["brand"],
    ),
]


class TemplateRegistry:
    """Lookup table from template id to its default schema."""

    def __init__(self, templates: Optional[Iterable[CollectionTemplate]] = None):
        self._templates: Dict[str, CollectionTemplate] = {}
        for template in templates if templates is not None else BUILTIN_TEMPLATES:
            self.register(template)

    def register(self, template: CollectionTemplate) -> None:
        """Add or replace a template."""
        self._templates[template.id] = template

    def get(self, template_id: Optional[str]) -> Optional[CollectionTemplate]:
        if not template_id:
            return None
        return self._templates.get(template_id)

    def fields_for(self, template_id: Optional[str]) -> List[FieldDefinition]:
        """Default field schema for a template, empty if unknown."""
        template = self.get(template_id)
        if template is None:
            return []
        return [field.model_copy() for field in template.fields]

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def ids(self) -> List[str]:
        return list(self._templates)


_default_registry = TemplateRegistry()


def get_template_registry() -> TemplateRegistry:
    """Get the process-wide template registry."""
    return _default_registry
