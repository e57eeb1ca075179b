from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class EntityType(str, Enum):
    PROJECT = "PROJECT"
    PHASE = "PHASE"
    ZONE = "ZONE"
    BUILDING = "BUILDING"
    UNIT = "UNIT"
    DESIGN_TYPE = "DESIGN_TYPE"


@dataclass(frozen=True)
class LevelSpec:
    entity_type: EntityType
    name_key: str
    id_key: str
    parent: EntityType | None
    label: str
    join_field: str | None


HIERARCHY: dict[EntityType, LevelSpec] = {
    EntityType.PROJECT: LevelSpec(EntityType.PROJECT, "project", "project", None, "Project", None),
    EntityType.PHASE: LevelSpec(
        EntityType.PHASE, "phase", "phase", EntityType.PROJECT, "Phase", "Phase__c"
    ),
    EntityType.ZONE: LevelSpec(EntityType.ZONE, "zone", "zone", EntityType.PHASE, "Zone", "Zone__c"),
    EntityType.BUILDING: LevelSpec(
        EntityType.BUILDING, "building", "building", EntityType.ZONE, "Building", "Building__c"
    ),
    EntityType.UNIT: LevelSpec(EntityType.UNIT, "unit", "unit", EntityType.BUILDING, "Unit", "Unit__c"),
    EntityType.DESIGN_TYPE: LevelSpec(
        EntityType.DESIGN_TYPE,
        "designType",
        "design_type",
        EntityType.PHASE,
        "Design Type",
        "Design_Type__c",
    ),
}

# Topological order over the hierarchy tree; PROJECT is never looked up.
RESOLUTION_ORDER: tuple[EntityType, ...] = (
    EntityType.PHASE,
    EntityType.ZONE,
    EntityType.BUILDING,
    EntityType.UNIT,
    EntityType.DESIGN_TYPE,
)

CONTENT_VERSION_ID_KEY = "contentVersionId"
DISTRIBUTION_URL_KEY = "distributionUrl"


def ancestry(entity_type: EntityType) -> tuple[EntityType, ...]:
    """Levels from the root down to ``entity_type`` inclusive."""
    chain: list[EntityType] = []
    current: EntityType | None = entity_type
    while current is not None:
        chain.append(current)
        current = HIERARCHY[current].parent
    return tuple(reversed(chain))


def required_name_keys(entity_type: EntityType) -> tuple[str, ...]:
    return tuple(HIERARCHY[level].name_key for level in ancestry(entity_type))


NameKey = tuple[EntityType, frozenset[tuple[str, str]]]


@dataclass
class DocumentRecord:
    source_path: str
    file_name: str
    entity_type: EntityType
    name_path: Mapping[str, str]
    document_type: str
    resolved_ids: dict[str, str] = field(default_factory=dict)
    content_document_id: str = ""

    def __post_init__(self) -> None:
        required = required_name_keys(self.entity_type)
        if set(self.name_path) != set(required):
            raise ValueError(
                f"{self.entity_type.value} requires name path keys {list(required)}, "
                f"got {sorted(self.name_path)}"
            )
        if any(not self.name_path[key] for key in required):
            raise ValueError(f"{self.entity_type.value} name path has empty components")
        self.name_path = MappingProxyType({key: self.name_path[key] for key in required})

    @property
    def level(self) -> LevelSpec:
        return HIERARCHY[self.entity_type]

    @property
    def own_id(self) -> str | None:
        return self.resolved_ids.get(self.level.id_key)

    def lookup_key(self) -> NameKey:
        return self.entity_type, frozenset(self.name_path.items())

    def record_id(self, key: str, value: str) -> None:
        existing = self.resolved_ids.get(key)
        if existing is not None and existing != value:
            raise ValueError(
                f"{self.source_path}: refusing to overwrite {key}={existing} with {value}"
            )
        self.resolved_ids[key] = value

    def hierarchy_path(self) -> str:
        parts: list[str] = []
        for level in ancestry(self.entity_type):
            spec = HIERARCHY[level]
            value = self.name_path[spec.name_key]
            parts.append(value if level is EntityType.PROJECT else f"{spec.label} {value}")
        return "/".join(parts)


@dataclass(frozen=True)
class PipelineSummary:
    document_count: int
    lookup_count: int
    uploaded_count: int
    join_record_count: int
    duration_ms: int
