from __future__ import annotations

import logging
from pathlib import PurePosixPath

from uploader.services.pipeline.errors import (
    MalformedNameError,
    UnknownDocumentTypeError,
    UnknownEntityTypeError,
)
from uploader.services.pipeline.types import (
    HIERARCHY,
    DocumentRecord,
    EntityType,
    required_name_keys,
)

logger = logging.getLogger(__name__)

DOCUMENT_TYPES: dict[str, str] = {
    "bl": "Building Location",
    "f": "Finish",
    "fp": "Floor Plan",
    "g": "Gallery",
    "pp": "Project Plan",
    "up": "Unit Plan",
    "gd": "Generic Document",
}

FLAT_ENTITY_CODES: dict[str, EntityType] = {
    "p": EntityType.PHASE,
    "z": EntityType.ZONE,
    "b": EntityType.BUILDING,
    "u": EntityType.UNIT,
    "dt": EntityType.DESIGN_TYPE,
}

UNITS_MARKER = "units"
DESIGN_TYPES_MARKER = "design_types"


def document_type_for(code: str, *, source_path: str) -> str:
    try:
        return DOCUMENT_TYPES[code]
    except KeyError:
        raise UnknownDocumentTypeError(
            f"unknown document type prefix {code!r} in {source_path} "
            f"(expected one of: {', '.join(sorted(DOCUMENT_TYPES))})"
        ) from None


def _build_record(
    *,
    source_path: str,
    file_name: str,
    entity_type: EntityType,
    names: list[str],
    document_type: str,
) -> DocumentRecord:
    keys = required_name_keys(entity_type)
    if any(not name for name in names):
        raise MalformedNameError(
            f"empty name component in {source_path}: {names}",
            expected=len(keys),
            actual=sum(1 for name in names if name),
        )

    record = DocumentRecord(
        source_path=source_path,
        file_name=file_name,
        entity_type=entity_type,
        name_path=dict(zip(keys, names)),
        document_type=document_type,
    )
    logger.debug(
        "Parsed %s as %s %s (%s)",
        source_path,
        entity_type.value,
        dict(record.name_path),
        document_type,
    )
    return record


def parse_flat_filename(file_name: str, *, source_path: str | None = None) -> DocumentRecord:
    """Parse ``[docType]_[entity]_[name]...`` file names.

    The entity code fixes how many name components must follow it.
    """
    source = source_path or file_name
    parts = PurePosixPath(file_name).stem.split("_")
    if len(parts) < 3:
        raise MalformedNameError(
            f"invalid filename format: {file_name} (expected [docType]_[entity]_[names...])",
            actual=max(0, len(parts) - 2),
        )

    document_type = document_type_for(parts[0], source_path=source)

    entity_code = parts[1]
    entity_type = FLAT_ENTITY_CODES.get(entity_code)
    if entity_type is None:
        raise UnknownEntityTypeError(f"unknown entity type identifier {entity_code!r} in {source}")

    names = parts[2:]
    expected = len(required_name_keys(entity_type))
    if len(names) != expected:
        label = HIERARCHY[entity_type].label.lower()
        raise MalformedNameError(
            f"invalid {label} filename format in {source}: "
            f"expected {expected} parts, got {len(names)}",
            expected=expected,
            actual=len(names),
        )

    return _build_record(
        source_path=source,
        file_name=file_name,
        entity_type=entity_type,
        names=names,
        document_type=document_type,
    )


def _leaf_name(parts: list[str], *, entity_type: EntityType, source_path: str) -> str:
    leaf = "_".join(parts[1:])
    if not leaf:
        label = HIERARCHY[entity_type].label.lower()
        raise MalformedNameError(
            f"invalid {label} filename format in {source_path}: "
            "expected [docType]_[name], got no name after the document type",
            expected=2,
            actual=len(parts),
        )
    return leaf


def parse_document_path(relative_path: str) -> DocumentRecord:
    """Parse a path laid out as ``project/phase/zone/building/units/<file>``.

    Directory depth selects the level; ``units`` and ``design_types``
    segments mark the leaf levels whose name comes from the file name.
    """
    path = PurePosixPath(relative_path)
    directories = list(path.parts[:-1])
    parts = path.stem.split("_")
    document_type = document_type_for(parts[0], source_path=relative_path)
    depth = len(directories)

    if depth >= 3 and directories[2] == DESIGN_TYPES_MARKER:
        entity_type = EntityType.DESIGN_TYPE
        names = directories[:2] + [
            _leaf_name(parts, entity_type=entity_type, source_path=relative_path)
        ]
    elif depth >= 5 and directories[4] == UNITS_MARKER:
        entity_type = EntityType.UNIT
        names = directories[:4] + [
            _leaf_name(parts, entity_type=entity_type, source_path=relative_path)
        ]
    elif depth >= 4:
        entity_type = EntityType.BUILDING
        names = directories[:4]
    elif depth == 3:
        entity_type = EntityType.ZONE
        names = directories
    elif depth == 2:
        entity_type = EntityType.PHASE
        names = directories
    else:
        raise UnknownEntityTypeError(
            f"invalid path structure for {relative_path}: "
            f"cannot infer a hierarchy level from {directories}"
        )

    return _build_record(
        source_path=relative_path,
        file_name=path.name,
        entity_type=entity_type,
        names=names,
        document_type=document_type,
    )


def parse_document(relative_path: str) -> DocumentRecord:
    path = PurePosixPath(relative_path)
    if len(path.parts) == 1:
        return parse_flat_filename(path.name, source_path=relative_path)
    return parse_document_path(relative_path)
