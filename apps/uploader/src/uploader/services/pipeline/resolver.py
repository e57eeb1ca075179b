"""Resolve parsed documents against the remote hierarchy, one level at a time.

Levels are processed in ``RESOLUTION_ORDER`` so that a document is only
looked up once its parent has been resolved. Identical name paths within a
level collapse into a single lookup, and each level is sent as one batch.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
import json
import logging

from uploader.services.pipeline.errors import (
    EntityFailure,
    EntityLookupError,
    EntityResolutionError,
    ParentNotResolvedError,
)
from uploader.services.pipeline.salesforce_client import (
    LOOKUP_ERROR_MARKER,
    LookupKey,
    SalesforceClient,
)
from uploader.services.pipeline.status import NullStatusSink, StatusSink
from uploader.services.pipeline.types import (
    HIERARCHY,
    RESOLUTION_ORDER,
    DocumentRecord,
    EntityType,
    NameKey,
    ancestry,
    required_name_keys,
)

logger = logging.getLogger(__name__)


def level_key(entity_type: EntityType, name: str) -> str:
    return f"{entity_type.value}_{name}"


def parent_key(document: DocumentRecord) -> str | None:
    parent = document.level.parent
    if parent is None or parent is EntityType.PROJECT:
        return None
    return level_key(parent, document.name_path[HIERARCHY[parent].name_key])


def path_key(entity_type: EntityType, name_path: Mapping[str, str]) -> NameKey:
    keys = required_name_keys(entity_type)
    return entity_type, frozenset((key, name_path[key]) for key in keys)


@dataclass
class ResolutionReport:
    lookup_count: int = 0
    # parent_key -> id, consulted before a child level is looked up
    resolved: dict[str, str] = field(default_factory=dict)
    # full name path -> id, used to copy exact ancestor ids onto documents
    resolved_paths: dict[NameKey, str] = field(default_factory=dict)
    failures: list[EntityFailure] = field(default_factory=list)


def _decode_results(results: dict[str, str]) -> dict[frozenset[tuple[str, str]], str]:
    indexed: dict[frozenset[tuple[str, str]], str] = {}
    for raw_key, value in results.items():
        try:
            key = LookupKey.model_validate(json.loads(raw_key))
        except ValueError:
            logger.warning("Skipping undecodable lookup result key: %s", raw_key)
            continue
        indexed[frozenset(key.name_path.items())] = value
    return indexed


def _copy_ancestor_ids(document: DocumentRecord, resolved_paths: dict[NameKey, str]) -> None:
    for level in ancestry(document.entity_type)[:-1]:
        if level is EntityType.PROJECT:
            continue
        ancestor_id = resolved_paths.get(path_key(level, document.name_path))
        if ancestor_id is not None:
            document.record_id(HIERARCHY[level].id_key, ancestor_id)


def _resolve_level(
    entity_type: EntityType,
    documents: list[DocumentRecord],
    client: SalesforceClient,
    report: ResolutionReport,
) -> None:
    groups: dict[NameKey, list[DocumentRecord]] = defaultdict(list)
    for document in documents:
        key = parent_key(document)
        if key is not None and key not in report.resolved:
            report.failures.append(
                ParentNotResolvedError(
                    entity_type=entity_type.value,
                    path=document.hierarchy_path(),
                    details=f"Parent entity not found for {entity_type.value}",
                )
            )
            continue
        groups[document.lookup_key()].append(document)

    if not groups:
        return

    lookups = [
        LookupKey(entity_type=entity_type.value, name_path=dict(docs[0].name_path))
        for docs in groups.values()
    ]
    logger.info(
        "Looking up %d %s entities for %d documents",
        len(lookups),
        entity_type.value,
        sum(len(docs) for docs in groups.values()),
    )
    results = _decode_results(client.bulk_lookup(lookups))
    report.lookup_count += len(lookups)

    spec = HIERARCHY[entity_type]
    for (_, name_items), docs in groups.items():
        path = docs[0].hierarchy_path()
        result = results.get(name_items)
        if result is None:
            report.failures.append(
                EntityLookupError(
                    entity_type=entity_type.value,
                    path=path,
                    details="No lookup result returned",
                )
            )
            continue
        if result.startswith(LOOKUP_ERROR_MARKER):
            report.failures.append(
                EntityLookupError(entity_type=entity_type.value, path=path, details=result)
            )
            continue

        report.resolved[level_key(entity_type, docs[0].name_path[spec.name_key])] = result
        report.resolved_paths[path_key(entity_type, docs[0].name_path)] = result
        for document in docs:
            document.record_id(spec.id_key, result)
            _copy_ancestor_ids(document, report.resolved_paths)
        logger.debug("Resolved %s %s -> %s", entity_type.value, path, result)


def resolve_entities(
    documents: list[DocumentRecord],
    client: SalesforceClient,
    *,
    status: StatusSink | None = None,
) -> ResolutionReport:
    sink = status or NullStatusSink()
    logger.info("Starting bulk entity lookup for %d documents", len(documents))

    by_level: dict[EntityType, list[DocumentRecord]] = defaultdict(list)
    for document in documents:
        by_level[document.entity_type].append(document)

    report = ResolutionReport()
    for entity_type in RESOLUTION_ORDER:
        level_documents = by_level.get(entity_type)
        if not level_documents:
            continue
        sink.set_status(f"Looking up {HIERARCHY[entity_type].label.lower()} entities...")
        _resolve_level(entity_type, level_documents, client, report)

    if report.failures:
        for failure in report.failures:
            logger.error("%s not found: %s (%s)", failure.entity_type, failure.path, failure.details)
        raise EntityResolutionError(report.failures)

    logger.info("Successfully completed bulk entity lookup")
    return report
