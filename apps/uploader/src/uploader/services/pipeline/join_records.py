from __future__ import annotations

import logging
from typing import Sequence

from uploader.services.pipeline.batching import submit_batches
from uploader.services.pipeline.content_type import SNIFF_BYTES, content_type_tag, detect_mime_type
from uploader.services.pipeline.content_uploader import deep_link
from uploader.services.pipeline.errors import NothingToCreateError
from uploader.services.pipeline.file_source import FileSource
from uploader.services.pipeline.salesforce_client import CreateRequest, SalesforceClient
from uploader.services.pipeline.status import NullStatusSink, StatusSink
from uploader.services.pipeline.types import DISTRIBUTION_URL_KEY, DocumentRecord, EntityType

logger = logging.getLogger(__name__)

JOIN_SOBJECT = "Attachments_Uploader__c"

DISPLAY_TEMPLATES: dict[EntityType, str] = {
    EntityType.UNIT: "{doc} for Unit {unit} of Building {building} in Phase {phase} of {project}",
    EntityType.BUILDING: "{doc} for Building {building} in Zone {zone} of Phase {phase} - {project}",
    EntityType.ZONE: "{doc} for Zone {zone} in Phase {phase} of {project}",
    EntityType.PHASE: "{doc} for Phase {phase} of {project}",
    EntityType.DESIGN_TYPE: "{doc} for Design Type {designType} in Phase {phase} of {project}",
}


def display_value(document: DocumentRecord) -> str:
    template = DISPLAY_TEMPLATES.get(document.entity_type)
    if template is None:
        return document.file_name.rsplit(".", 1)[0]
    return template.format(doc=document.document_type, **document.name_path)


def sniff_content_type(document: DocumentRecord, file_source: FileSource) -> str:
    try:
        head = file_source.read_head(document.source_path, SNIFF_BYTES)
    except OSError as exc:
        logger.warning("Could not sniff %s (%s); assuming Image", document.source_path, exc)
        head = b""
    return content_type_tag(detect_mime_type(document.file_name, head))


def build_join_records(
    documents: Sequence[DocumentRecord],
    file_source: FileSource,
) -> list[CreateRequest]:
    requests: list[CreateRequest] = []
    for index, document in enumerate(documents):
        if not document.content_document_id:
            logger.warning("Missing ContentDocumentId for document: %s", document.source_path)
            continue

        entity_id = document.own_id
        join_field = document.level.join_field
        if not entity_id or join_field is None:
            logger.warning(
                "Missing %s ID for document: %s",
                document.entity_type.value,
                document.source_path,
            )
            continue

        text = display_value(document)
        body = {
            "Name": entity_id,
            "Attachment_Type__c": document.document_type,
            "Content_Type__c": sniff_content_type(document, file_source),
            "ContentDocumentId__c": document.content_document_id,
            "Attachment_Url__c": document.resolved_ids.get(
                DISTRIBUTION_URL_KEY, deep_link(document.content_document_id)
            ),
            "Display_Value__c": text,
            "Display_Value_Arabic__c": text,
            join_field: entity_id,
        }
        logger.debug("Creating attachment uploader record for: %s", document.source_path)
        requests.append(CreateRequest(reference_id=f"attRef{index}", body=body))
    return requests


def create_join_records(
    documents: Sequence[DocumentRecord],
    client: SalesforceClient,
    file_source: FileSource,
    *,
    batch_size: int,
    status: StatusSink | None = None,
    progress_range: tuple[float, float] = (0.8, 1.0),
) -> int:
    sink = status or NullStatusSink()
    logger.info("Starting attachment uploader creation")

    requests = build_join_records(documents, file_source)
    if not requests:
        logger.error("no valid records to create")
        raise NothingToCreateError("no valid records to create")

    progress_start, progress_end = progress_range

    def _on_batch(number: int, total: int) -> None:
        sink.set_progress(progress_start + (progress_end - progress_start) * number / total)

    created = submit_batches(
        client,
        JOIN_SOBJECT,
        requests,
        batch_size=batch_size,
        on_batch=_on_batch,
    )
    for reference_id, result in created.items():
        logger.debug("Created %s %s for %s", JOIN_SOBJECT, result.created_id(), reference_id)

    logger.info("Successfully created %d attachment uploaders", len(requests))
    return len(requests)
