from __future__ import annotations

import base64
import logging
from typing import Sequence

from uploader.services.pipeline.batching import (
    batch_count,
    chunked,
    soql_id_list,
    submit_batch,
    submit_batches,
)
from uploader.services.pipeline.errors import (
    ContentDocumentMissingError,
    DistributionLinkError,
    RemoteCallError,
    UploaderError,
)
from uploader.services.pipeline.file_source import FileSource
from uploader.services.pipeline.salesforce_client import CreateRequest, SalesforceClient
from uploader.services.pipeline.status import NullStatusSink, StatusSink
from uploader.services.pipeline.types import (
    CONTENT_VERSION_ID_KEY,
    DISTRIBUTION_URL_KEY,
    DocumentRecord,
)

logger = logging.getLogger(__name__)

CONTENT_VERSION = "ContentVersion"
CONTENT_DISTRIBUTION = "ContentDistribution"


def deep_link(content_document_id: str) -> str:
    return f"/lightning/r/ContentDocument/{content_document_id}/view"


def _check_sources(documents: Sequence[DocumentRecord], file_source: FileSource) -> None:
    for document in documents:
        if not document.own_id:
            raise UploaderError(
                f"{document.source_path}: no resolved {document.entity_type.value} id to publish to"
            )
        try:
            file_source.read_head(document.source_path, 1)
        except OSError as exc:
            logger.error("error reading file %s: %s", document.source_path, exc)
            raise UploaderError(f"error reading file {document.source_path}: {exc}") from exc


def _content_version_request(
    index: int,
    document: DocumentRecord,
    file_source: FileSource,
) -> CreateRequest:
    parent_id = document.own_id
    if not parent_id:
        raise UploaderError(
            f"{document.source_path}: no resolved {document.entity_type.value} id to publish to"
        )

    try:
        content = file_source.read_bytes(document.source_path)
    except OSError as exc:
        logger.error("error reading file %s: %s", document.source_path, exc)
        raise UploaderError(f"error reading file {document.source_path}: {exc}") from exc

    logger.debug("Prepared request for file: %s", document.source_path)
    return CreateRequest(
        reference_id=f"ref{index}",
        body={
            "Title": document.file_name,
            "PathOnClient": document.file_name,
            "VersionData": base64.b64encode(content).decode("ascii"),
            "FirstPublishLocationId": parent_id,
        },
    )


def _attach_content_document_ids(
    documents: Sequence[DocumentRecord],
    client: SalesforceClient,
) -> None:
    logger.info("Retrieving ContentDocument IDs")
    version_ids = [document.resolved_ids[CONTENT_VERSION_ID_KEY] for document in documents]
    records = client.query(
        "SELECT Id, ContentDocumentId FROM ContentVersion "
        f"WHERE Id IN ({soql_id_list(version_ids)})"
    )

    by_version: dict[str, str] = {}
    for record in records:
        version_id = record.get("Id")
        content_document_id = record.get("ContentDocumentId")
        if isinstance(version_id, str) and isinstance(content_document_id, str):
            by_version[version_id] = content_document_id
            logger.debug(
                "Mapping ContentVersion %s to ContentDocument %s", version_id, content_document_id
            )

    for document in documents:
        version_id = document.resolved_ids[CONTENT_VERSION_ID_KEY]
        content_document_id = by_version.get(version_id, "")
        if not content_document_id:
            logger.error(
                "ContentDocumentId not set for file: %s (VersionId: %s)",
                document.source_path,
                version_id,
            )
            raise ContentDocumentMissingError(
                f"failed to get ContentDocumentId for file: {document.source_path}"
            )
        document.content_document_id = content_document_id


def _fallback_links(documents: Sequence[DocumentRecord], *, strict: bool, reason: str) -> None:
    if strict:
        raise DistributionLinkError(reason)
    logger.warning("%s; falling back to record deep links", reason)
    for document in documents:
        document.record_id(DISTRIBUTION_URL_KEY, deep_link(document.content_document_id))


def create_distribution_links(
    documents: Sequence[DocumentRecord],
    client: SalesforceClient,
    *,
    batch_size: int,
    strict: bool = False,
) -> None:
    requests = [
        CreateRequest(
            reference_id=f"dist{index}",
            body={
                "Name": document.file_name,
                "ContentVersionId": document.resolved_ids[CONTENT_VERSION_ID_KEY],
                "PreferencesAllowViewInBrowser": True,
                "PreferencesLinkLatestVersion": True,
                "PreferencesNotifyOnVisit": False,
                "PreferencesPasswordRequired": False,
                "PreferencesAllowOriginalDownload": True,
            },
        )
        for index, document in enumerate(documents)
    ]

    try:
        created = submit_batches(client, CONTENT_DISTRIBUTION, requests, batch_size=batch_size)
    except RemoteCallError as exc:
        _fallback_links(documents, strict=strict, reason=f"distribution creation failed: {exc}")
        return

    distribution_ids = [
        distribution_id
        for distribution_id in (result.created_id() for result in created.values())
        if distribution_id
    ]
    urls_by_version: dict[str, str] = {}
    if distribution_ids:
        try:
            records = client.query(
                "SELECT Id, ContentVersionId, DistributionPublicUrl FROM ContentDistribution "
                f"WHERE Id IN ({soql_id_list(distribution_ids)})"
            )
        except RemoteCallError as exc:
            _fallback_links(documents, strict=strict, reason=f"distribution URL query failed: {exc}")
            return
        for record in records:
            version_id = record.get("ContentVersionId")
            url = record.get("DistributionPublicUrl")
            if isinstance(version_id, str) and isinstance(url, str) and url:
                urls_by_version[version_id] = url

    for document in documents:
        url = urls_by_version.get(document.resolved_ids[CONTENT_VERSION_ID_KEY])
        if url:
            document.record_id(DISTRIBUTION_URL_KEY, url)
            continue
        if strict:
            raise DistributionLinkError(f"no public distribution URL for {document.source_path}")
        logger.warning("No public distribution URL for %s; using deep link", document.source_path)
        document.record_id(DISTRIBUTION_URL_KEY, deep_link(document.content_document_id))


def upload_contents(
    documents: Sequence[DocumentRecord],
    client: SalesforceClient,
    file_source: FileSource,
    *,
    batch_size: int,
    create_distributions: bool = False,
    strict_distributions: bool = False,
    status: StatusSink | None = None,
    progress_range: tuple[float, float] = (0.4, 0.8),
) -> int:
    if not documents:
        return 0

    sink = status or NullStatusSink()
    progress_start, progress_end = progress_range
    total = batch_count(len(documents), batch_size)
    logger.info("Uploading %d documents in %d batches", len(documents), total)

    _check_sources(documents, file_source)

    indexed = list(enumerate(documents))
    for number, batch in enumerate(chunked(indexed, batch_size), start=1):
        sink.set_status(f"Uploading content batch {number} of {total}...")
        requests = [
            _content_version_request(index, document, file_source) for index, document in batch
        ]
        by_reference = {f"ref{index}": document for index, document in batch}

        results = submit_batch(client, CONTENT_VERSION, requests)
        for reference_id, result in results.items():
            document = by_reference.get(reference_id)
            version_id = result.created_id()
            if document is None or version_id is None:
                continue
            document.record_id(CONTENT_VERSION_ID_KEY, version_id)
            logger.debug("Created ContentVersion %s for file %s", version_id, document.source_path)

        sink.set_progress(progress_start + (progress_end - progress_start) * number / total)

    missing = [
        document.source_path
        for document in documents
        if CONTENT_VERSION_ID_KEY not in document.resolved_ids
    ]
    if missing:
        raise ContentDocumentMissingError(
            f"no ContentVersion id returned for: {', '.join(missing)}"
        )

    _attach_content_document_ids(documents, client)

    if create_distributions:
        sink.set_status("Creating distribution links...")
        create_distribution_links(
            documents,
            client,
            batch_size=batch_size,
            strict=strict_distributions,
        )

    logger.info("Successfully completed content version uploads")
    return len(documents)
