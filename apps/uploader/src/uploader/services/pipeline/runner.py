from __future__ import annotations

import logging
from pathlib import Path
from time import perf_counter

from uploader.config import Settings, get_settings
from uploader.services.pipeline.collector import collect_documents
from uploader.services.pipeline.content_uploader import upload_contents
from uploader.services.pipeline.errors import UploaderError
from uploader.services.pipeline.file_source import FileSource, LocalFileSource
from uploader.services.pipeline.join_records import create_join_records
from uploader.services.pipeline.resolver import resolve_entities
from uploader.services.pipeline.salesforce_client import HttpSalesforceClient, SalesforceClient
from uploader.services.pipeline.status import NullStatusSink, StatusSink
from uploader.services.pipeline.types import DocumentRecord, PipelineSummary

logger = logging.getLogger(__name__)

PROGRESS_COLLECTED = 0.2
PROGRESS_RESOLVED = 0.4
PROGRESS_UPLOADED = 0.8
PROGRESS_DONE = 1.0


def open_file_source(documents_dir: Path | str | None) -> LocalFileSource:
    if documents_dir is None or not str(documents_dir).strip():
        raise UploaderError("no documents directory selected")
    root = Path(documents_dir)
    if not root.exists():
        raise UploaderError(f"documents directory does not exist: {root}")
    return LocalFileSource(root)


def collect_only(documents_dir: Path | str | None) -> list[DocumentRecord]:
    return collect_documents(open_file_source(documents_dir), root_label=str(documents_dir))


def build_client(access_token: str, settings: Settings) -> HttpSalesforceClient:
    return HttpSalesforceClient(
        instance_url=settings.instance_url,
        access_token=access_token,
        api_version=settings.api_version,
        timeout_seconds=settings.timeout_seconds,
        max_retries=settings.max_retries,
        retry_base_seconds=settings.retry_base_seconds,
    )


def process_documents(
    *,
    documents_dir: Path | str | None,
    access_token: str | None = None,
    client: SalesforceClient | None = None,
    file_source: FileSource | None = None,
    status: StatusSink | None = None,
    settings: Settings | None = None,
    batch_size: int | None = None,
    create_distributions: bool | None = None,
) -> PipelineSummary:
    settings = settings or get_settings()
    sink = status or NullStatusSink()
    start = perf_counter()

    source = file_source or open_file_source(documents_dir)
    if client is None:
        if not access_token:
            raise UploaderError("an access token is required to contact the remote service")
        client = build_client(access_token, settings)

    effective_batch_size = batch_size or settings.batch_size
    distributions = (
        settings.create_distributions if create_distributions is None else create_distributions
    )

    sink.set_status("Collecting documents...")
    root_label = str(documents_dir) if documents_dir else "documents directory"
    documents = collect_documents(source, root_label=root_label)
    sink.set_progress(PROGRESS_COLLECTED)

    sink.set_status("Looking up entities...")
    report = resolve_entities(documents, client, status=sink)
    sink.set_progress(PROGRESS_RESOLVED)

    sink.set_status("Uploading content...")
    uploaded = upload_contents(
        documents,
        client,
        source,
        batch_size=effective_batch_size,
        create_distributions=distributions,
        strict_distributions=settings.strict_distributions,
        status=sink,
        progress_range=(PROGRESS_RESOLVED, PROGRESS_UPLOADED),
    )
    sink.set_progress(PROGRESS_UPLOADED)

    sink.set_status("Creating attachment records...")
    created = create_join_records(
        documents,
        client,
        source,
        batch_size=effective_batch_size,
        status=sink,
        progress_range=(PROGRESS_UPLOADED, PROGRESS_DONE),
    )
    sink.set_progress(PROGRESS_DONE)
    sink.set_status("Completed")
    logger.info("Document processing completed successfully")

    return PipelineSummary(
        document_count=len(documents),
        lookup_count=report.lookup_count,
        uploaded_count=uploaded,
        join_record_count=created,
        duration_ms=int((perf_counter() - start) * 1000),
    )
