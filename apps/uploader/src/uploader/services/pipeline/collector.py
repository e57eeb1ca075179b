from __future__ import annotations

import logging

from uploader.services.pipeline.errors import EmptyCollectionError
from uploader.services.pipeline.file_source import FileSource
from uploader.services.pipeline.parser import parse_document
from uploader.services.pipeline.types import DocumentRecord

logger = logging.getLogger(__name__)


def collect_documents(
    file_source: FileSource,
    *,
    root_label: str = "documents directory",
) -> list[DocumentRecord]:
    documents: list[DocumentRecord] = []
    for relative_path in file_source.iter_relative_paths():
        logger.debug("Reading file: %s", relative_path)
        documents.append(parse_document(relative_path))

    if not documents:
        logger.warning("No documents found in %s", root_label)
        raise EmptyCollectionError(f"no documents found in {root_label}")

    logger.info("Collected %d documents for processing", len(documents))
    return documents
