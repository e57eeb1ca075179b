from uploader.services.pipeline.collector import collect_documents
from uploader.services.pipeline.parser import parse_document
from uploader.services.pipeline.resolver import resolve_entities
from uploader.services.pipeline.runner import collect_only, process_documents
from uploader.services.pipeline.types import DocumentRecord, EntityType, PipelineSummary

__all__ = [
    "DocumentRecord",
    "EntityType",
    "PipelineSummary",
    "collect_documents",
    "collect_only",
    "parse_document",
    "process_documents",
    "resolve_entities",
]
