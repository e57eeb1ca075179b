from __future__ import annotations

import argparse
from dataclasses import replace
import logging
from pathlib import Path
import sys
from typing import Sequence

from uploader.auth import BrowserLoginTokenProvider, StaticTokenProvider
from uploader.config import COMPOSITE_BATCH_LIMIT, Settings, get_settings
from uploader.logging_setup import open_run_log
from uploader.services.pipeline import collect_only, process_documents
from uploader.services.pipeline.errors import UploaderError
from uploader.services.pipeline.status import ConsoleStatusSink
from uploader.services.pipeline.types import DocumentRecord, PipelineSummary

logger = logging.getLogger(__name__)

PROG = "doc-upload"
PROGRESS_AUTHENTICATED = 0.1


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Upload project documents and link them to their hierarchy records",
    )
    parser.add_argument(
        "--documents-dir",
        default=settings.documents_dir,
        help="Root directory of the documents tree (default: UPLOADER_DOCUMENTS_DIR)",
    )
    parser.add_argument(
        "--access-token",
        default=None,
        help="Pre-issued access token; skips the browser login (default: SF_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Composite batch size, 1-{COMPOSITE_BATCH_LIMIT} (default: UPLOADER_BATCH_SIZE)",
    )
    parser.add_argument(
        "--distributions",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create public distribution links for uploaded files",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse the documents tree and print what would be uploaded, without remote calls",
    )
    return parser


def _resolve_token(access_token: str | None, settings: Settings) -> tuple[str, Settings]:
    token = access_token or settings.access_token
    if token:
        return StaticTokenProvider(token).get_token(), settings

    login = BrowserLoginTokenProvider(settings).login()
    if login.instance_url and not settings.instance_url:
        settings = replace(settings, instance_url=login.instance_url.rstrip("/"))
    return login.access_token, settings


def _print_dry_run(documents: Sequence[DocumentRecord]) -> None:
    for document in documents:
        print(
            f"{document.entity_type.value}\t{document.hierarchy_path()}\t"
            f"{document.document_type}\t{document.source_path}",
            flush=True,
        )
    print(f"[{PROG}] dry run parsed documents={len(documents)}", flush=True)


def _print_summary(summary: PipelineSummary) -> None:
    print(
        f"[{PROG}] completed documents={summary.document_count} "
        f"lookups={summary.lookup_count} uploaded={summary.uploaded_count} "
        f"join_records={summary.join_record_count} duration_ms={summary.duration_ms}",
        flush=True,
    )


def _run(
    args: argparse.Namespace,
    settings: Settings,
    status: ConsoleStatusSink,
) -> PipelineSummary | None:
    if args.batch_size is not None and not 1 <= args.batch_size <= COMPOSITE_BATCH_LIMIT:
        raise ValueError(f"--batch-size must be between 1 and {COMPOSITE_BATCH_LIMIT}")

    if args.dry_run:
        _print_dry_run(collect_only(args.documents_dir))
        return None

    status.set_status("Authenticating...")
    token, settings = _resolve_token(args.access_token, settings)
    status.set_progress(PROGRESS_AUTHENTICATED)

    return process_documents(
        documents_dir=args.documents_dir,
        access_token=token,
        settings=settings,
        status=status,
        batch_size=args.batch_size,
        create_distributions=args.distributions,
    )


def main(argv: Sequence[str] | None = None) -> None:
    settings = get_settings()
    parser = _build_parser(settings)
    args = parser.parse_args(argv)
    status = ConsoleStatusSink(prefix=PROG)

    try:
        with open_run_log(Path(settings.log_dir), settings.log_level) as log_path:
            logger.info("Document uploader started (log file %s)", log_path)
            try:
                summary = _run(args, settings, status)
            except UploaderError as exc:
                logger.error("Run failed: %s", exc)
                raise
    except Exception as exc:
        status.set_status("Error occurred")
        print(f"[{PROG}] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    if summary is not None:
        _print_summary(summary)


if __name__ == "__main__":
    main()
