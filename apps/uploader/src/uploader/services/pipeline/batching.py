from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
import logging
from typing import TypeVar

from uploader.services.pipeline.errors import PartialBatchFailure, RemoteCallError
from uploader.services.pipeline.salesforce_client import (
    CompositeSubresponse,
    CreateRequest,
    SalesforceClient,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREATED = 201
HALTED_ERROR_CODE = "PROCESSING_HALTED"


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("batch size must be > 0")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def batch_count(total: int, size: int) -> int:
    return (total + size - 1) // size


def soql_id_list(ids: Sequence[str]) -> str:
    return ",".join("'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'" for value in ids)


def _failure_for(sobject: str, failed: list[CompositeSubresponse]) -> PartialBatchFailure:
    # Under allOrNone the siblings of the real failure report PROCESSING_HALTED.
    for result in failed:
        for error in result.remote_errors():
            if error.error_code != HALTED_ERROR_CODE:
                return PartialBatchFailure(
                    f"failed to create {sobject}: {error.error_code} - {error.message}",
                    reference_id=result.reference_id,
                    status_code=result.http_status_code,
                    error_code=error.error_code,
                    remote_message=error.message,
                )

    first = failed[0]
    errors = first.remote_errors()
    if errors:
        return PartialBatchFailure(
            f"failed to create {sobject}: {errors[0].error_code} - {errors[0].message}",
            reference_id=first.reference_id,
            status_code=first.http_status_code,
            error_code=errors[0].error_code,
            remote_message=errors[0].message,
        )
    return PartialBatchFailure(
        f"failed to create {sobject} for reference {first.reference_id}: "
        f"status {first.http_status_code}",
        reference_id=first.reference_id,
        status_code=first.http_status_code,
    )


def submit_batch(
    client: SalesforceClient,
    sobject: str,
    requests: Sequence[CreateRequest],
) -> dict[str, CompositeSubresponse]:
    response = client.composite_create(sobject, list(requests), all_or_none=True)
    by_reference = {result.reference_id: result for result in response.composite_response}

    failed = [result for result in response.composite_response if result.http_status_code != CREATED]
    if failed:
        failure = _failure_for(sobject, failed)
        logger.error("%s (reference %s)", failure, failure.reference_id)
        raise failure

    missing = [request.reference_id for request in requests if request.reference_id not in by_reference]
    if missing:
        raise RemoteCallError(f"composite {sobject} response is missing references: {missing}")
    return by_reference


def submit_batches(
    client: SalesforceClient,
    sobject: str,
    requests: Sequence[CreateRequest],
    *,
    batch_size: int,
    on_batch: Callable[[int, int], None] | None = None,
) -> dict[str, CompositeSubresponse]:
    total = batch_count(len(requests), batch_size)
    results: dict[str, CompositeSubresponse] = {}
    for number, batch in enumerate(chunked(requests, batch_size), start=1):
        logger.info("Processing %s batch %d of %d (%d records)", sobject, number, total, len(batch))
        results.update(submit_batch(client, sobject, batch))
        if on_batch is not None:
            on_batch(number, total)
    return results
