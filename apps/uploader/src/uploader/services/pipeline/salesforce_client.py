from __future__ import annotations

import logging
from random import random
from time import sleep
from typing import Any, Protocol, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from uploader.config import COMPOSITE_BATCH_LIMIT
from uploader.services.pipeline.errors import RemoteCallError, ResponseDecodeError

logger = logging.getLogger(__name__)

LOOKUP_ERROR_MARKER = "ERROR:"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LookupKey(_WireModel):
    entity_type: str = Field(alias="entityType")
    name_path: dict[str, str] = Field(alias="namePath")


class CreateRequest(_WireModel):
    reference_id: str = Field(alias="referenceId")
    body: dict[str, Any]


class RemoteErrorItem(_WireModel):
    error_code: str | None = Field(default=None, alias="errorCode")
    message: str | None = None


class CompositeSubresponse(_WireModel):
    body: Any = None
    http_status_code: int = Field(alias="httpStatusCode")
    reference_id: str = Field(alias="referenceId")

    def created_id(self) -> str | None:
        if isinstance(self.body, dict):
            value = self.body.get("id")
            if isinstance(value, str) and value:
                return value
        return None

    def remote_errors(self) -> list[RemoteErrorItem]:
        if not isinstance(self.body, list):
            return []
        return [RemoteErrorItem.model_validate(item) for item in self.body if isinstance(item, dict)]


class CompositeResponse(_WireModel):
    composite_response: list[CompositeSubresponse] = Field(alias="compositeResponse")


class QueryResponse(_WireModel):
    total_size: int = Field(default=0, alias="totalSize")
    done: bool = True
    next_records_url: str | None = Field(default=None, alias="nextRecordsUrl")
    records: list[dict[str, Any]]


_LOOKUP_RESULTS = TypeAdapter(dict[str, str])
_REMOTE_ERRORS = TypeAdapter(list[RemoteErrorItem])


class SalesforceClient(Protocol):
    def bulk_lookup(self, lookups: Sequence[LookupKey]) -> dict[str, str]: ...

    def composite_create(
        self,
        sobject: str,
        requests: Sequence[CreateRequest],
        *,
        all_or_none: bool = True,
    ) -> CompositeResponse: ...

    def query(self, soql: str) -> list[dict[str, Any]]: ...


def describe_remote_error(response: httpx.Response) -> str:
    try:
        items = _REMOTE_ERRORS.validate_python(response.json())
    except (ValueError, ValidationError):
        return response.text
    if items:
        return f"{items[0].error_code} - {items[0].message}"
    return response.text


class HttpSalesforceClient:
    def __init__(
        self,
        *,
        instance_url: str,
        access_token: str,
        api_version: str = "v57.0",
        timeout_seconds: float = 60.0,
        max_retries: int = 0,
        retry_base_seconds: float = 0.5,
    ) -> None:
        if not instance_url:
            raise RemoteCallError("SF_INSTANCE_URL is not configured")
        self._instance_url = instance_url.rstrip("/")
        self._access_token = access_token
        self._api_version = api_version
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._retry_base_seconds = retry_base_seconds

    @property
    def data_url(self) -> str:
        return f"{self._instance_url}/services/data/{self._api_version}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _send(self, method: str, url: str, *, retry: bool, **kwargs: Any) -> httpx.Response:
        attempts = 1 + (self._max_retries if retry else 0)
        delay = self._retry_base_seconds
        attempt = 1

        while True:
            send = httpx.post if method == "POST" else httpx.get
            try:
                response = send(url, headers=self._headers(), timeout=self._timeout_seconds, **kwargs)
                break
            except httpx.TransportError as exc:
                if attempt >= attempts:
                    raise RemoteCallError(f"{method} {url} failed: {exc}") from exc
                logger.warning(
                    "%s %s failed attempt=%d/%d error=%r; retrying in %.1fs",
                    method,
                    url,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                sleep(delay + random() * 0.2 * delay)
                delay *= 2
                attempt += 1
            except httpx.HTTPError as exc:
                raise RemoteCallError(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 401:
            raise RemoteCallError(
                "access token was rejected (expired or revoked); sign in again",
                status_code=401,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, *, what: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseDecodeError(
                f"error decoding {what} response: {exc}",
                status_code=response.status_code,
            ) from exc

    def bulk_lookup(self, lookups: Sequence[LookupKey]) -> dict[str, str]:
        payload = {"lookups": [lookup.model_dump(by_alias=True) for lookup in lookups]}
        url = f"{self._instance_url}/services/apexrest/admin/bulk-lookup"
        logger.debug("Bulk lookup request payload: %s", payload)

        response = self._send("POST", url, retry=True, json=payload)
        logger.debug("Bulk lookup response: %s", response.text)
        if response.status_code != 200:
            raise RemoteCallError(
                f"bulk lookup failed with status {response.status_code}: "
                f"{describe_remote_error(response)}",
                status_code=response.status_code,
            )

        try:
            return _LOOKUP_RESULTS.validate_python(self._json(response, what="bulk lookup"))
        except ValidationError as exc:
            raise ResponseDecodeError(
                f"error decoding bulk lookup response: {exc}",
                status_code=response.status_code,
            ) from exc

    def composite_create(
        self,
        sobject: str,
        requests: Sequence[CreateRequest],
        *,
        all_or_none: bool = True,
    ) -> CompositeResponse:
        if len(requests) > COMPOSITE_BATCH_LIMIT:
            raise ValueError(
                f"composite batches are limited to {COMPOSITE_BATCH_LIMIT} requests, "
                f"got {len(requests)}"
            )

        payload = {
            "allOrNone": all_or_none,
            "compositeRequest": [
                {
                    "method": "POST",
                    "url": f"/services/data/{self._api_version}/sobjects/{sobject}",
                    "referenceId": request.reference_id,
                    "body": request.body,
                }
                for request in requests
            ],
        }
        logger.debug("Sending composite %s request with %d subrequests", sobject, len(requests))

        response = self._send("POST", f"{self.data_url}/composite", retry=False, json=payload)
        if response.status_code >= 400:
            raise RemoteCallError(
                f"composite {sobject} request failed with status {response.status_code}: "
                f"{describe_remote_error(response)}",
                status_code=response.status_code,
            )

        try:
            decoded = CompositeResponse.model_validate(self._json(response, what="composite"))
        except ValidationError as exc:
            raise ResponseDecodeError(
                f"error decoding composite response: {exc}",
                status_code=response.status_code,
            ) from exc
        logger.debug("Received composite %s response: %s", sobject, response.text)
        return decoded

    def query(self, soql: str) -> list[dict[str, Any]]:
        logger.debug("Running query: %s", soql)
        records: list[dict[str, Any]] = []
        url = f"{self.data_url}/query"
        params: dict[str, str] | None = {"q": soql}

        while True:
            response = self._send("GET", url, retry=True, params=params)
            if response.status_code != 200:
                raise RemoteCallError(
                    f"query failed with status {response.status_code}: "
                    f"{describe_remote_error(response)}",
                    status_code=response.status_code,
                )
            try:
                page = QueryResponse.model_validate(self._json(response, what="query"))
            except ValidationError as exc:
                raise ResponseDecodeError(
                    f"error decoding query response: {exc}",
                    status_code=response.status_code,
                ) from exc

            records.extend(page.records)
            if page.done or not page.next_records_url:
                return records
            url = f"{self._instance_url}{page.next_records_url}"
            params = None
