"""HTTP Submit Client

Creates one record remotely by POSTing its field values as JSON. Failures
are raised as AppErrorException carrying the classified AppError, so the
breaker and retry policy see the same error kind whichever way they are
surfaced.

Usage:
    async with HttpSubmitter(settings.SUBMIT_URL) as submit:
        run = await dispatcher.run(records, schema, submit)
"""
from __future__ import annotations

from typing import Any, Mapping

import httpx

from core.config import settings
from core.errors import AppErrorException, SubmitErrorMapper
from core.logging import client_logger
from models import Record

log = client_logger()


class HttpSubmitter:
    """Callable submit function backed by an httpx.AsyncClient."""

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url or settings.SUBMIT_URL
        self._mapper = SubmitErrorMapper(origin="http_submit")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.SUBMIT_TIMEOUT,
            headers=dict(headers or {}),
        )

    async def __call__(self, record: Record) -> Any:
        """POST the record and return the decoded response body."""
        try:
            response = await self._client.post(
                self.url,
                json=record.to_dict(),
                headers={"Idempotency-Key": record.client_id},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = self._mapper.map_exception(e).with_context(record_id=record.client_id)
            log.debug(
                "submit_failed",
                record_id=record.client_id,
                error_code=error.code.name,
                status_code=error.status_code,
            )
            raise AppErrorException(error) from e

        log.debug("submit_succeeded", record_id=record.client_id, status_code=response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # The record exists remotely even without a JSON body
            log.warning("submit_response_not_json", record_id=record.client_id,
                        status_code=response.status_code)
            return {"raw": response.text}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpSubmitter:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
