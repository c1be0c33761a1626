"""Tests for ``engines.submit``: the httpx-backed submit function."""

from __future__ import annotations

import json

import httpx
import pytest

from core.errors import AppErrorException, ErrorCode, ErrorKind
from engines import HttpSubmitter
from models import OutcomeStatus, Record

URL = "https://api.example.com/products"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpSubmitter:
    @pytest.mark.asyncio
    async def test_posts_record_as_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["idempotency_key"] = request.headers["Idempotency-Key"]
            return httpx.Response(201, json={"id": 17, **seen["body"]})

        record = Record({"name": "Desk lamp", "price": "24.90"}, client_id="rec-1")
        async with HttpSubmitter(URL, client=mock_client(handler)) as submit:
            result = await submit(record)

        assert result == {"id": 17, "name": "Desk lamp", "price": "24.90"}
        assert seen == {
            "method": "POST",
            "url": URL,
            "body": {"name": "Desk lamp", "price": "24.90"},
            "idempotency_key": "rec-1",
        }

    @pytest.mark.asyncio
    async def test_empty_response_body(self):
        submit = HttpSubmitter(URL, client=mock_client(lambda request: httpx.Response(204)))
        assert await submit(Record(client_id="r")) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,code,kind", [
        (422, ErrorCode.E2000_VALIDATION_GENERIC, ErrorKind.VALIDATION),
        (409, ErrorCode.E2013_DUPLICATE_VALUE, ErrorKind.VALIDATION),
        (503, ErrorCode.E1021_HTTP_SERVER_ERROR, ErrorKind.TRANSIENT),
        (404, ErrorCode.E1020_HTTP_CLIENT_ERROR, ErrorKind.PERMANENT),
    ])
    async def test_error_statuses_raise_classified_errors(self, status, code, kind):
        submit = HttpSubmitter(URL, client=mock_client(
            lambda request: httpx.Response(status, json={"message": "nope"}),
        ))

        with pytest.raises(AppErrorException) as exc_info:
            await submit(Record(client_id="rec-9"))

        error = exc_info.value.error
        assert error.code is code
        assert error.kind is kind
        assert error.message == "nope"
        assert error.context.origin == "http_submit"
        assert error.context.record_id == "rec-9"

    @pytest.mark.asyncio
    async def test_connection_failure_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        submit = HttpSubmitter(URL, client=mock_client(handler))

        with pytest.raises(AppErrorException) as exc_info:
            await submit(Record(client_id="r"))

        assert exc_info.value.error.code is ErrorCode.E1001_CONNECTION_REFUSED
        assert exc_info.value.error.kind is ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_returned_raw(self):
        submit = HttpSubmitter(URL, client=mock_client(
            lambda request: httpx.Response(200, content=b"<html>ok</html>"),
        ))

        assert await submit(Record(client_id="r")) == {"raw": "<html>ok</html>"}

    @pytest.mark.asyncio
    async def test_non_json_created_response_is_posted_once(self, dispatcher, product_schema, make_record):
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(request.headers["Idempotency-Key"])
            return httpx.Response(201, content=b"Created")

        async with HttpSubmitter(URL, client=mock_client(handler)) as submit:
            run = await dispatcher.run([make_record(1)], product_schema, submit)

        assert posted == ["rec-1"]
        outcome = run.outcomes[0]
        assert outcome.status is OutcomeStatus.SUCCEEDED
        assert outcome.attempt_count == 1
        assert outcome.result == {"raw": "Created"}
        assert run.records[0].server_id is None

    @pytest.mark.asyncio
    async def test_borrowed_client_is_not_closed(self):
        client = mock_client(lambda request: httpx.Response(201, json={}))
        async with HttpSubmitter(URL, client=client):
            pass
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        submit = HttpSubmitter(URL, timeout=2.0)
        await submit.aclose()
        assert submit._client.is_closed
