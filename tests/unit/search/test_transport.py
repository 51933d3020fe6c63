"""Tests for the HTTP transport and error classification."""

from __future__ import annotations

import json
from typing import List

import httpx
import pytest


class RecordingTransport(httpx.AsyncBaseTransport):
    """Answers every request with a fixed response and records requests."""

    def __init__(self, status: int = 200, payload=None, text: str = None):
        self.status = status
        self.payload = {"ok": True} if payload is None else payload
        self.text = text
        self.requests: List[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text, request=request)
        return httpx.Response(self.status, json=self.payload, request=request)


class FailingTransport(httpx.AsyncBaseTransport):
    def __init__(self, exc: Exception):
        self.exc = exc

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        raise self.exc


def _transport(stub, provider=None):
    from esrest.core.search.transport import HttpTransport

    return HttpTransport(endpoint_provider=provider, transport=stub)


class TestRequests:
    """Request encoding and endpoint resolution."""

    @pytest.mark.asyncio
    async def test_json_body(self):
        """Dict bodies are sent as JSON to the resolved endpoint."""
        stub = RecordingTransport()
        http = _transport(stub)

        resp = await http.request("PUT", "/idx/doc/1", {"f1": "x"})

        assert resp.status == 200
        assert resp.json() == {"ok": True}
        request = stub.requests[0]
        assert str(request.url) == "http://localhost:9200/idx/doc/1"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"f1": "x"}
        await http.close()

    @pytest.mark.asyncio
    async def test_ndjson_body(self):
        """List bodies are sent as newline-delimited JSON."""
        stub = RecordingTransport()
        http = _transport(stub)

        await http.request("POST", "/_bulk", [{"create": {"_id": "1"}}, {"f1": "x"}])

        request = stub.requests[0]
        assert request.headers["content-type"] == "application/x-ndjson"
        lines = request.content.decode().split("\n")
        assert lines[-1] == ""
        assert [json.loads(line) for line in lines[:-1]] == [{"create": {"_id": "1"}}, {"f1": "x"}]
        await http.close()

    @pytest.mark.asyncio
    async def test_query_params(self):
        """Params are added to the query string."""
        stub = RecordingTransport()
        http = _transport(stub)

        await http.request("POST", "/idx/doc/_search", {}, params={"scroll": "1m"})

        assert stub.requests[0].url.params["scroll"] == "1m"
        await http.close()

    @pytest.mark.asyncio
    async def test_endpoint_resolved_per_request(self):
        """Each request asks the provider for the current endpoint."""
        from esrest.core.search.endpoint import Endpoint, EndpointProvider

        class RotatingProvider(EndpointProvider):
            def __init__(self):
                self.calls = 0

            async def resolve(self) -> Endpoint:
                self.calls += 1
                return Endpoint(f"node{self.calls}", 9200)

        stub = RecordingTransport()
        provider = RotatingProvider()
        http = _transport(stub, provider)

        await http.request("GET", "/")
        await http.request("GET", "/")

        assert provider.calls == 2
        assert [r.url.host for r in stub.requests] == ["node1", "node2"]
        await http.close()

    @pytest.mark.asyncio
    async def test_endpoint_from_settings(self, monkeypatch):
        """The default provider reads host, port and scheme from settings."""
        monkeypatch.setenv("ES_HOST", "search.internal")
        monkeypatch.setenv("ES_PORT", "9243")
        monkeypatch.setenv("ES_SCHEME", "https")

        stub = RecordingTransport()
        http = _transport(stub)
        await http.request("GET", "/_stats")

        assert str(stub.requests[0].url) == "https://search.internal:9243/_stats"
        await http.close()

    @pytest.mark.asyncio
    async def test_basic_auth(self, monkeypatch):
        """Credentials are sent when both are configured."""
        monkeypatch.setenv("ES_USERNAME", "elastic")
        monkeypatch.setenv("ES_PASSWORD", "secret")

        stub = RecordingTransport()
        http = _transport(stub)
        await http.request("GET", "/")

        assert stub.requests[0].headers["authorization"].startswith("Basic ")
        await http.close()

    @pytest.mark.asyncio
    async def test_document_ids_are_escaped(self):
        """Reserved characters in ids stay inside the id segment of the path."""
        from esrest.core.search.client import Document, ElasticsearchClient

        stub = RecordingTransport(payload={"_id": "x", "_version": 1, "result": "created", "found": False})
        es = ElasticsearchClient(transport=stub)

        for doc_id in ("a/b", "a#b", "a?b"):
            await es.index("idx", "doc", Document(doc_id, {"f1": "x"}))
            await es.get_document("idx", "doc", doc_id)

        assert [r.url.raw_path for r in stub.requests] == [
            b"/idx/doc/a%2Fb", b"/idx/doc/a%2Fb",
            b"/idx/doc/a%23b", b"/idx/doc/a%23b",
            b"/idx/doc/a%3Fb", b"/idx/doc/a%3Fb",
        ]
        assert all(not r.url.query for r in stub.requests)
        await es.close()

    @pytest.mark.asyncio
    async def test_index_and_type_segments_are_escaped(self):
        """Index and type names are escaped; commas for multi-index stay literal."""
        from esrest.core.search.client import ElasticsearchClient
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        stub = RecordingTransport(payload={"count": 0})
        es = ElasticsearchClient(transport=stub)

        await es.count("a,b", "my type", QueryRoot(MatchAllQuery()))
        await es.refresh("x/y")

        assert stub.requests[0].url.raw_path == b"/a,b/my%20type/_count"
        assert stub.requests[1].url.raw_path == b"/x%2Fy/_refresh"
        await es.close()


class TestErrors:
    """Failure classification."""

    @pytest.mark.asyncio
    async def test_index_already_exists(self):
        """A 400 resource_already_exists_exception becomes IndexAlreadyExistsError."""
        from esrest.core.errors import IndexAlreadyExistsError

        stub = RecordingTransport(400, {
            "error": {"type": "resource_already_exists_exception", "index": "idx"},
            "status": 400,
        })
        http = _transport(stub)

        with pytest.raises(IndexAlreadyExistsError) as exc_info:
            await http.request("PUT", "/idx")
        assert exc_info.value.index == "idx"
        await http.close()

    def test_legacy_already_exists_shapes(self):
        """Older engine error shapes are also recognized."""
        from esrest.core.errors import IndexAlreadyExistsError
        from esrest.core.search.transport import classify_error

        old = json.dumps({"error": {"type": "index_already_exists_exception"}})
        older = json.dumps({"error": "IndexAlreadyExistsException[[idx] already exists]", "status": 400})

        assert isinstance(classify_error(400, old, "/idx"), IndexAlreadyExistsError)
        error = classify_error(400, older, "/idx")
        assert isinstance(error, IndexAlreadyExistsError)
        assert error.index == "idx"

    def test_other_status(self):
        """Other statuses become TransportError carrying status and body."""
        from esrest.core.errors import ErrorCode, IndexAlreadyExistsError, TransportError
        from esrest.core.search.transport import classify_error

        text = json.dumps({"error": {"type": "index_not_found_exception", "reason": "no such index"}})
        error = classify_error(404, text, "/missing/_search")

        assert isinstance(error, TransportError)
        assert not isinstance(error, IndexAlreadyExistsError)
        assert error.status == 404
        assert error.body == text
        assert error.code == ErrorCode.TRANSPORT_ERROR
        assert "index_not_found_exception" in error.message

    def test_non_json_error_body(self):
        """A plain-text error body is kept verbatim."""
        from esrest.core.errors import TransportError
        from esrest.core.search.transport import classify_error

        error = classify_error(502, "Bad Gateway", "/")
        assert isinstance(error, TransportError)
        assert "Bad Gateway" in error.message

    @pytest.mark.asyncio
    async def test_allowed_status(self):
        """Allowed non-2xx statuses are returned, not raised."""
        stub = RecordingTransport(404, {"found": False})
        http = _transport(stub)

        resp = await http.request("GET", "/idx/doc/1", allowed_status=(404,))
        assert resp.status == 404
        await http.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts become TransportError with the TIMEOUT code."""
        from esrest.core.errors import ErrorCode, TransportError

        http = _transport(FailingTransport(httpx.ReadTimeout("slow")))

        with pytest.raises(TransportError) as exc_info:
            await http.request("GET", "/")
        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert exc_info.value.status is None
        await http.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Connection failures become TransportError with NETWORK_ERROR."""
        from esrest.core.errors import ErrorCode, TransportError

        http = _transport(FailingTransport(httpx.ConnectError("refused")))

        with pytest.raises(TransportError) as exc_info:
            await http.request("GET", "/")
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        await http.close()

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        """json() on a non-JSON reply raises DeserializationError."""
        from esrest.core.errors import DeserializationError

        http = _transport(RecordingTransport(200, text="<html>"))
        resp = await http.request("GET", "/")

        with pytest.raises(DeserializationError):
            resp.json()
        await http.close()

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        """Failed requests are logged at WARNING with an error code."""
        import logging

        from esrest.core.errors import TransportError

        http = _transport(RecordingTransport(500, {"error": {"type": "boom", "reason": "x"}}))

        with caplog.at_level(logging.WARNING, logger="esrest.core.search.transport"):
            with pytest.raises(TransportError):
                await http.request("GET", "/idx/_search")

        record = caplog.records[-1]
        assert record.status == 500
        assert record.error_code == "TRANSPORT_ERROR"
        await http.close()
