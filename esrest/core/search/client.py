"""Search Client Implementation.

Provides the async Elasticsearch REST client. Every operation serializes a
DSL value, sends one request through ``HttpTransport`` and parses the reply
into a typed result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from esrest.core.config import Settings, get_settings
from esrest.core.search.aggregations import AggregationQuery
from esrest.core.search.endpoint import EndpointProvider
from esrest.core.search.index import IndexMapping, IndexSetting
from esrest.core.search.memory import InMemoryEngine
from esrest.core.search.query import QueryRoot
from esrest.core.search.results import (
    BucketAggregationResult,
    BulkResult,
    IndexResult,
    QueryResult,
    RawJsonResponse,
    ScrollCursor,
    ScrollPage,
    parse_bucket_aggregation,
    parse_bulk_response,
    parse_count_response,
    parse_delete_by_query_response,
    parse_index_response,
    parse_scroll_page,
    parse_search_response,
    parse_suggest_response,
)
from esrest.core.search.suggest import Suggest
from esrest.core.search.transport import Body, HttpTransport, TransportResponse

logger = logging.getLogger(__name__)


def _seg(value: str, safe: str = ",*") -> str:
    """Percent-encode one path segment. Index and type names keep commas and wildcards."""
    return quote(str(value), safe=safe)


def _doc_path(index: str, doc_type: str, doc_id: str) -> str:
    return f"/{_seg(index)}/{_seg(doc_type)}/{_seg(doc_id, safe='')}"


@dataclass(frozen=True)
class Document:
    """A document to write: its id and field values.

    The field mapping is copied on construction.
    """
    id: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", dict(self.data))


class ElasticsearchClient:
    """Async client for the Elasticsearch REST API.

    Example:
        async with ElasticsearchClient() as client:
            await client.create_index("docs", IndexSetting(number_of_shards=1))
            await client.index("docs", "doc", Document("1", {"title": "hello"}))
            await client.refresh("docs")
            result = await client.query("docs", "doc", QueryRoot(TermQuery("title", "hello")))
    """

    def __init__(
        self,
        endpoint_provider: Optional[EndpointProvider] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.scroll_keep_alive = settings.ES_SCROLL_KEEP_ALIVE
        self.http = HttpTransport(
            endpoint_provider=endpoint_provider,
            settings=settings,
            transport=transport,
        )

    async def __aenter__(self) -> "ElasticsearchClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _call(
        self,
        method: str,
        path: str,
        body: Body = None,
        params: Optional[Mapping[str, str]] = None,
        allowed_status: Sequence[int] = (),
    ) -> TransportResponse:
        return await self.http.request(
            method, path, body=body, params=params, allowed_status=allowed_status
        )

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    async def create_index(self, index: str, settings: Optional[IndexSetting] = None) -> None:
        """Create an index.

        Args:
            index: Index name
            settings: Shards, replicas and analysis chain

        Raises:
            IndexAlreadyExistsError: If the index exists
        """
        body = settings.to_dict() if settings is not None else None
        await self._call("PUT", f"/{_seg(index)}", body)
        logger.info(f"Created index: {index}", extra={"index": index})

    async def delete_index(self, index: str) -> None:
        await self._call("DELETE", f"/{_seg(index)}")
        logger.info(f"Deleted index: {index}", extra={"index": index})

    async def put_mapping(self, index: str, doc_type: str, mapping: IndexMapping) -> None:
        await self._call("PUT", f"/{_seg(index)}/_mapping/{_seg(doc_type)}", mapping.to_dict())

    async def refresh(self, index: str) -> None:
        """Make every write so far visible to search."""
        await self._call("POST", f"/{_seg(index)}/_refresh")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def index(self, index: str, doc_type: str, doc: Document) -> IndexResult:
        """Index a document, overwriting any document with the same id.

        Returns:
            IndexResult with ``created`` False when the id already existed
        """
        resp = await self._call("PUT", _doc_path(index, doc_type, doc.id), dict(doc.data))
        return parse_index_response(resp.json())

    async def get_document(self, index: str, doc_type: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document's source, or None when it does not exist."""
        resp = await self._call("GET", _doc_path(index, doc_type, doc_id), allowed_status=(404,))
        if resp.status == 404:
            return None
        body = resp.json()
        if not body.get("found", False):
            return None
        return body.get("_source", {})

    async def _bulk(self, lines: List[Dict[str, Any]], ids: List[str]) -> BulkResult:
        resp = await self._call("POST", "/_bulk", lines)
        result = parse_bulk_response(resp.json(), ids)
        if result.errors:
            failed = sum(1 for item in result if not item.ok)
            logger.debug(f"Bulk request had {failed} failed items of {len(result)}")
        return result

    async def bulk_index(self, index: str, doc_type: str, docs: Sequence[Document]) -> BulkResult:
        """Create documents in one request.

        Ids that already exist are not overwritten; their items report
        ``already_exists`` True.

        Returns:
            BulkResult in input order
        """
        if not docs:
            return BulkResult()

        lines: List[Dict[str, Any]] = []
        for doc in docs:
            lines.append({"create": {"_index": index, "_type": doc_type, "_id": doc.id}})
            lines.append(dict(doc.data))
        return await self._bulk(lines, [doc.id for doc in docs])

    async def bulk_update(self, index: str, doc_type: str, docs: Sequence[Document]) -> BulkResult:
        """Upsert documents in one request.

        Existing documents have the given fields merged in; missing ones are
        created. Each item reports whether it was created.
        """
        if not docs:
            return BulkResult()

        lines: List[Dict[str, Any]] = []
        for doc in docs:
            lines.append({"update": {"_index": index, "_type": doc_type, "_id": doc.id}})
            lines.append({"doc": dict(doc.data), "doc_as_upsert": True})
        return await self._bulk(lines, [doc.id for doc in docs])

    async def delete_document(self, index: str, doc_type: str, root: QueryRoot) -> int:
        """Delete every document matching ``root.query``.

        Returns:
            Number of documents deleted
        """
        resp = await self._call(
            "POST",
            f"/{_seg(index)}/{_seg(doc_type)}/_delete_by_query",
            {"query": root.query.to_dict()},
        )
        return parse_delete_by_query_response(resp.json())

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def query(self, index: str, doc_type: str, root: QueryRoot) -> QueryResult:
        resp = await self._call("POST", f"/{_seg(index)}/{_seg(doc_type)}/_search", root.to_dict())
        return parse_search_response(resp.json(), resp.text)

    async def count(self, index: str, doc_type: str, root: QueryRoot) -> int:
        resp = await self._call(
            "POST",
            f"/{_seg(index)}/{_seg(doc_type)}/_count",
            {"query": root.query.to_dict()},
        )
        return parse_count_response(resp.json())

    async def bucket_aggregation(
        self,
        index: str,
        doc_type: str,
        agg_query: AggregationQuery,
    ) -> BucketAggregationResult:
        resp = await self._call("POST", f"/{_seg(index)}/{_seg(doc_type)}/_search", agg_query.to_dict())
        return parse_bucket_aggregation(resp.json(), agg_query.name)

    async def suggest(self, index: str, doc_type: str, suggest: Suggest) -> List[str]:
        """Completion suggestions for ``suggest.text``.

        Suggestions are index-wide; ``doc_type`` is accepted for symmetry
        with the other operations.
        """
        body = {"size": 0, **suggest.to_dict()}
        resp = await self._call("POST", f"/{_seg(index)}/_search", body)
        return parse_suggest_response(resp.json(), suggest.name)

    # ------------------------------------------------------------------
    # Scroll
    # ------------------------------------------------------------------

    async def start_scroll_request(
        self,
        index: str,
        doc_type: str,
        root: QueryRoot,
        keep_alive: Optional[str] = None,
    ) -> ScrollPage:
        """Run ``root`` and open a scroll over its results.

        Returns:
            The first page and the cursor for the next one
        """
        resp = await self._call(
            "POST",
            f"/{_seg(index)}/{_seg(doc_type)}/_search",
            root.to_dict(),
            params={"scroll": keep_alive or self.scroll_keep_alive},
        )
        return parse_scroll_page(resp.json(), resp.text)

    async def scroll(self, cursor: ScrollCursor, keep_alive: Optional[str] = None) -> ScrollPage:
        """Fetch the next page. An exhausted cursor returns an empty page."""
        resp = await self._call(
            "POST",
            "/_search/scroll",
            {"scroll": keep_alive or self.scroll_keep_alive, "scroll_id": cursor.id},
        )
        return parse_scroll_page(resp.json(), resp.text)

    async def clear_scroll(self, cursor: ScrollCursor) -> bool:
        """Release a scroll.

        Returns:
            False if the engine no longer knew the cursor
        """
        resp = await self._call(
            "DELETE",
            "/_search/scroll",
            {"scroll_id": [cursor.id]},
            allowed_status=(404,),
        )
        return resp.status != 404

    async def scan(
        self,
        index: str,
        doc_type: str,
        root: QueryRoot,
        keep_alive: Optional[str] = None,
    ) -> AsyncIterator[QueryResult]:
        """Yield every non-empty page of ``root``'s results, then clear the scroll.

        Example:
            async for page in client.scan("docs", "doc", QueryRoot(MatchAllQuery(), size=500)):
                handle(page.source_as_map)
        """
        page = await self.start_scroll_request(index, doc_type, root, keep_alive)
        cursor = page.cursor
        try:
            while not page.exhausted:
                yield page.result
                page = await self.scroll(cursor, keep_alive)
                cursor = page.cursor
        except BaseException:
            # The error already propagating wins over a failed cleanup.
            try:
                await self.clear_scroll(cursor)
            except Exception as e:
                logger.warning(f"Failed to clear scroll after error: {e}")
            raise
        else:
            await self.clear_scroll(cursor)

    # ------------------------------------------------------------------
    # Raw
    # ------------------------------------------------------------------

    async def run_raw_es_request(
        self,
        op: Optional[Dict[str, Any]],
        endpoint: str,
        method: str = "POST",
    ) -> RawJsonResponse:
        """Send an arbitrary request.

        Args:
            op: JSON body, or None
            endpoint: Path, with or without a leading "/"
            method: HTTP method

        Returns:
            RawJsonResponse holding the response text
        """
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        resp = await self._call(method.upper(), path, op)
        return RawJsonResponse(resp.text)

    async def close(self) -> None:
        await self.http.close()


# Global search client
_search_client: Optional[ElasticsearchClient] = None


def get_search_client(client_type: str = "elasticsearch") -> ElasticsearchClient:
    """Get global search client.

    Args:
        client_type: "elasticsearch", or "memory" for one backed by
            an ``InMemoryEngine``

    Returns:
        ElasticsearchClient instance
    """
    global _search_client

    if _search_client is None:
        if client_type == "memory":
            _search_client = ElasticsearchClient(transport=InMemoryEngine())
        else:
            _search_client = ElasticsearchClient()

    return _search_client


def set_search_client(client: Optional[ElasticsearchClient]) -> None:
    """Set global search client."""
    global _search_client
    _search_client = client
