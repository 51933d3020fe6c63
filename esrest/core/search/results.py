"""Search Results and Response Parsing.

Typed result objects and the functions that build them from decoded
engine responses. Every parser raises ``DeserializationError`` when the
response does not have the expected shape.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from pydantic import TypeAdapter, ValidationError

from esrest.core.errors import DeserializationError

T = TypeVar("T")

Decoder = Union[Callable[[Dict[str, Any]], T], Type[T]]


@contextmanager
def _parsing(what: str) -> Iterator[None]:
    try:
        yield
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise DeserializationError(f"Unexpected {what} response: {e!r}") from e


# ============================================================================
# Writes
# ============================================================================

@dataclass(frozen=True)
class IndexResult:
    """Outcome of indexing one document."""
    id: str
    created: bool
    already_exists: bool = False
    version: Optional[int] = None


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome of one document inside a bulk request."""
    id: str
    created: bool
    already_exists: bool
    status: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkResult:
    """Per-document outcomes, in the order the documents were submitted."""
    items: List[BulkItemResult] = field(default_factory=list)
    took_ms: int = 0
    errors: bool = False

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, i: int) -> BulkItemResult:
        return self.items[i]

    def __iter__(self) -> Iterator[BulkItemResult]:
        return iter(self.items)


def _created(info: Dict[str, Any]) -> bool:
    if "result" in info:
        return info["result"] == "created"
    if "created" in info:
        return bool(info["created"])
    return info.get("status") == 201


def parse_index_response(body: Dict[str, Any]) -> IndexResult:
    with _parsing("index"):
        created = _created(body)
        if "result" not in body and "created" not in body:
            raise KeyError("result")
        return IndexResult(
            id=str(body["_id"]),
            created=created,
            already_exists=not created,
            version=body.get("_version"),
        )


def _error_text(error: Any) -> Optional[str]:
    if error is None:
        return None
    if isinstance(error, dict):
        return f"{error.get('type', 'error')}: {error.get('reason', '')}"
    return str(error)


def parse_bulk_response(body: Dict[str, Any], ids: Sequence[str]) -> BulkResult:
    with _parsing("bulk"):
        raw_items = body["items"]
        if len(raw_items) != len(ids):
            raise ValueError(f"expected {len(ids)} items, got {len(raw_items)}")

        items: List[BulkItemResult] = []
        for doc_id, raw in zip(ids, raw_items):
            (info,) = raw.values()
            status = int(info["status"])
            error = _error_text(info.get("error"))
            created = error is None and _created(info)
            # 409 on create means the id was taken; 200 on update/index means it was overwritten
            already_exists = not created and (
                status == 409 or (error is None and 200 <= status < 300)
            )
            items.append(BulkItemResult(
                id=str(info.get("_id", doc_id)),
                created=created,
                already_exists=already_exists,
                status=status,
                error=error,
            ))

        return BulkResult(
            items=items,
            took_ms=body.get("took", 0),
            errors=bool(body.get("errors", False)),
        )


# ============================================================================
# Reads
# ============================================================================

@dataclass(frozen=True)
class SearchHit:
    """A search result hit."""
    id: str
    index: str
    type: Optional[str]
    score: Optional[float]
    source: Dict[str, Any]
    sort: Optional[List[Any]] = None


@dataclass
class QueryResult:
    """Search result container."""
    json_str: str
    hits: List[SearchHit]
    total: int
    max_score: Optional[float] = None
    took_ms: int = 0
    timed_out: bool = False

    def __len__(self) -> int:
        return len(self.hits)

    @property
    def source_as_map(self) -> List[Dict[str, Any]]:
        return [hit.source for hit in self.hits]

    def json(self) -> Dict[str, Any]:
        return json.loads(self.json_str)

    def extract_source(self, decoder: Decoder[T]) -> List[T]:
        """Decode every hit's source.

        Args:
            decoder: A callable taking the source dict, or a class
                (pydantic model, dataclass, TypedDict) whose fields are
                matched to the source by name

        Returns:
            Decoded values in hit order

        Raises:
            DeserializationError: If any hit does not decode
        """
        if isinstance(decoder, type):
            decode = TypeAdapter(decoder).validate_python
        else:
            decode = decoder

        decoded: List[T] = []
        for hit in self.hits:
            try:
                decoded.append(decode(hit.source))
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                raise DeserializationError(f"Cannot decode hit {hit.id}: {e}") from e
        return decoded


def parse_search_response(body: Dict[str, Any], json_str: str = "") -> QueryResult:
    with _parsing("search"):
        hits_body = body["hits"]
        hits = [
            SearchHit(
                id=str(hit["_id"]),
                index=hit["_index"],
                type=hit.get("_type"),
                score=hit.get("_score"),
                source=hit.get("_source", {}),
                sort=hit.get("sort"),
            )
            for hit in hits_body["hits"]
        ]

        total = hits_body.get("total", len(hits))
        if isinstance(total, dict):
            total = total["value"]

        return QueryResult(
            json_str=json_str or json.dumps(body),
            hits=hits,
            total=int(total),
            max_score=hits_body.get("max_score"),
            took_ms=body.get("took", 0),
            timed_out=bool(body.get("timed_out", False)),
        )


def parse_count_response(body: Dict[str, Any]) -> int:
    with _parsing("count"):
        return int(body["count"])


def parse_delete_by_query_response(body: Dict[str, Any]) -> int:
    with _parsing("delete-by-query"):
        return int(body["deleted"])


# ============================================================================
# Scroll
# ============================================================================

@dataclass(frozen=True)
class ScrollCursor:
    """Opaque scroll identifier. Expires server-side after its keep-alive."""
    id: str


@dataclass
class ScrollPage:
    """One page of a scroll plus the cursor for the next page."""
    cursor: ScrollCursor
    result: QueryResult

    @property
    def id(self) -> str:
        return self.cursor.id

    @property
    def exhausted(self) -> bool:
        return len(self.result) == 0


def parse_scroll_page(body: Dict[str, Any], json_str: str = "") -> ScrollPage:
    result = parse_search_response(body, json_str)
    with _parsing("scroll"):
        scroll_id = body["_scroll_id"]
        if not isinstance(scroll_id, str) or not scroll_id:
            raise ValueError("empty _scroll_id")
        return ScrollPage(cursor=ScrollCursor(scroll_id), result=result)


# ============================================================================
# Aggregations
# ============================================================================

@dataclass
class Bucket:
    """A terms bucket."""
    key: Any
    doc_count: int
    aggregations: Optional[Dict[str, "BucketAggregationResult"]] = None


@dataclass
class BucketAggregationResult:
    doc_count_error_upper_bound: int
    sum_other_doc_count: int
    buckets: List[Bucket]


_BUCKET_KEYS = ("key", "key_as_string", "doc_count")


def _parse_bucket_aggregation(agg: Dict[str, Any]) -> BucketAggregationResult:
    buckets: List[Bucket] = []
    for raw in agg["buckets"]:
        nested = {
            name: _parse_bucket_aggregation(value)
            for name, value in raw.items()
            if name not in _BUCKET_KEYS and isinstance(value, dict) and "buckets" in value
        }
        buckets.append(Bucket(
            key=raw["key"],
            doc_count=int(raw["doc_count"]),
            aggregations=nested or None,
        ))

    return BucketAggregationResult(
        doc_count_error_upper_bound=int(agg.get("doc_count_error_upper_bound", 0)),
        sum_other_doc_count=int(agg.get("sum_other_doc_count", 0)),
        buckets=buckets,
    )


def parse_bucket_aggregation(body: Dict[str, Any], name: str) -> BucketAggregationResult:
    with _parsing("aggregation"):
        return _parse_bucket_aggregation(body["aggregations"][name])


# ============================================================================
# Suggestions and raw responses
# ============================================================================

def parse_suggest_response(body: Dict[str, Any], name: str) -> List[str]:
    """Completion texts in engine order.

    Accepts both the search-embedded shape (``{"suggest": {name: ...}}``)
    and the legacy ``_suggest`` endpoint shape (``{name: ...}``).
    """
    with _parsing("suggest"):
        entries = body["suggest"][name] if "suggest" in body else body[name]
        return [option["text"] for entry in entries for option in entry["options"]]


@dataclass(frozen=True)
class RawJsonResponse:
    json_str: str

    def json(self) -> Any:
        try:
            return json.loads(self.json_str)
        except ValueError as e:
            raise DeserializationError(f"Response is not JSON: {e}") from e
