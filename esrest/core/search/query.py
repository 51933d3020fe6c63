"""Search Query DSL.

Provides immutable query, filter and sort values that serialize to the
Elasticsearch query DSL, plus the ``QueryRoot`` request envelope.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from esrest.core.errors import InvalidQueryError


def _freeze(obj: Any, name: str, value: Sequence[Any]) -> None:
    object.__setattr__(obj, name, tuple(value))


def _freeze_mapping(obj: Any, name: str, value: Optional[Mapping[str, Any]]) -> None:
    if value is not None:
        object.__setattr__(obj, name, MappingProxyType(dict(value)))


# ============================================================================
# Geo
# ============================================================================

@dataclass(frozen=True)
class GeoLocation:
    """A latitude/longitude pair."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        if math.isnan(self.lat) or not -90.0 <= self.lat <= 90.0:
            raise InvalidQueryError(f"Latitude out of range: {self.lat}")
        if math.isnan(self.lon) or not -180.0 <= self.lon <= 180.0:
            raise InvalidQueryError(f"Longitude out of range: {self.lon}")

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


# ============================================================================
# Queries
# ============================================================================

@dataclass(frozen=True)
class Query:
    """Base query class."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch query dict."""
        raise NotImplementedError


@dataclass(frozen=True)
class MatchAllQuery(Query):
    """Match all documents."""

    boost: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        if self.boost != 1.0:
            return {"match_all": {"boost": self.boost}}
        return {"match_all": {}}


@dataclass(frozen=True)
class TermQuery(Query):
    """Exact term match query."""

    field: str
    value: Any
    boost: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        if self.boost != 1.0:
            return {"term": {self.field: {"value": self.value, "boost": self.boost}}}
        return {"term": {self.field: self.value}}


@dataclass(frozen=True)
class MatchQuery(Query):
    """Full-text match query."""

    field: str
    query: Any
    operator: str = "or"  # or, and
    fuzziness: Optional[str] = None  # AUTO, 0, 1, 2
    analyzer: Optional[str] = None
    boost: float = 1.0

    def __post_init__(self) -> None:
        if self.operator not in ("or", "and"):
            raise InvalidQueryError(f"Unknown match operator: {self.operator}")

    def to_dict(self) -> Dict[str, Any]:
        query_body: Dict[str, Any] = {"query": self.query}

        if self.operator != "or":
            query_body["operator"] = self.operator

        if self.fuzziness:
            query_body["fuzziness"] = self.fuzziness

        if self.analyzer:
            query_body["analyzer"] = self.analyzer

        if self.boost != 1.0:
            query_body["boost"] = self.boost

        if len(query_body) == 1:
            return {"match": {self.field: self.query}}
        return {"match": {self.field: query_body}}


@dataclass(frozen=True)
class PhraseQuery(Query):
    """Match phrase query."""

    field: str
    query: str
    slop: int = 0
    analyzer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        query_body: Dict[str, Any] = {"query": self.query}

        if self.slop:
            query_body["slop"] = self.slop

        if self.analyzer:
            query_body["analyzer"] = self.analyzer

        return {"match_phrase": {self.field: query_body}}


@dataclass(frozen=True)
class PhrasePrefixQuery(Query):
    """Match phrase prefix query (search-as-you-type)."""

    field: str
    query: str
    max_expansions: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_expansions is not None and self.max_expansions < 1:
            raise InvalidQueryError("max_expansions must be positive")

    def to_dict(self) -> Dict[str, Any]:
        query_body: Dict[str, Any] = {"query": self.query}

        if self.max_expansions is not None:
            query_body["max_expansions"] = self.max_expansions

        return {"match_phrase_prefix": {self.field: query_body}}


@dataclass(frozen=True)
class PrefixQuery(Query):
    """Prefix query."""

    field: str
    value: str
    boost: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        if self.boost != 1.0:
            return {"prefix": {self.field: {"value": self.value, "boost": self.boost}}}
        return {"prefix": {self.field: self.value}}


@dataclass(frozen=True)
class WildcardQuery(Query):
    """Wildcard pattern query. The pattern is not analyzed."""

    field: str
    value: str
    boost: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        if self.boost != 1.0:
            return {"wildcard": {self.field: {"value": self.value, "boost": self.boost}}}
        return {"wildcard": {self.field: self.value}}


@dataclass(frozen=True)
class RegexQuery(Query):
    """Regular expression query."""

    field: str
    value: str
    flags: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.flags:
            return {"regexp": {self.field: {"value": self.value, "flags": self.flags}}}
        return {"regexp": {self.field: self.value}}


def _range_body(
    field_name: str,
    gt: Any,
    gte: Any,
    lt: Any,
    lte: Any,
    format: Optional[str],
) -> Dict[str, Any]:
    range_body: Dict[str, Any] = {}

    if gte is not None:
        range_body["gte"] = gte
    if gt is not None:
        range_body["gt"] = gt
    if lte is not None:
        range_body["lte"] = lte
    if lt is not None:
        range_body["lt"] = lt
    if format:
        range_body["format"] = format

    return {"range": {field_name: range_body}}


def _check_range(field_name: str, gt: Any, gte: Any, lt: Any, lte: Any) -> None:
    if gt is not None and gte is not None:
        raise InvalidQueryError(f"Range on {field_name} has both gt and gte")
    if lt is not None and lte is not None:
        raise InvalidQueryError(f"Range on {field_name} has both lt and lte")
    if gt is None and gte is None and lt is None and lte is None:
        raise InvalidQueryError(f"Range on {field_name} has no bound")


@dataclass(frozen=True)
class RangeQuery(Query):
    """Range query.

    Bounds are passed through as given; the engine coerces strings such as
    ``"4"`` to the field's type.
    """

    field: str
    gt: Optional[Any] = None
    gte: Optional[Any] = None
    lt: Optional[Any] = None
    lte: Optional[Any] = None
    format: Optional[str] = None

    def __post_init__(self) -> None:
        _check_range(self.field, self.gt, self.gte, self.lt, self.lte)

    def to_dict(self) -> Dict[str, Any]:
        return _range_body(self.field, self.gt, self.gte, self.lt, self.lte, self.format)


@dataclass(frozen=True)
class BoolQuery(Query):
    """Boolean compound query."""

    must: Sequence[Query] = ()
    must_not: Sequence[Query] = ()
    should: Sequence[Query] = ()
    minimum_should_match: Optional[Union[int, str]] = None
    boost: float = 1.0

    def __post_init__(self) -> None:
        _freeze(self, "must", self.must)
        _freeze(self, "must_not", self.must_not)
        _freeze(self, "should", self.should)
        if not (self.must or self.must_not or self.should):
            raise InvalidQueryError("Bool query needs at least one clause")

    def with_must(self, *queries: Query) -> "BoolQuery":
        return BoolQuery(
            must=tuple(self.must) + queries,
            must_not=self.must_not,
            should=self.should,
            minimum_should_match=self.minimum_should_match,
            boost=self.boost,
        )

    def with_must_not(self, *queries: Query) -> "BoolQuery":
        return BoolQuery(
            must=self.must,
            must_not=tuple(self.must_not) + queries,
            should=self.should,
            minimum_should_match=self.minimum_should_match,
            boost=self.boost,
        )

    def with_should(self, *queries: Query) -> "BoolQuery":
        return BoolQuery(
            must=self.must,
            must_not=self.must_not,
            should=tuple(self.should) + queries,
            minimum_should_match=self.minimum_should_match,
            boost=self.boost,
        )

    def to_dict(self) -> Dict[str, Any]:
        bool_body: Dict[str, Any] = {}

        if self.must:
            bool_body["must"] = [q.to_dict() for q in self.must]

        if self.must_not:
            bool_body["must_not"] = [q.to_dict() for q in self.must_not]

        if self.should:
            bool_body["should"] = [q.to_dict() for q in self.should]

        if self.minimum_should_match is not None:
            bool_body["minimum_should_match"] = self.minimum_should_match

        if self.boost != 1.0:
            bool_body["boost"] = self.boost

        return {"bool": bool_body}


# ============================================================================
# Filters
# ============================================================================

@dataclass(frozen=True)
class Filter:
    """Base filter class. Filters restrict matches without scoring."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch filter dict."""
        raise NotImplementedError


@dataclass(frozen=True)
class TermFilter(Filter):
    field: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"term": {self.field: self.value}}


@dataclass(frozen=True)
class RegexFilter(Filter):
    field: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"regexp": {self.field: self.value}}


@dataclass(frozen=True)
class RangeFilter(Filter):
    field: str
    gt: Optional[Any] = None
    gte: Optional[Any] = None
    lt: Optional[Any] = None
    lte: Optional[Any] = None
    format: Optional[str] = None

    def __post_init__(self) -> None:
        _check_range(self.field, self.gt, self.gte, self.lt, self.lte)

    def to_dict(self) -> Dict[str, Any]:
        return _range_body(self.field, self.gt, self.gte, self.lt, self.lte, self.format)


@dataclass(frozen=True)
class GeoDistanceFilter(Filter):
    """Documents whose geo-point lies within ``distance`` of ``location``."""

    distance: str  # 1km, 500m, 2mi
    field: str
    location: GeoLocation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geo_distance": {
                "distance": self.distance,
                self.field: self.location.to_dict(),
            }
        }


@dataclass(frozen=True)
class FilteredQuery(Query):
    """A query restricted by one or more filters, all of which must match."""

    query: Query
    filters: Sequence[Filter]

    def __post_init__(self) -> None:
        _freeze(self, "filters", self.filters)
        if not self.filters:
            raise InvalidQueryError("Filtered query needs at least one filter")

    @classmethod
    def of(cls, query: Query, *filters: Filter) -> "FilteredQuery":
        return cls(query=query, filters=filters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bool": {
                "must": [self.query.to_dict()],
                "filter": [f.to_dict() for f in self.filters],
            }
        }


# ============================================================================
# Sorts
# ============================================================================

class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Sort:
    """Base sort clause."""

    def sort_key(self) -> str:
        """Name of what is sorted on; two clauses on one key conflict."""
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class SimpleSort(Sort):
    field: str
    order: SortOrder = SortOrder.ASC

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "order", SortOrder(self.order))
        except ValueError:
            raise InvalidQueryError(f"Unknown sort order: {self.order}") from None

    def sort_key(self) -> str:
        return self.field

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: {"order": self.order.value}}


@dataclass(frozen=True)
class GeoDistanceSort(Sort):
    field: str
    location: GeoLocation
    order: SortOrder = SortOrder.ASC
    unit: str = "km"
    distance_type: str = "arc"  # arc, plane

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "order", SortOrder(self.order))
        except ValueError:
            raise InvalidQueryError(f"Unknown sort order: {self.order}") from None
        if self.distance_type not in ("arc", "plane"):
            raise InvalidQueryError(f"Unknown distance_type: {self.distance_type}")

    def sort_key(self) -> str:
        return f"_geo_distance:{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_geo_distance": {
                self.field: self.location.to_dict(),
                "order": self.order.value,
                "unit": self.unit,
                "distance_type": self.distance_type,
            }
        }


AnyQuery = Union[
    MatchAllQuery,
    TermQuery,
    MatchQuery,
    PhraseQuery,
    PhrasePrefixQuery,
    PrefixQuery,
    WildcardQuery,
    RegexQuery,
    RangeQuery,
    BoolQuery,
    FilteredQuery,
]
AnyFilter = Union[TermFilter, RegexFilter, RangeFilter, GeoDistanceFilter]
AnySort = Union[SimpleSort, GeoDistanceSort]


# ============================================================================
# Request envelope
# ============================================================================

@dataclass(frozen=True)
class QueryRoot:
    """A search request: query plus paging, timeout, sort and projection.

    Example:
        root = QueryRoot(
            TermQuery("status", "active"),
            size=20,
            sort=[SimpleSort("created_at", SortOrder.DESC)],
            source_filter=["name", "status"],
        )
    """

    query: Query
    from_: Optional[int] = None
    size: Optional[int] = None
    sort: Sequence[Sort] = ()
    timeout: Optional[int] = None  # milliseconds
    source_filter: Optional[Sequence[str]] = None

    def __post_init__(self) -> None:
        _freeze(self, "sort", self.sort)
        if self.source_filter is not None:
            _freeze(self, "source_filter", self.source_filter)

        if self.from_ is not None and self.from_ < 0:
            raise InvalidQueryError("from_ must not be negative")
        if self.size is not None and self.size < 1:
            raise InvalidQueryError("size must be positive")
        if self.timeout is not None and self.timeout < 1:
            raise InvalidQueryError("timeout must be positive")

        orders: Dict[str, SortOrder] = {}
        for clause in self.sort:
            key = clause.sort_key()
            order = getattr(clause, "order", None)
            if key in orders and orders[key] != order:
                raise InvalidQueryError(f"Conflicting sort orders on {key}")
            orders[key] = order

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": self.query.to_dict()}

        if self.from_ is not None:
            body["from"] = self.from_

        if self.size is not None:
            body["size"] = self.size

        if self.timeout is not None:
            body["timeout"] = f"{self.timeout}ms"

        if self.sort:
            body["sort"] = [s.to_dict() for s in self.sort]

        if self.source_filter is not None:
            body["_source"] = list(self.source_filter)

        return body


# ============================================================================
# Builder
# ============================================================================

class QueryBuilder:
    """Fluent query builder.

    Example:
        query = (QueryBuilder()
            .match("name", "test")
            .must_not(TermQuery("status", "deleted"))
            .should(MatchQuery("tags", "important"))
            .build())
    """

    def __init__(self):
        self._must: List[Query] = []
        self._must_not: List[Query] = []
        self._should: List[Query] = []
        self._filters: List[Filter] = []
        self._minimum_should_match: Optional[Union[int, str]] = None

    def must(self, query: Query) -> "QueryBuilder":
        """Add must clause."""
        self._must.append(query)
        return self

    def must_not(self, query: Query) -> "QueryBuilder":
        """Add must_not clause."""
        self._must_not.append(query)
        return self

    def should(self, query: Query) -> "QueryBuilder":
        """Add should clause."""
        self._should.append(query)
        return self

    def filter(self, flt: Filter) -> "QueryBuilder":
        """Add a non-scoring filter."""
        self._filters.append(flt)
        return self

    def minimum_should_match(self, value: Union[int, str]) -> "QueryBuilder":
        self._minimum_should_match = value
        return self

    def match(self, field: str, query: str, **kwargs: Any) -> "QueryBuilder":
        return self.must(MatchQuery(field=field, query=query, **kwargs))

    def term(self, field: str, value: Any) -> "QueryBuilder":
        return self.filter(TermFilter(field=field, value=value))

    def range(self, field: str, **kwargs: Any) -> "QueryBuilder":
        return self.filter(RangeFilter(field=field, **kwargs))

    def prefix(self, field: str, value: str) -> "QueryBuilder":
        return self.must(PrefixQuery(field=field, value=value))

    def wildcard(self, field: str, value: str) -> "QueryBuilder":
        return self.must(WildcardQuery(field=field, value=value))

    def build(self) -> Query:
        """Build an immutable query from the collected clauses."""
        if self._must or self._must_not or self._should:
            if len(self._must) == 1 and not self._must_not and not self._should:
                query: Query = self._must[0]
            else:
                query = BoolQuery(
                    must=self._must,
                    must_not=self._must_not,
                    should=self._should,
                    minimum_should_match=self._minimum_should_match,
                )
        else:
            query = MatchAllQuery()

        if self._filters:
            return FilteredQuery(query=query, filters=self._filters)
        return query
