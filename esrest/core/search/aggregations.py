"""Search Aggregations.

Provides the terms bucket aggregation and the request that carries it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from esrest.core.errors import InvalidQueryError
from esrest.core.search.query import Query, _freeze_mapping

DEFAULT_AGGREGATION_NAME = "aggs_name"

_EXECUTION_HINTS = ("map", "global_ordinals")


@dataclass(frozen=True)
class Aggregation:
    """Base aggregation class."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch aggregation dict (without the name)."""
        raise NotImplementedError


@dataclass(frozen=True)
class TermsAggregation(Aggregation):
    """Terms bucket aggregation."""

    field: str
    include: Optional[str] = None  # regex over bucket keys
    size: Optional[int] = None
    shard_size: Optional[int] = None
    execution_hint: Optional[str] = None  # map, global_ordinals
    exclude: Optional[str] = None
    order: Optional[Mapping[str, str]] = None  # {"_count": "desc"}
    sub_aggregations: Optional[Mapping[str, Aggregation]] = None

    def __post_init__(self) -> None:
        if self.size is not None and self.size < 1:
            raise InvalidQueryError("size must be positive")
        if self.shard_size is not None and self.shard_size < 1:
            raise InvalidQueryError("shard_size must be positive")
        if self.execution_hint is not None and self.execution_hint not in _EXECUTION_HINTS:
            raise InvalidQueryError(f"Unknown execution_hint: {self.execution_hint}")
        _freeze_mapping(self, "order", self.order)
        _freeze_mapping(self, "sub_aggregations", self.sub_aggregations)

    def to_dict(self) -> Dict[str, Any]:
        terms_body: Dict[str, Any] = {"field": self.field}

        if self.include:
            terms_body["include"] = self.include

        if self.exclude:
            terms_body["exclude"] = self.exclude

        if self.size is not None:
            terms_body["size"] = self.size

        if self.shard_size is not None:
            terms_body["shard_size"] = self.shard_size

        if self.execution_hint:
            terms_body["execution_hint"] = self.execution_hint

        if self.order:
            terms_body["order"] = dict(self.order)

        result: Dict[str, Any] = {"terms": terms_body}

        if self.sub_aggregations:
            result["aggs"] = {
                name: agg.to_dict()
                for name, agg in self.sub_aggregations.items()
            }

        return result


@dataclass(frozen=True)
class AggregationQuery:
    """A search request that only asks for one named aggregation."""

    query: Query
    aggregation: TermsAggregation
    timeout: Optional[int] = None  # milliseconds
    name: str = DEFAULT_AGGREGATION_NAME

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout < 1:
            raise InvalidQueryError("timeout must be positive")

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": self.query.to_dict(),
            "size": 0,
            "aggs": {self.name: self.aggregation.to_dict()},
        }

        if self.timeout is not None:
            body["timeout"] = f"{self.timeout}ms"

        return body

