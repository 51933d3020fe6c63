"""Search Index Settings and Mappings.

Provides index settings (shards, replicas, analysis chain) and per-type
field mappings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from esrest.core.errors import InvalidQueryError
from esrest.core.search.query import _freeze_mapping


class FieldType(str, Enum):
    """Elasticsearch field types."""
    TEXT = "text"
    KEYWORD = "keyword"
    STRING = "string"  # pre-5.x engines
    LONG = "long"
    INTEGER = "integer"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    NESTED = "nested"
    GEO_POINT = "geo_point"
    COMPLETION = "completion"


class Tokenizer(str, Enum):
    KEYWORD = "keyword"
    STANDARD = "standard"
    WHITESPACE = "whitespace"


class TokenFilter(str, Enum):
    """Built-in token filters."""
    LOWERCASE = "lowercase"
    ASCIIFOLDING = "asciifolding"


# ============================================================================
# Analysis
# ============================================================================

@dataclass(frozen=True)
class EdgeNGramFilter:
    """Custom edge n-gram token filter, declared under analysis.filter."""

    name: str
    min_gram: int = 1
    max_gram: int = 20

    def __post_init__(self) -> None:
        if self.min_gram < 1:
            raise InvalidQueryError("min_gram must be at least 1")
        if self.min_gram > self.max_gram:
            raise InvalidQueryError("min_gram must not exceed max_gram")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "edge_ngram",
            "min_gram": self.min_gram,
            "max_gram": self.max_gram,
        }


FilterRef = Union[str, TokenFilter, EdgeNGramFilter]


def _filter_name(ref: FilterRef) -> str:
    if isinstance(ref, EdgeNGramFilter):
        return ref.name
    if isinstance(ref, TokenFilter):
        return ref.value
    return ref


@dataclass(frozen=True)
class Analyzer:
    """Custom analyzer: a tokenizer followed by token filters.

    Example:
        Analyzer("keyword_lowercase", Tokenizer.KEYWORD, [TokenFilter.LOWERCASE])
    """

    name: str
    tokenizer: Tokenizer = Tokenizer.STANDARD
    filters: Sequence[FilterRef] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", tuple(self.filters))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "custom",
            "tokenizer": Tokenizer(self.tokenizer).value,
            "filter": [_filter_name(f) for f in self.filters],
        }


@dataclass(frozen=True)
class Analysis:
    """Analyzers and the custom filters they reference."""

    analyzers: Sequence[Analyzer] = ()
    filters: Sequence[EdgeNGramFilter] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "analyzers", tuple(self.analyzers))
        object.__setattr__(self, "filters", tuple(self.filters))

        names = [a.name for a in self.analyzers]
        if len(names) != len(set(names)):
            raise InvalidQueryError(f"Duplicate analyzer names: {names}")

    def to_dict(self) -> Dict[str, Any]:
        analysis: Dict[str, Any] = {
            "analyzer": {a.name: a.to_dict() for a in self.analyzers},
        }
        if self.filters:
            analysis["filter"] = {f.name: f.to_dict() for f in self.filters}
        return analysis


@dataclass(frozen=True)
class IndexSetting:
    """Index settings configuration."""

    number_of_shards: int = 1
    number_of_replicas: int = 1
    analysis: Optional[Analysis] = None
    refresh_interval: Optional[int] = None  # seconds
    max_result_window: Optional[int] = None

    def __post_init__(self) -> None:
        if self.number_of_shards < 1:
            raise InvalidQueryError("number_of_shards must be at least 1")
        if self.number_of_replicas < 0:
            raise InvalidQueryError("number_of_replicas must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the create-index request body."""
        index_settings: Dict[str, Any] = {
            "number_of_shards": self.number_of_shards,
            "number_of_replicas": self.number_of_replicas,
        }

        if self.refresh_interval is not None:
            index_settings["refresh_interval"] = f"{self.refresh_interval}s"

        if self.max_result_window is not None:
            index_settings["max_result_window"] = self.max_result_window

        settings: Dict[str, Any] = {"index": index_settings}
        if self.analysis is not None:
            settings["analysis"] = self.analysis.to_dict()

        return {"settings": settings}


# ============================================================================
# Mappings
# ============================================================================

@dataclass(frozen=True)
class FieldMapping:
    """Base class for a single field's mapping."""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class BasicFieldMapping(FieldMapping):
    """Field mapping configuration."""

    field_type: FieldType
    index: Optional[bool] = None
    analyzer: Optional[str] = None
    ignore_above: Optional[int] = None
    search_analyzer: Optional[str] = None
    fields: Optional[Mapping[str, FieldMapping]] = None
    properties: Optional[Mapping[str, FieldMapping]] = None

    def __post_init__(self) -> None:
        _freeze_mapping(self, "fields", self.fields)
        _freeze_mapping(self, "properties", self.properties)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch mapping dict."""
        mapping: Dict[str, Any] = {"type": FieldType(self.field_type).value}

        if self.index is not None:
            mapping["index"] = self.index

        if self.analyzer:
            mapping["analyzer"] = self.analyzer

        if self.ignore_above is not None:
            mapping["ignore_above"] = self.ignore_above

        if self.search_analyzer:
            mapping["search_analyzer"] = self.search_analyzer

        if self.fields:
            mapping["fields"] = {
                name: f.to_dict() for name, f in self.fields.items()
            }

        if self.properties:
            mapping["properties"] = {
                name: f.to_dict() for name, f in self.properties.items()
            }

        return mapping


@dataclass(frozen=True)
class CompletionContext:
    """Category context whose value is read from another field of the document."""

    path: str
    type: str = "category"


@dataclass(frozen=True)
class CompletionMapping(FieldMapping):
    """Completion suggester field."""

    contexts: Mapping[str, CompletionContext] = field(default_factory=dict)
    analyzer: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze_mapping(self, "contexts", self.contexts)

    def to_dict(self) -> Dict[str, Any]:
        mapping: Dict[str, Any] = {"type": FieldType.COMPLETION.value}

        if self.analyzer:
            mapping["analyzer"] = self.analyzer

        if self.contexts:
            mapping["contexts"] = [
                {"name": name, "type": ctx.type, "path": ctx.path}
                for name, ctx in self.contexts.items()
            ]

        return mapping


@dataclass(frozen=True)
class EnabledFieldMapping:
    """Switch for a meta field such as ``_all`` or ``_source``."""

    enabled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled}


@dataclass(frozen=True)
class IndexMapping:
    """Mapping of one document type."""

    properties: Mapping[str, FieldMapping] = field(default_factory=dict)
    all_field: Optional[EnabledFieldMapping] = None
    source: Optional[EnabledFieldMapping] = None
    dynamic: Optional[str] = None  # strict, true, false

    def __post_init__(self) -> None:
        if self.dynamic is not None and self.dynamic not in ("strict", "true", "false"):
            raise InvalidQueryError(f"Unknown dynamic policy: {self.dynamic}")
        _freeze_mapping(self, "properties", self.properties)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the put-mapping request body."""
        body: Dict[str, Any] = {}

        if self.all_field is not None:
            body["_all"] = self.all_field.to_dict()

        if self.source is not None:
            body["_source"] = self.source.to_dict()

        if self.dynamic is not None:
            body["dynamic"] = self.dynamic

        body["properties"] = {
            name: f.to_dict() for name, f in self.properties.items()
        }
        return body
