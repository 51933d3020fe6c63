"""Elasticsearch REST client.

Provides:
- Async client facade over the REST API
- Index settings and mappings
- Query DSL builder
- Terms aggregations and completion suggestions
- In-memory engine for tests
"""

from esrest.core.search.client import (
    Document,
    ElasticsearchClient,
    get_search_client,
    set_search_client,
)
from esrest.core.search.endpoint import (
    Endpoint,
    EndpointProvider,
    StaticEndpoint,
)
from esrest.core.search.index import (
    Analysis,
    Analyzer,
    BasicFieldMapping,
    CompletionContext,
    CompletionMapping,
    EdgeNGramFilter,
    EnabledFieldMapping,
    FieldMapping,
    FieldType,
    IndexMapping,
    IndexSetting,
    TokenFilter,
    Tokenizer,
)
from esrest.core.search.query import (
    AnyFilter,
    AnyQuery,
    AnySort,
    BoolQuery,
    Filter,
    FilteredQuery,
    GeoDistanceFilter,
    GeoDistanceSort,
    GeoLocation,
    MatchAllQuery,
    MatchQuery,
    PhrasePrefixQuery,
    PhraseQuery,
    PrefixQuery,
    Query,
    QueryBuilder,
    QueryRoot,
    RangeFilter,
    RangeQuery,
    RegexFilter,
    RegexQuery,
    SimpleSort,
    Sort,
    SortOrder,
    TermFilter,
    TermQuery,
    WildcardQuery,
)
from esrest.core.search.aggregations import (
    Aggregation,
    AggregationQuery,
    TermsAggregation,
)
from esrest.core.search.suggest import (
    Completion,
    Suggest,
)
from esrest.core.search.results import (
    Bucket,
    BucketAggregationResult,
    BulkItemResult,
    BulkResult,
    IndexResult,
    QueryResult,
    RawJsonResponse,
    ScrollCursor,
    ScrollPage,
    SearchHit,
)
from esrest.core.search.memory import InMemoryEngine
from esrest.core.search.transport import HttpTransport, TransportResponse

__all__ = [
    # Client
    "Document",
    "ElasticsearchClient",
    "get_search_client",
    "set_search_client",
    # Endpoint
    "Endpoint",
    "EndpointProvider",
    "StaticEndpoint",
    # Index
    "Analysis",
    "Analyzer",
    "BasicFieldMapping",
    "CompletionContext",
    "CompletionMapping",
    "EdgeNGramFilter",
    "EnabledFieldMapping",
    "FieldMapping",
    "FieldType",
    "IndexMapping",
    "IndexSetting",
    "TokenFilter",
    "Tokenizer",
    # Query
    "AnyFilter",
    "AnyQuery",
    "AnySort",
    "BoolQuery",
    "Filter",
    "FilteredQuery",
    "GeoDistanceFilter",
    "GeoDistanceSort",
    "GeoLocation",
    "MatchAllQuery",
    "MatchQuery",
    "PhrasePrefixQuery",
    "PhraseQuery",
    "PrefixQuery",
    "Query",
    "QueryBuilder",
    "QueryRoot",
    "RangeFilter",
    "RangeQuery",
    "RegexFilter",
    "RegexQuery",
    "SimpleSort",
    "Sort",
    "SortOrder",
    "TermFilter",
    "TermQuery",
    "WildcardQuery",
    # Aggregations
    "Aggregation",
    "AggregationQuery",
    "TermsAggregation",
    # Suggest
    "Completion",
    "Suggest",
    # Results
    "Bucket",
    "BucketAggregationResult",
    "BulkItemResult",
    "BulkResult",
    "IndexResult",
    "QueryResult",
    "RawJsonResponse",
    "ScrollCursor",
    "ScrollPage",
    "SearchHit",
    # Transport
    "HttpTransport",
    "InMemoryEngine",
    "TransportResponse",
]
