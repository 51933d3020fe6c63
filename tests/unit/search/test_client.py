"""Tests for the client facade running against the in-memory engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from esrest.core.search.client import Document

INDEX = "test-index"
DOC_TYPE = "doc"


@dataclass
class DocType:
    f1: str
    f2: int


async def _seed(es, docs):
    await es.create_index(INDEX)
    for doc in docs:
        await es.index(INDEX, DOC_TYPE, doc)
    await es.refresh(INDEX)


def _numbered(n=10):
    return [Document(str(i), {"f1": f"val{i}", "f2": i}) for i in range(1, n + 1)]


class TestIndices:
    """Index lifecycle."""

    @pytest.mark.asyncio
    async def test_create_twice_raises(self, es):
        """The second create of the same index raises IndexAlreadyExistsError."""
        from esrest.core.errors import IndexAlreadyExistsError
        from esrest.core.search.index import IndexSetting

        await es.create_index(INDEX, IndexSetting(12, 1, refresh_interval=30))

        with pytest.raises(IndexAlreadyExistsError) as exc_info:
            await es.create_index(INDEX)
        assert exc_info.value.index == INDEX

    @pytest.mark.asyncio
    async def test_delete_and_recreate(self, es):
        """A deleted index can be created again."""
        await es.create_index(INDEX)
        await es.delete_index(INDEX)
        await es.create_index(INDEX)

    @pytest.mark.asyncio
    async def test_delete_missing_index(self, es):
        """Deleting an unknown index is a TransportError with status 404."""
        from esrest.core.errors import TransportError

        with pytest.raises(TransportError) as exc_info:
            await es.delete_index("missing")
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_put_mapping_on_missing_index(self, es):
        """Mappings need an existing index."""
        from esrest.core.errors import TransportError
        from esrest.core.search.index import BasicFieldMapping, FieldType, IndexMapping

        with pytest.raises(TransportError):
            await es.put_mapping("missing", DOC_TYPE, IndexMapping(
                properties={"f1": BasicFieldMapping(FieldType.KEYWORD)},
            ))


class TestDocuments:
    """Single and bulk writes."""

    @pytest.mark.asyncio
    async def test_index_created_then_overwritten(self, es):
        """A new id is created; indexing it again overwrites it."""
        await es.create_index(INDEX)

        first = await es.index(INDEX, DOC_TYPE, Document("1", {"f1": "a"}))
        second = await es.index(INDEX, DOC_TYPE, Document("1", {"f1": "b"}))

        assert (first.created, first.already_exists) == (True, False)
        assert (second.created, second.already_exists) == (False, True)
        assert await es.get_document(INDEX, DOC_TYPE, "1") == {"f1": "b"}

    @pytest.mark.asyncio
    async def test_get_missing_document(self, es):
        """Unknown ids and unknown indices both return None."""
        await es.create_index(INDEX)

        assert await es.get_document(INDEX, DOC_TYPE, "nope") is None
        assert await es.get_document("other-index", DOC_TYPE, "nope") is None

    @pytest.mark.asyncio
    async def test_reserved_characters_in_ids(self, es):
        """Ids with slashes, hashes and question marks name distinct documents."""
        await es.create_index(INDEX)

        for doc_id in ("a", "a/b", "a#b", "a?b"):
            result = await es.index(INDEX, DOC_TYPE, Document(doc_id, {"f1": doc_id}))
            assert result.id == doc_id
            assert result.created

        for doc_id in ("a", "a/b", "a#b", "a?b"):
            assert await es.get_document(INDEX, DOC_TYPE, doc_id) == {"f1": doc_id}

    @pytest.mark.asyncio
    async def test_bulk_index_flags_in_order(self, es):
        """One pre-existing and two new ids report per-item flags in input order."""
        await es.create_index(INDEX)
        await es.index(INDEX, DOC_TYPE, Document("doc3", {"f1": "three"}))

        result = await es.bulk_index(INDEX, DOC_TYPE, [
            Document("doc1", {"f1": "one"}),
            Document("doc2", {"f1": "two"}),
            Document("doc3", {"f1": "three again"}),
        ])

        assert [item.id for item in result] == ["doc1", "doc2", "doc3"]
        assert [item.created for item in result] == [True, True, False]
        assert [item.already_exists for item in result] == [False, False, True]
        assert result[2].status == 409
        assert await es.get_document(INDEX, DOC_TYPE, "doc3") == {"f1": "three"}

    @pytest.mark.asyncio
    async def test_bulk_update_upserts(self, es):
        """bulk_update creates the first time and updates the second."""
        await es.create_index(INDEX)
        docs = [Document("1", {"f1": "a"}), Document("2", {"f1": "b"})]

        first = await es.bulk_update(INDEX, DOC_TYPE, docs)
        second = await es.bulk_update(INDEX, DOC_TYPE, [Document("1", {"f2": 5}), docs[1]])

        assert [item.created for item in first] == [True, True]
        assert [item.created for item in second] == [False, False]
        assert all(item.ok for item in second)
        assert await es.get_document(INDEX, DOC_TYPE, "1") == {"f1": "a", "f2": 5}

    @pytest.mark.asyncio
    async def test_empty_bulk_sends_nothing(self, engine, es):
        """An empty batch returns an empty result without a request."""
        assert len(await es.bulk_index(INDEX, DOC_TYPE, [])) == 0
        assert len(await es.bulk_update(INDEX, DOC_TYPE, [])) == 0
        assert engine._indices == {}

    @pytest.mark.asyncio
    async def test_concurrent_writes(self, es):
        """Concurrent index calls on one client are independent."""
        await es.create_index(INDEX)

        results = await asyncio.gather(*[
            es.index(INDEX, DOC_TYPE, doc) for doc in _numbered(5)
        ])
        await es.refresh(INDEX)

        assert all(r.created for r in results)
        assert sorted(r.id for r in results) == ["1", "2", "3", "4", "5"]

    def test_document_copies_data(self):
        """Document keeps its own copy of the field mapping."""
        data = {"f1": "x"}
        doc = Document("1", data)
        data["f1"] = "changed"

        assert doc.data == {"f1": "x"}

    @pytest.mark.asyncio
    async def test_delete_by_query(self, es):
        """delete_document removes the matching documents and returns the count."""
        from esrest.core.search.query import MatchAllQuery, QueryRoot, RangeQuery

        await _seed(es, _numbered())

        deleted = await es.delete_document(INDEX, DOC_TYPE, QueryRoot(RangeQuery("f2", gt=7)))

        assert deleted == 3
        assert await es.count(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery())) == 7


class TestQueries:
    """Search operations."""

    @pytest.mark.asyncio
    async def test_term_query(self, es):
        """A term query returns exactly the documents with that value."""
        from esrest.core.search.query import QueryRoot, TermQuery

        await _seed(es, [
            Document("1", {"f1": "val1"}),
            Document("2", {"f1": "val2"}),
            Document("3", {"f1": "val1"}),
        ])

        result = await es.query(INDEX, DOC_TYPE, QueryRoot(TermQuery("f1", "val1")))

        assert sorted(h.id for h in result.hits) == ["1", "3"]
        assert result.total == 2
        assert result.json()["hits"]["total"] == 2

    @pytest.mark.parametrize(
        "bounds, expected",
        [
            ({"lt": "4"}, 3),
            ({"lte": "4"}, 4),
            ({"gt": "4"}, 6),
            ({"gte": "4"}, 7),
            ({"gte": 5, "lte": 6}, 2),
        ],
    )
    @pytest.mark.asyncio
    async def test_range_counts(self, es, bounds, expected):
        """Range queries over ids 1..10 around pivot 4."""
        from esrest.core.search.query import QueryRoot, RangeFilter, RangeQuery, FilteredQuery, MatchAllQuery

        await _seed(es, _numbered())

        assert await es.count(INDEX, DOC_TYPE, QueryRoot(RangeQuery("f2", **bounds))) == expected
        filtered = FilteredQuery.of(MatchAllQuery(), RangeFilter("f2", **bounds))
        assert await es.count(INDEX, DOC_TYPE, QueryRoot(filtered)) == expected

    @pytest.mark.asyncio
    async def test_source_projection(self, es):
        """Only the requested source fields come back."""
        from esrest.core.search.query import QueryRoot, TermQuery

        await _seed(es, [Document("1", {"f1": "x", "f2": 1, "text": "text1"})])

        root = QueryRoot(TermQuery("f1", "x"), source_filter=["f2", "text"])
        result = await es.query(INDEX, DOC_TYPE, root)

        assert result.source_as_map == [{"f2": 1, "text": "text1"}]

    @pytest.mark.asyncio
    async def test_sort_and_paging(self, es):
        """Sort descending then page with from/size."""
        from esrest.core.search.query import MatchAllQuery, QueryRoot, SimpleSort, SortOrder

        await _seed(es, _numbered())

        root = QueryRoot(MatchAllQuery(), from_=2, size=3, sort=[SimpleSort("f2", SortOrder.DESC)])
        result = await es.query(INDEX, DOC_TYPE, root)

        assert [s["f2"] for s in result.source_as_map] == [8, 7, 6]
        assert result.total == 10

    @pytest.mark.asyncio
    async def test_regex_query_and_filter(self, es):
        """Regex queries and filters match analyzed terms."""
        from esrest.core.search.query import (
            FilteredQuery,
            MatchAllQuery,
            QueryRoot,
            RegexFilter,
            RegexQuery,
        )

        await _seed(es, [
            Document("1", {"f1": "regexQuery1"}),
            Document("2", {"f1": "regexQuery2"}),
            Document("3", {"f1": "regexFilter1"}),
        ])

        by_query = await es.query(INDEX, DOC_TYPE, QueryRoot(RegexQuery("f1", "regexq.*")))
        by_filter = await es.query(
            INDEX, DOC_TYPE,
            QueryRoot(FilteredQuery.of(MatchAllQuery(), RegexFilter("f1", "regexf.*"))),
        )

        assert sorted(h.id for h in by_query.hits) == ["1", "2"]
        assert [h.id for h in by_filter.hits] == ["3"]

    @pytest.mark.asyncio
    async def test_text_queries(self, es):
        """Match, phrase, prefix and wildcard queries."""
        from esrest.core.search.query import (
            MatchQuery,
            PhrasePrefixQuery,
            PhraseQuery,
            PrefixQuery,
            QueryRoot,
            WildcardQuery,
        )

        await _seed(es, [
            Document("1", {"text": "The quick brown fox"}),
            Document("2", {"text": "A quick red fox"}),
            Document("3", {"text": "Lazy brown dog"}),
        ])

        async def ids(query):
            result = await es.query(INDEX, DOC_TYPE, QueryRoot(query))
            return sorted(h.id for h in result.hits)

        assert await ids(MatchQuery("text", "brown")) == ["1", "3"]
        assert await ids(MatchQuery("text", "quick dog")) == ["1", "2", "3"]
        assert await ids(MatchQuery("text", "quick fox", operator="and")) == ["1", "2"]
        assert await ids(PhraseQuery("text", "quick brown")) == ["1"]
        assert await ids(PhrasePrefixQuery("text", "brown d")) == ["3"]
        assert await ids(PrefixQuery("text", "la")) == ["3"]
        assert await ids(WildcardQuery("text", "r?d")) == ["2"]

    @pytest.mark.asyncio
    async def test_bool_query(self, es):
        """Bool must/must_not/should combine as expected."""
        from esrest.core.search.query import BoolQuery, QueryRoot, RangeQuery, TermQuery

        await _seed(es, _numbered())

        query = BoolQuery(
            must=[RangeQuery("f2", lte=5)],
            must_not=[TermQuery("f1", "val2")],
        )
        result = await es.query(INDEX, DOC_TYPE, QueryRoot(query))
        assert sorted(s["f2"] for s in result.source_as_map) == [1, 3, 4, 5]

        should_only = BoolQuery(should=[TermQuery("f2", 1), TermQuery("f2", 9)])
        assert await es.count(INDEX, DOC_TYPE, QueryRoot(should_only)) == 2

        half = BoolQuery(
            should=[RangeQuery("f2", lte=5), RangeQuery("f2", gte=4)],
            minimum_should_match="50%",
        )
        assert await es.count(INDEX, DOC_TYPE, QueryRoot(half)) == 10

        both = BoolQuery(
            should=[RangeQuery("f2", lte=5), RangeQuery("f2", gte=4)],
            minimum_should_match="100%",
        )
        assert await es.count(INDEX, DOC_TYPE, QueryRoot(both)) == 2

    @pytest.mark.asyncio
    async def test_geo_distance_filter_and_sort(self, es):
        """Geo-distance filters by radius and sorts by distance."""
        from esrest.core.search.index import BasicFieldMapping, FieldType, IndexMapping
        from esrest.core.search.query import (
            FilteredQuery,
            GeoDistanceFilter,
            GeoDistanceSort,
            GeoLocation,
            MatchAllQuery,
            QueryRoot,
        )

        await es.create_index(INDEX)
        await es.put_mapping(INDEX, DOC_TYPE, IndexMapping(
            properties={"location": BasicFieldMapping(FieldType.GEO_POINT)},
        ))
        await es.index(INDEX, DOC_TYPE, Document("near", {"location": {"lat": 40.7128, "lon": -74.0060}}))
        await es.index(INDEX, DOC_TYPE, Document("close", {"location": "40.7150, -74.0030"}))
        await es.index(INDEX, DOC_TYPE, Document("far", {"location": {"lat": 51.5074, "lon": -0.1278}}))
        await es.refresh(INDEX)

        here = GeoLocation(40.7128, -74.0060)
        within = FilteredQuery.of(MatchAllQuery(), GeoDistanceFilter("1km", "location", here))
        result = await es.query(INDEX, DOC_TYPE, QueryRoot(within))
        assert sorted(h.id for h in result.hits) == ["close", "near"]

        by_distance = QueryRoot(
            MatchAllQuery(),
            sort=[GeoDistanceSort("location", here, unit="km", distance_type="plane")],
        )
        result = await es.query(INDEX, DOC_TYPE, by_distance)
        assert [h.id for h in result.hits] == ["near", "close", "far"]

    @pytest.mark.asyncio
    async def test_typed_extraction(self, es):
        """Hits decode into a caller-supplied type."""
        from esrest.core.search.query import QueryRoot, SimpleSort, MatchAllQuery

        await _seed(es, _numbered(2))

        result = await es.query(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), sort=[SimpleSort("f2")]))

        assert result.extract_source(DocType) == [DocType("val1", 1), DocType("val2", 2)]

    @pytest.mark.asyncio
    async def test_query_missing_index(self, es):
        """Searching an unknown index raises TransportError."""
        from esrest.core.errors import TransportError
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        with pytest.raises(TransportError) as exc_info:
            await es.query("missing", DOC_TYPE, QueryRoot(MatchAllQuery()))
        assert exc_info.value.status == 404


class TestScroll:
    """Scroll and scan."""

    @pytest.mark.asyncio
    async def test_scroll_pages(self, es):
        """A scroll returns a cursor and non-empty next pages until exhausted."""
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        await _seed(es, _numbered())

        first = await es.start_scroll_request(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=4))
        assert first.id
        assert len(first.result) == 4

        second = await es.scroll(first.cursor)
        third = await es.scroll(second.cursor)
        done = await es.scroll(third.cursor)

        assert len(second.result) == 4
        assert len(third.result) == 2
        assert done.exhausted
        assert done.result.total == 10

    @pytest.mark.asyncio
    async def test_clear_scroll(self, es):
        """Clearing twice reports False the second time; the cursor stops working."""
        from esrest.core.errors import TransportError
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        await _seed(es, _numbered())

        page = await es.start_scroll_request(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=2))

        assert await es.clear_scroll(page.cursor) is True
        assert await es.clear_scroll(page.cursor) is False
        with pytest.raises(TransportError):
            await es.scroll(page.cursor)

    @pytest.mark.asyncio
    async def test_scan_reads_everything_and_clears(self, engine, es):
        """scan yields every page and releases the scroll."""
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        await _seed(es, _numbered())

        seen = []
        async for page in es.scan(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=3)):
            seen.extend(s["f2"] for s in page.source_as_map)

        assert sorted(seen) == list(range(1, 11))
        assert engine._scrolls == {}

    @pytest.mark.asyncio
    async def test_exhausted_scroll_is_released(self, engine, es):
        """Reading past the last page frees the scroll without a clear."""
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        await _seed(es, _numbered())

        page = await es.start_scroll_request(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=5))
        while not page.exhausted:
            page = await es.scroll(page.cursor)

        assert engine._scrolls == {}
        assert await es.clear_scroll(page.cursor) is False

    @pytest.mark.asyncio
    async def test_scan_keeps_error_when_clear_fails(self, caplog):
        """A failing clear is logged and the scroll error propagates."""
        import logging

        from esrest.core.errors import TransportError
        from esrest.core.search.client import ElasticsearchClient
        from esrest.core.search.memory import InMemoryEngine, _EngineError
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        class BrokenScrollEngine(InMemoryEngine):
            def _scroll(self, body, params):
                raise _EngineError(500, "scroll_failure", "scroll broke")

            def _clear_scroll(self, body):
                raise _EngineError(503, "clear_failure", "clear broke")

        es = ElasticsearchClient(transport=BrokenScrollEngine())
        await _seed(es, _numbered())

        pages = []
        with caplog.at_level(logging.WARNING, logger="esrest.core.search.client"):
            with pytest.raises(TransportError) as exc_info:
                async for page in es.scan(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=4)):
                    pages.append(page)

        assert len(pages) == 1
        assert exc_info.value.status == 500
        assert any("Failed to clear scroll" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_scan_raises_clear_failure_after_success(self):
        """A failing clear after a complete scan is raised."""
        from esrest.core.errors import TransportError
        from esrest.core.search.client import ElasticsearchClient
        from esrest.core.search.memory import InMemoryEngine, _EngineError
        from esrest.core.search.query import MatchAllQuery, QueryRoot

        class BrokenClearEngine(InMemoryEngine):
            def _clear_scroll(self, body):
                raise _EngineError(503, "clear_failure", "clear broke")

        es = ElasticsearchClient(transport=BrokenClearEngine())
        await _seed(es, _numbered(3))

        with pytest.raises(TransportError) as exc_info:
            async for _ in es.scan(INDEX, DOC_TYPE, QueryRoot(MatchAllQuery(), size=2)):
                pass

        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_scroll_keep_alive_from_settings(self, monkeypatch):
        """The keep-alive window comes from settings unless given."""
        from esrest.core.search.client import ElasticsearchClient

        monkeypatch.setenv("ES_SCROLL_KEEP_ALIVE", "5m")

        assert ElasticsearchClient().scroll_keep_alive == "5m"


class TestAggregationsAndSuggest:
    """Terms aggregations and completion suggestions."""

    @pytest.mark.asyncio
    async def test_terms_aggregation(self, es):
        """Buckets cover the filtered documents whose key matches the include pattern."""
        from esrest.core.search.aggregations import AggregationQuery, TermsAggregation
        from esrest.core.search.query import FilteredQuery, PhrasePrefixQuery, TermFilter
        from esrest.core.search.results import Bucket, BucketAggregationResult

        await _seed(es, [
            Document("1", {"f1": "aggr1", "f2": 1, "text": "text1"}),
            Document("2", {"f1": "aggr2", "f2": 2, "text": "text1"}),
            Document("3", {"f1": "aggr3", "f2": 1, "text": "text1"}),
            Document("4", {"f1": "other", "f2": 1, "text": "text1"}),
        ])

        query = FilteredQuery.of(
            PhrasePrefixQuery("f1", "aggr"),
            TermFilter("f2", "1"),
            TermFilter("text", "text1"),
        )
        aggregation = TermsAggregation("f1", include="aggr.*", size=5, shard_size=5, execution_hint="map")

        result = await es.bucket_aggregation(INDEX, DOC_TYPE, AggregationQuery(query, aggregation, timeout=5000))

        assert result == BucketAggregationResult(0, 0, [Bucket("aggr1", 1), Bucket("aggr3", 1)])

    @pytest.mark.asyncio
    async def test_nested_aggregation(self, es):
        """Sub-aggregations come back inside each bucket."""
        from esrest.core.search.aggregations import AggregationQuery, TermsAggregation
        from esrest.core.search.query import MatchAllQuery

        await _seed(es, [
            Document("1", {"country": "fr", "city": "paris"}),
            Document("2", {"country": "fr", "city": "lyon"}),
            Document("3", {"country": "de", "city": "berlin"}),
        ])

        aggregation = TermsAggregation(
            "country",
            sub_aggregations={"cities": TermsAggregation("city", size=1)},
        )
        result = await es.bucket_aggregation(INDEX, DOC_TYPE, AggregationQuery(MatchAllQuery(), aggregation))

        assert [(b.key, b.doc_count) for b in result.buckets] == [("fr", 2), ("de", 1)]
        cities = result.buckets[0].aggregations["cities"]
        assert [b.key for b in cities.buckets] == ["lyon"]
        assert cities.sum_other_doc_count == 1

    @pytest.mark.asyncio
    async def test_completion_suggest(self, es):
        """Completions honor the prefix and the category context."""
        from esrest.core.search.index import (
            Analysis,
            Analyzer,
            BasicFieldMapping,
            CompletionContext,
            CompletionMapping,
            FieldType,
            IndexMapping,
            IndexSetting,
            TokenFilter,
            Tokenizer,
        )
        from esrest.core.search.suggest import Completion, Suggest

        analysis = Analysis(analyzers=[
            Analyzer("keyword_lowercase", Tokenizer.KEYWORD, [TokenFilter.LOWERCASE]),
        ])
        await es.create_index(INDEX, IndexSetting(1, 0, analysis))
        await es.put_mapping(INDEX, DOC_TYPE, IndexMapping(properties={
            "name": BasicFieldMapping(FieldType.KEYWORD),
            "suggest": CompletionMapping(
                contexts={"f": CompletionContext("name")},
                analyzer="keyword_lowercase",
            ),
        }))
        await es.index(INDEX, DOC_TYPE, Document("1", {
            "name": "test",
            "suggest": {"input": ["Case", "case", "#Case`case"]},
        }))
        await es.refresh(INDEX)

        def request(text, context="test"):
            return Suggest(text, Completion("suggest", size=50, contexts={"f": context}))

        assert await es.suggest(INDEX, DOC_TYPE, request("c")) == ["Case", "case"]
        assert await es.suggest(INDEX, DOC_TYPE, request("#")) == ["#Case`case"]
        assert await es.suggest(INDEX, DOC_TYPE, request("c", context="other")) == []


class TestRawAndGlobals:
    """Raw requests and the process-wide client."""

    @pytest.mark.asyncio
    async def test_raw_stats(self, es):
        """A raw GET returns the response body untouched."""
        await _seed(es, _numbered(3))

        response = await es.run_raw_es_request(None, "/_stats/indices", "GET")

        assert response.json()["indices"][INDEX]["primaries"]["docs"]["count"] == 3

    @pytest.mark.asyncio
    async def test_raw_relative_endpoint(self, es):
        """Endpoints without a leading slash are accepted."""
        await es.create_index(INDEX)

        response = await es.run_raw_es_request({"query": {"match_all": {}}}, f"{INDEX}/_search")

        assert response.json()["hits"]["total"] == 0

    @pytest.mark.asyncio
    async def test_async_context_manager(self, engine):
        """The client closes its connection pool on exit."""
        from esrest.core.search.client import ElasticsearchClient

        async with ElasticsearchClient(transport=engine) as client:
            await client.create_index(INDEX)
            assert client.http._client is not None
        assert client.http._client is None

    def test_global_client(self):
        """get_search_client caches one instance until replaced."""
        from esrest.core.search.client import (
            ElasticsearchClient,
            get_search_client,
            set_search_client,
        )
        from esrest.core.search.memory import InMemoryEngine

        client = get_search_client("memory")
        assert client is get_search_client()
        assert isinstance(client.http._transport, InMemoryEngine)

        replacement = ElasticsearchClient()
        set_search_client(replacement)
        assert get_search_client() is replacement
