"""Tests for the tiered Searcher."""

import math

import pytest

from memvid_memory.common.errors import SearchError
from memvid_memory.common.schemas import SearchTier
from memvid_memory.retriever.rewriter import QueryRewriter
from memvid_memory.retriever.searcher import Searcher, SearchOptions, normalize_hits
from memvid_memory.tests.fakes import FakeProvider, FakeStore


def _hit(frame_id, score=1.0, label=None, title=None):
    return {"frame_id": frame_id, "title": title or frame_id, "score": score, "snippet": "s", "label": label}


class TestTiers:
    @pytest.mark.asyncio
    async def test_direct_hit_short_circuits(self, store):
        store.responses["postgres setup"] = [_hit("f1")]
        result = await Searcher(store).search("postgres setup")

        assert result.tier == SearchTier.DIRECT
        assert [h.frame_id for h in result.hits] == ["f1"]
        assert store.queries == ["postgres setup"]

    @pytest.mark.asyncio
    async def test_or_tier_is_final(self, store):
        store.responses["docker OR container"] = [_hit("f2")]
        store.responses["docker"] = [_hit("never")]
        result = await Searcher(store).search("the Docker container?")

        assert result.tier == SearchTier.OR_KEYWORDS
        assert result.query == "docker OR container"
        assert [h.frame_id for h in result.hits] == ["f2"]
        assert store.queries == ["the Docker container?", "docker OR container"]

    @pytest.mark.asyncio
    async def test_single_keyword_tier_stops_at_first_hit(self, store):
        store.responses["container"] = [_hit("f3")]
        store.responses["kubernetes"] = [_hit("never")]
        result = await Searcher(store).search("docker container kubernetes")

        assert result.tier == SearchTier.SINGLE_KEYWORD
        assert result.query == "container"
        assert store.queries == [
            "docker container kubernetes",
            "docker OR container OR kubernetes",
            "docker",
            "container",
        ]

    @pytest.mark.asyncio
    async def test_stopword_only_query_skips_keyword_tiers(self, store):
        result = await Searcher(store).search("what is the")
        assert result.is_empty
        assert result.tier == SearchTier.NONE
        assert store.queries == ["what is the"]

    @pytest.mark.asyncio
    async def test_rewrite_tier_finds_synonym(self, db_store):
        provider = FakeProvider(rewrite_answer='["database", "postgresql"]')
        searcher = Searcher(db_store, QueryRewriter(provider))
        result = await searcher.search("database")

        assert result.tier == SearchTier.REWRITE
        assert result.query == "postgresql"
        assert [h.title for h in result.hits] == ["DB choice"]
        assert provider.rewrite_calls == [("database", ["database"])]
        # "database" was already attempted and is not searched again
        assert db_store.queries.count("database") == 3
        assert db_store.queries[-1] == "postgresql"

    @pytest.mark.asyncio
    async def test_rewrite_disabled(self, db_store):
        provider = FakeProvider(rewrite_answer='["postgresql"]')
        result = await Searcher(db_store, QueryRewriter(provider)).search("database", allow_rewrite=False)
        assert result.is_empty
        assert provider.rewrite_calls == []

    @pytest.mark.asyncio
    async def test_rewrite_without_provider_is_skipped(self, db_store):
        result = await Searcher(db_store, QueryRewriter(None)).search("database")
        assert result.is_empty
        assert result.tier == SearchTier.NONE

    @pytest.mark.asyncio
    async def test_rewrite_failure_yields_empty_result(self, db_store):
        from memvid_memory.common.errors import ProviderError
        provider = FakeProvider(error=ProviderError("fake", "down"))
        result = await Searcher(db_store, QueryRewriter(provider)).search("database")
        assert result.is_empty


class TestResultShaping:
    @pytest.mark.asyncio
    async def test_label_is_a_post_filter(self, store):
        store.responses["report"] = [
            _hit("f1", 0.9, "decision"),
            _hit("f2", 0.8, "context"),
            _hit("f3", 0.7, "decision"),
            _hit("f4", 0.6, "context"),
            _hit("f5", 0.5, "context"),
        ]
        result = await Searcher(store).search("report", SearchOptions(label="decision"))

        assert result.total_hits == 2
        assert [h.frame_id for h in result.hits] == ["f1", "f3"]
        assert store.queries == ["report"]

    @pytest.mark.asyncio
    async def test_label_filtered_empty_does_not_escalate(self, store):
        store.responses["report"] = [_hit("f1", label="context")]
        result = await Searcher(store).search("report", SearchOptions(label="decision"))
        assert result.is_empty
        assert result.total_hits == 0
        assert result.tier == SearchTier.DIRECT
        assert store.queries == ["report"]

    @pytest.mark.asyncio
    async def test_limit_sort_and_clamp(self, store):
        store.responses["x"] = [
            _hit("a", 0.2),
            _hit("b", float("nan")),
            _hit("c", 0.9),
            _hit("d", -1.0),
            _hit("e", 0.5),
        ]
        result = await Searcher(store).search("x", SearchOptions(limit=3))

        assert [h.frame_id for h in result.hits] == ["c", "e", "a"]
        assert all(math.isfinite(h.score) and h.score >= 0 for h in result.hits)
        assert result.search_time_ms >= 0

    @pytest.mark.asyncio
    async def test_engine_error_becomes_search_error(self, store):
        store.find_error = RuntimeError("disk on fire")
        with pytest.raises(SearchError, match="disk on fire"):
            await Searcher(store).search("anything")

    @pytest.mark.asyncio
    async def test_search_error_passes_through(self, store):
        original = SearchError("Frame not found")
        store.find_error = original
        with pytest.raises(SearchError) as exc_info:
            await Searcher(store).search("anything")
        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_non_numeric_score_is_zeroed(self):
        store = FakeStore()
        store.responses["x"] = [{"frame_id": "a", "title": "A", "score": "n/a", "snippet": "s"}]

        result = await Searcher(store).search("x")

        assert [(h.frame_id, h.score) for h in result.hits] == [("a", 0.0)]

    @pytest.mark.asyncio
    async def test_malformed_engine_payload_becomes_search_error(self):
        store = FakeStore()
        store.responses["x"] = 5
        with pytest.raises(SearchError):
            await Searcher(store).search("x")

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            SearchOptions(limit=0)
        with pytest.raises(ValueError):
            SearchOptions(mode="fuzzy")


class TestNormalizeHits:
    def test_dedupes_by_frame_id_keeping_best_score(self):
        hits = normalize_hits({"hits": [_hit("a", 0.3), _hit("a", 0.8), _hit("b", 0.5)]}, 10)
        assert [(h.frame_id, h.score) for h in hits] == [("a", 0.8), ("b", 0.5)]

    def test_alternate_id_keys_and_defaults(self):
        hits = normalize_hits([{"frameId": "x"}, {"id": 7, "text": "body", "metadata": {"title": "T"}}], 10)
        by_id = {h.frame_id: h for h in hits}
        assert by_id["x"].title == ""
        assert by_id["x"].score == 0.0
        assert by_id["7"].title == "T"
        assert by_id["7"].snippet == "body"

    def test_missing_hits(self):
        assert normalize_hits({}, 10) == []
        assert normalize_hits(None, 10) == []
