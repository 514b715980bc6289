"""
Tests for keyword, semantic and hybrid search and the entity/fact lookups.
"""

import pytest

from episode_graph.errors import ExtractionError, InvalidInputError, PersistenceError
from episode_graph.knowledge_graph.models import SearchResult
from episode_graph.knowledge_graph.query_engine import GraphQueryEngine, merge_results


def _result(node, score):
    return SearchResult.for_node(node, score)


class TestMergeResults:
    def test_item_found_by_both_sums_weighted_scores(self, node_factory):
        a = node_factory("Alpha")
        merged = merge_results([_result(a, 0.9)], [_result(a, 1.0)], 10)
        assert len(merged) == 1
        assert merged[0].score == pytest.approx(0.9 * 1.2 + 1.0 * 0.8)

    def test_single_source_items_are_weighted(self, node_factory):
        a, b = node_factory("Alpha"), node_factory("Beta")
        merged = merge_results([_result(a, 0.5)], [_result(b, 1.0)], 10)
        scores = {r.node.name: r.score for r in merged}
        assert scores["Alpha"] == pytest.approx(0.6)
        assert scores["Beta"] == pytest.approx(0.8)

    def test_sorted_descending_and_truncated(self, node_factory):
        nodes = [node_factory(f"N{i}") for i in range(6)]
        semantic = [_result(n, 0.1 * i) for i, n in enumerate(nodes)]
        keyword = [_result(n, 1.0) for n in nodes[:2]]

        merged = merge_results(semantic, keyword, 3)

        assert len(merged) == 3
        scores = [r.score for r in merged]
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_first_seen_order(self, node_factory):
        a, b, c = node_factory("A"), node_factory("B"), node_factory("C")
        merged = merge_results([], [_result(a, 1.0), _result(b, 1.0), _result(c, 1.0)], 10)
        assert [r.node.name for r in merged] == ["A", "B", "C"]

    def test_inputs_are_not_mutated(self, node_factory):
        a = node_factory("Alpha")
        sem, kw = _result(a, 1.0), _result(a, 1.0)
        merge_results([sem], [kw], 10)
        assert sem.score == 1.0
        assert kw.score == 1.0


class TestSearch:
    async def test_keyword_search_scores_one(self, engine, store, node_factory):
        await store.add_nodes([node_factory("John Doe"), node_factory("Jane Roe")])

        results = await engine.search("john", 10, "keyword")

        assert [r.node.name for r in results] == ["John Doe"]
        assert results[0].score == 1.0
        assert results[0].content == "John Doe (entity): No description"

    async def test_keyword_search_respects_limit(self, engine, store, node_factory):
        await store.add_nodes([node_factory(f"Item {i}") for i in range(5)])
        results = await engine.search("item", 2, "keyword")
        assert len(results) == 2

    async def test_semantic_search_uses_vector_hits(self, engine, store, embedder, node_factory):
        store.vector_hits = [(node_factory("Microsoft"), 0.93)]

        results = await engine.search("tech company", 5, "semantic")

        assert embedder.calls == ["embed"]
        assert [(r.node.name, r.score) for r in results] == [("Microsoft", 0.93)]

    async def test_semantic_falls_back_to_keyword_on_embedding_failure(self, engine, store, embedder, node_factory):
        await store.add_nodes([node_factory("Microsoft")])
        embedder.error = ExtractionError("embedding down")

        results = await engine.search("Micro", 5, "semantic")

        assert [r.node.name for r in results] == ["Microsoft"]
        assert results[0].score == 1.0
        assert "vector_search" not in store.calls

    async def test_semantic_falls_back_on_vector_lookup_failure(self, engine, store, node_factory):
        await store.add_nodes([node_factory("Microsoft")])
        store.fail_on.add("vector_search")

        results = await engine.search("Micro", 5, "semantic")

        assert [r.node.name for r in results] == ["Microsoft"]

    async def test_semantic_without_embedder_falls_back(self, store, node_factory):
        await store.add_nodes([node_factory("Microsoft")])
        engine = GraphQueryEngine(store, embedder=None)
        results = await engine.search("Micro", 5, "semantic")
        assert len(results) == 1

    async def test_keyword_store_failure_returns_empty(self, engine, store):
        store.fail_on.add("search_nodes")
        assert await engine.search("anything", 5, "keyword") == []

    async def test_hybrid_merges_both_sources(self, engine, store, node_factory):
        john, jane, acme = node_factory("John Doe"), node_factory("Jane Doe"), node_factory("Acme")
        await store.add_nodes([john, jane, acme])
        store.vector_hits = [(acme, 0.9), (john, 0.5)]

        results = await engine.search("doe", 10, "hybrid")

        scores = {r.node.name: r.score for r in results}
        assert scores["John Doe"] == pytest.approx(0.5 * 1.2 + 1.0 * 0.8)
        assert scores["Acme"] == pytest.approx(0.9 * 1.2)
        assert scores["Jane Doe"] == pytest.approx(0.8)
        assert [r.node.name for r in results] == ["John Doe", "Acme", "Jane Doe"]

    async def test_hybrid_is_default_and_truncates(self, engine, store, node_factory):
        nodes = [node_factory(f"Doe {i}") for i in range(4)]
        await store.add_nodes(nodes)
        store.vector_hits = [(n, 0.5) for n in nodes]

        results = await engine.search("doe", 2)

        assert len(results) == 2
        assert all(r.score == pytest.approx(1.4) for r in results)

    async def test_unknown_mode_rejected_before_external_calls(self, engine, store, embedder):
        with pytest.raises(InvalidInputError, match="bogus"):
            await engine.search("q", 10, "bogus")
        assert store.calls == []
        assert embedder.calls == []

    @pytest.mark.parametrize("limit", [0, 101, -1, True])
    async def test_limit_out_of_range_rejected(self, engine, store, limit):
        with pytest.raises(InvalidInputError):
            await engine.search("q", limit, "keyword")
        assert store.calls == []


class TestLookups:
    async def test_find_entities_by_name_and_type(self, engine, store, node_factory):
        await store.add_nodes(
            [node_factory("John Doe", node_type="person"), node_factory("John Deere", node_type="company")]
        )

        assert {n.name for n in await engine.find_entities("John")} == {"John Doe", "John Deere"}
        assert [n.name for n in await engine.find_entities("John", "person")] == ["John Doe"]

    async def test_find_entities_is_capped(self, store, node_factory):
        await store.add_nodes([node_factory(f"Item {i}") for i in range(5)])
        engine = GraphQueryEngine(store, max_entity_results=3)
        assert len(await engine.find_entities("item")) == 3

    async def test_find_entities_propagates_store_errors(self, engine, store):
        store.fail_on.add("find_nodes")
        with pytest.raises(PersistenceError):
            await engine.find_entities("x")

    async def test_find_facts_with_snapshots(self, ingestor, engine, demo_episode):
        await ingestor.ingest(demo_episode)

        (fact,) = await engine.find_facts("John", "Microsoft")

        assert fact.type == "works_at"
        assert fact.source_node.name == "John Doe"
        assert fact.target_node.name == "Microsoft"

    async def test_find_facts_filters(self, ingestor, engine, demo_episode):
        await ingestor.ingest(demo_episode)

        assert await engine.find_facts(fact_type="founded") == []
        assert await engine.find_facts(source_name="Microsoft") == []
        assert len(await engine.find_facts()) == 1
