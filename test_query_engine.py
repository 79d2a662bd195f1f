#!/usr/bin/env python3
"""
Test script for the query engine: preprocessing, expansion, ranking and context assembly
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from chatrag.models.knowledge import HealthReport, HealthStatus, QueryResult
from chatrag.rag.knowledge_base import extract_keywords
from chatrag.rag.query_engine import (
    QueryEngine,
    SearchOptions,
    build_context,
    deduplicate_and_rank,
    preprocess_query,
    select_within_budget,
)
from rag_fakes import InMemoryVectorStore, make_knowledge_base


def _result(content, similarity, title=None, chunk_id=None):
    metadata = {"title": title} if title else {}
    return QueryResult(content=content, document_id="doc-1", similarity=similarity, metadata=metadata, chunk_id=chunk_id)


def _mock_knowledge_base(results=None):
    kb = MagicMock()
    kb.extract_keywords.side_effect = extract_keywords
    kb.search_knowledge = AsyncMock(return_value=results or [])
    return kb


def test_quantum_computer_question():
    """Only the chunk above the similarity threshold reaches the context"""
    relevant = _result("量子コンピュータは量子力学の原理を利用して計算を行う計算機です。", 0.9, title="量子コンピュータ入門")
    unrelated = _result("チェックアウトは正午です。", 0.3, title="ホテル案内")
    kb, provider, _ = make_knowledge_base(store=InMemoryVectorStore(preset_matches=[unrelated, relevant]))
    engine = QueryEngine(kb, max_results=5, similarity_threshold=0.75, max_context_length=2000)

    bundle = asyncio.run(engine.search("量子コンピュータとは？"))
    print(f"Context:\n{bundle.context}")

    assert [r.content for r in bundle.results] == [relevant.content]
    assert "[量子コンピュータ入門]" in bundle.context
    assert relevant.content in bundle.context
    assert unrelated.content not in bundle.context
    assert bundle.metadata["queries"] == ["量子コンピュータとは"]
    assert bundle.metadata["top_similarity"] == 0.9
    assert provider.calls == ["量子コンピュータとは"]


def test_empty_query_never_embeds():
    kb, provider, _ = make_knowledge_base(store=InMemoryVectorStore(preset_matches=[_result("x", 0.99)]))
    kb.embedder.generate_embedding = AsyncMock()
    engine = QueryEngine(kb)

    bundle = asyncio.run(engine.search("   "))

    assert bundle.context == ""
    assert bundle.results == []
    assert bundle.metadata["total_results"] == 0
    kb.embedder.generate_embedding.assert_not_called()
    assert provider.calls == []


def test_preprocess_query():
    assert preprocess_query("教えて、チェックアウトの時間を教えてください") == "チェックアウトの時間"
    assert preprocess_query("朝食は何時からですか？") == "朝食は何時から"
    assert preprocess_query("  What time is checkout?  ") == "What time is checkout"
    assert preprocess_query("Pool hours please!") == "Pool hours"
    assert preprocess_query("?") == "?"
    assert preprocess_query("") == ""


def test_expand_query():
    engine = QueryEngine(_mock_knowledge_base())

    assert engine.expand_query("pool hours breakfast menu", 2) == ["pool hours breakfast", "pool menu"]
    assert engine.expand_query("pool hours breakfast menu", 1) == ["pool hours breakfast"]
    assert engine.expand_query("the pool hours", 2) == ["pool hours"]
    assert engine.expand_query("pool", 2) == []
    assert engine.expand_query("ab", 2) == []


def test_search_runs_expanded_queries():
    kb = _mock_knowledge_base()
    engine = QueryEngine(kb, max_results=4, similarity_threshold=0.6)

    bundle = asyncio.run(engine.search("pool hours breakfast menu"))

    queried = [c.args[0] for c in kb.search_knowledge.call_args_list]
    assert queried == ["pool hours breakfast menu", "pool hours breakfast", "pool menu"]
    assert all(c.args[1:] == (4, 0.6) for c in kb.search_knowledge.call_args_list)
    assert bundle.metadata["queries"] == queried


def test_search_options_override_defaults():
    kb = _mock_knowledge_base()
    engine = QueryEngine(kb, max_results=4, similarity_threshold=0.6)

    asyncio.run(engine.search(
        "pool hours breakfast menu",
        SearchOptions(max_results=2, similarity_threshold=0.9, enable_query_expansion=False),
    ))

    kb.search_knowledge.assert_awaited_once_with("pool hours breakfast menu", 2, 0.9)


def test_expansion_identical_to_query_is_skipped():
    kb = _mock_knowledge_base()
    engine = QueryEngine(kb)

    asyncio.run(engine.search("pool hours"))

    assert kb.search_knowledge.await_count == 1


def test_deduplicate_and_rank():
    prefix = "p" * 100
    results = [
        _result(prefix + " first tail", 0.8, chunk_id="a"),
        _result("something else", 0.7, chunk_id="b"),
        _result(prefix + " second tail", 0.9, chunk_id="c"),
        _result("tie", 0.85, chunk_id="d"),
        _result("tie", 0.85, chunk_id="e"),
    ]

    ranked = deduplicate_and_rank(results)

    assert [r.chunk_id for r in ranked] == ["c", "d", "b"]
    prefixes = [r.content[:100] for r in ranked]
    assert len(prefixes) == len(set(prefixes))


def test_select_within_budget():
    results = [_result("a" * 50, 0.9), _result("b" * 40, 0.8), _result("c" * 30, 0.7)]
    selected = select_within_budget(results, 100)

    assert [len(r.content) for r in selected] == [50, 40]
    assert sum(len(r.content) for r in selected) <= 100


def test_select_truncates_oversized_top_result():
    selected = select_within_budget([_result("a" * 150, 0.9), _result("b" * 10, 0.8)], 100)

    assert len(selected) == 1
    assert selected[0].content == "a" * 100
    assert selected[0].truncated


def test_build_context():
    context = build_context(
        [_result("Pool opens at 8.", 0.9, title="Pool"), _result("Spa opens at 10.", 0.8)],
        header="Reference material:",
    )
    assert context == "Reference material:\n\n[Pool]\nPool opens at 8.\n\n[Source 2]\nSpa opens at 10."
    assert build_context([]) == ""


def test_search_never_raises():
    kb = _mock_knowledge_base()
    kb.search_knowledge.side_effect = RuntimeError("store exploded")
    engine = QueryEngine(kb)

    bundle = asyncio.run(engine.search("pool hours"))

    assert bundle.context == ""
    assert bundle.results == []
    assert "store exploded" in bundle.error


def test_generate_context_for_prompt():
    kb = _mock_knowledge_base([_result("Pool opens at 8.", 0.9, title="Pool")])
    engine = QueryEngine(kb, enable_query_expansion=False, context_header="Reference material:")

    context = asyncio.run(engine.generate_context_for_prompt("pool"))

    assert context == "Reference material:\n\n[Pool]\nPool opens at 8."


def test_health_passes_through_knowledge_base():
    kb = _mock_knowledge_base()
    kb.check_health = AsyncMock(return_value=HealthReport(HealthStatus.DEGRADED, "partial"))

    report = asyncio.run(QueryEngine(kb).check_health())

    assert report.status == HealthStatus.DEGRADED
    assert report.components["knowledge_base"].message == "partial"


if __name__ == "__main__":
    test_quantum_computer_question()
    test_empty_query_never_embeds()
    test_preprocess_query()
    test_expand_query()
    test_search_runs_expanded_queries()
    test_search_options_override_defaults()
    test_expansion_identical_to_query_is_skipped()
    test_deduplicate_and_rank()
    test_select_within_budget()
    test_select_truncates_oversized_top_result()
    test_build_context()
    test_search_never_raises()
    test_generate_context_for_prompt()
    test_health_passes_through_knowledge_base()
    print("\n✅ All query engine tests passed")
