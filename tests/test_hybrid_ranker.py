"""
Tests for cosine similarity and the hybrid merge.
"""

import pytest

from docquery.ingestion.schema import Chunk
from docquery.retrieval.bm25_index import BM25Corpus
from docquery.retrieval.hybrid_retriever import HybridRanker, cosine_similarities, cosine_similarity


class TestCosine:
    @pytest.mark.parametrize("v", [[1.0, 2.0, 3.0], [0.5, -0.25], [1e-3, 7.0, 0.0, 2.0]])
    def test_self_similarity_is_one(self, v):
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_zero_vector_is_zero(self):
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 1.0], [-2.0, -2.0]) == pytest.approx(-1.0)

    def test_rowwise(self):
        sims = cosine_similarities([1.0, 0.0], [[2.0, 0.0], [0.0, 0.0], [0.0, 1.0]])
        assert sims == pytest.approx([1.0, 0.0, 0.0])
        assert cosine_similarities([1.0, 0.0], []) == []


def _chunk(cid, text, embedding=None, scope=None):
    metadata = {"scope": scope} if scope is not None else {}
    return Chunk(chunk_id=cid, document_id=f"doc-{cid}", text=text, embedding=embedding, metadata=metadata)


@pytest.fixture
def snapshot():
    chunks = [
        _chunk("a", "The cat sat on the mat", [1.0, 0.0], scope="s1"),
        _chunk("b", "Dogs are loyal companions", [0.0, 1.0], scope="s2"),
        _chunk("c", "A cat and a dog", None, scope="s1"),
    ]
    return {c.chunk_id: c for c in chunks}


@pytest.fixture
def index(snapshot):
    corpus = BM25Corpus()
    for chunk in snapshot.values():
        corpus.add_chunk(chunk.text, chunk_id=chunk.chunk_id)
    return corpus


class TestHybridRanker:
    def test_combined_is_sum(self, index, snapshot):
        hits = index.search_all("cat")
        ranked = HybridRanker().rank(hits, [1.0, 0.0], snapshot)

        by_id = {r.chunk_id: r for r in ranked}
        lexical = {h["id"]: h["score"] for h in hits}
        assert by_id["a"].vector_score == pytest.approx(1.0)
        assert by_id["a"].combined_score == pytest.approx(lexical["a"] + 1.0)
        assert by_id["b"].vector_score == pytest.approx(0.0)
        assert by_id["b"].combined_score == pytest.approx(lexical["b"])

    def test_chunk_without_vector_is_kept(self, index, snapshot):
        ranked = HybridRanker().rank(index.search_all("cat"), [1.0, 0.0], snapshot)
        c = next(r for r in ranked if r.chunk_id == "c")
        assert c.vector_score is None
        assert c.combined_score == pytest.approx(c.lexical_score)
        assert len(ranked) == 3

    def test_sorted_descending(self, index, snapshot):
        ranked = HybridRanker().rank(index.search_all("cat"), [1.0, 0.0], snapshot)
        scores = [r.combined_score for r in ranked]
        assert scores == sorted(scores, reverse=True)
        assert ranked[0].chunk_id == "a"

    def test_weights(self, index, snapshot):
        hits = index.search_all("cat")
        ranked = HybridRanker(lexical_weight=0.0, vector_weight=2.0).rank(hits, [0.0, 1.0], snapshot)
        assert ranked[0].chunk_id == "b"
        assert ranked[0].combined_score == pytest.approx(2.0)

    def test_lexical_only(self, index, snapshot):
        hits = index.search_all("cat")
        ranked = HybridRanker().rank(hits, None, snapshot)
        assert all(r.vector_score is None for r in ranked)
        assert [r.combined_score for r in ranked] == [h["score"] for h in hits]

    def test_ties_follow_insertion_order(self):
        snapshot = {cid: _chunk(cid, "same words here", [1.0, 1.0]) for cid in ("x", "y", "z")}
        index = BM25Corpus()
        for cid in ("x", "y", "z"):
            index.add_chunk("same words here", chunk_id=cid)
        ranked = HybridRanker().rank(index.search_all("words"), [1.0, 1.0], snapshot)
        assert [r.chunk_id for r in ranked] == ["x", "y", "z"]

    def test_scope_filter_after_scoring(self, index, snapshot):
        hits = index.search_all("cat")
        unscoped = {r.chunk_id: r for r in HybridRanker().rank(hits, [1.0, 0.0], snapshot)}
        scoped = HybridRanker().rank(hits, [1.0, 0.0], snapshot, scope="s1")

        assert {r.chunk_id for r in scoped} == {"a", "c"}
        for r in scoped:
            assert r.combined_score == unscoped[r.chunk_id].combined_score

    def test_custom_scope_field(self, index):
        snapshot = {
            "a": Chunk(chunk_id="a", document_id="d", text="The cat sat on the mat", metadata={"session": "x"}),
            "b": Chunk(chunk_id="b", document_id="d", text="Dogs are loyal companions", metadata={"session": "y"}),
        }
        ranked = HybridRanker(scope_field="session").rank(index.search_all("cat"), None, snapshot, scope="y")
        assert [r.chunk_id for r in ranked] == ["b"]

    def test_chunk_missing_from_snapshot_is_skipped(self, index, snapshot):
        del snapshot["b"]
        ranked = HybridRanker().rank(index.search_all("cat"), [1.0, 0.0], snapshot)
        assert {r.chunk_id for r in ranked} == {"a", "c"}

    def test_mismatched_vector_gets_no_vector_score(self, index, snapshot):
        ranked = HybridRanker().rank(index.search_all("cat"), [1.0, 0.0, 0.0], snapshot)
        assert all(r.vector_score is None for r in ranked)
