"""Tests for keyword and hybrid search."""

import asyncio

import pytest

from nova.core.exceptions import ValidationException
from nova.db.repositories.documents import DocumentRepository
from nova.services.indexing import IndexingPipeline
from nova.services.search import SearchEngine
from nova.services.search.ranking import (
    KeywordRanker,
    cosine_similarity,
    hybrid_score,
    query_terms,
)
from tests.fakes import FakeEmbedder

GUIDE = {"title": "Guide", "content": "Reset your password by opening Settings and choosing Security."}
RESET = {"title": "Password reset", "content": "How to reset your password"}
HOLIDAY = {"title": "Holiday policy", "content": "Vacation days and public holidays"}
NOTES = {"title": "Notes", "content": "reset password notes"}


def embed_text(doc):
    return f"{doc['title']}\n\n{doc['content']}"


async def index(embedder, connector_id, documents, owner_user_id=None):
    pipeline = IndexingPipeline(repository=DocumentRepository(), embedding_service=embedder)
    return await pipeline.index(connector_id, connector_id, documents, owner_user_id=owner_user_id)


class TestRanking:
    """Test the scoring helpers."""

    def test_query_terms_drop_stop_words_and_duplicates(self):
        assert query_terms("How do I reset the password, reset it?") == ["reset", "password"]

    def test_hybrid_score_clamps_keyword_rank(self):
        assert hybrid_score(1.0, 5.0) == pytest.approx(1.0)
        assert hybrid_score(0.5, 0.5) == pytest.approx(0.35 + 0.15)
        assert hybrid_score(0.0, 0.0) == 0.0

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_cosine_similarity_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 0, 0], [1, 0])

    def test_keyword_ranker_prefers_title_matches(self):
        ranker = KeywordRanker().fit([
            ("Password reset", "steps for your account"),
            ("Account", "the password can be changed here"),
            ("Holiday policy", "vacation days"),
        ])
        scores = ranker.scores(["password"])
        assert scores[0] > scores[1] > 0
        assert scores[2] == 0

    def test_keyword_ranker_prefix_match(self):
        scores = KeywordRanker().fit([("Indexing", "how documents get indexed")]).scores(["index"])
        assert scores[0] > 0

    def test_keyword_ranker_empty(self):
        assert KeywordRanker().fit([]).scores(["x"]) == []
        assert KeywordRanker().fit([("a", "b")]).scores([]) == [0.0]


class TestSearchEngine:
    """Test SearchEngine.search()."""

    def test_guide_keyword_scenario(self, run_db):
        embedder = FakeEmbedder(available=False)

        async def scenario():
            await index(embedder, "file", [GUIDE])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("reset password")

        response = run_db(scenario)
        assert response.search_type == "keyword"
        assert [r.title for r in response.results] == ["Guide"]
        assert response.results[0].keyword_rank > 0
        assert response.results[0].similarity is None

        payload = response.to_dict()
        assert payload["searchType"] == "keyword"
        assert payload["results"][0]["keywordRank"] > 0
        assert payload["results"][0]["connectorId"] == "file"
        assert "similarity" not in payload["results"][0]

    def test_keyword_requires_every_term(self, run_db):
        embedder = FakeEmbedder(available=False)

        async def scenario():
            await index(embedder, "file", [GUIDE, HOLIDAY])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("password holidays")

        assert run_db(scenario).results == []

    def test_keyword_limit_and_order(self, run_db):
        embedder = FakeEmbedder(available=False)

        async def scenario():
            await index(embedder, "file", [GUIDE, RESET, NOTES])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("password", limit=2)

        results = run_db(scenario).results
        assert len(results) == 2
        assert results[0].keyword_rank >= results[1].keyword_rank

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit_rejected(self, limit):
        engine = SearchEngine(repository=DocumentRepository(), embedding_service=FakeEmbedder(available=False))
        with pytest.raises(ValidationException):
            asyncio.run(engine.search("password", limit=limit))

    def test_hybrid_ranking(self, run_db):
        embedder = FakeEmbedder(vectors={
            embed_text(RESET): [1.0, 0.0],
            embed_text(HOLIDAY): [0.0, 1.0],
            "reset password": [1.0, 0.0],
        })

        async def scenario():
            await index(embedder, "file", [RESET, HOLIDAY, NOTES])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("reset password")

        response = run_db(scenario)
        assert response.search_type == "hybrid"
        # Notes has no embedding and is not a vector candidate
        assert [r.title for r in response.results] == ["Password reset", "Holiday policy"]

        top = response.results[0]
        assert top.similarity == pytest.approx(1.0)
        assert top.score == pytest.approx(0.7 + 0.3 * min(top.keyword_rank, 1.0))
        assert response.results[1].score == pytest.approx(0.0)
        assert response.to_dict()["results"][0]["similarity"] == pytest.approx(1.0)

    def test_hybrid_failure_falls_back_to_keyword(self, run_db):
        """A dimension mismatch fails hybrid ranking without failing the search."""
        embedder = FakeEmbedder(vectors={
            embed_text(GUIDE): [1.0, 0.0],
            "reset password": [1.0, 0.0, 0.0],
        })

        async def scenario():
            await index(embedder, "file", [GUIDE])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("reset password")

        response = run_db(scenario)
        assert response.search_type == "keyword"
        assert [r.title for r in response.results] == ["Guide"]

    def test_no_query_embedding_uses_keyword(self, run_db):
        embedder = FakeEmbedder(vectors={embed_text(GUIDE): [1.0, 0.0]})

        async def scenario():
            await index(embedder, "file", [GUIDE])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("reset password")

        response = run_db(scenario)
        assert response.search_type == "keyword"
        assert response.results[0].title == "Guide"

    def test_owner_scoping(self, run_db):
        embedder = FakeEmbedder(available=False)
        private = {"title": "Payroll", "content": "Reset your password for payroll access"}

        async def scenario():
            await index(embedder, "file", [GUIDE], owner_user_id="alice")
            await index(embedder, "file", [private], owner_user_id="bob")
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            alice = await engine.search("reset password", owner_user_id="alice")
            bob = await engine.search("reset password", owner_user_id="bob")
            return alice, bob

        alice, bob = run_db(scenario)
        assert [r.title for r in alice.results] == ["Guide"]
        assert [r.title for r in bob.results] == ["Payroll"]

    def test_connector_filter(self, run_db):
        embedder = FakeEmbedder(available=False)

        async def scenario():
            await index(embedder, "file", [GUIDE])
            await index(embedder, "confluence", [RESET])
            engine = SearchEngine(repository=DocumentRepository(), embedding_service=embedder)
            return await engine.search("password", connector_id="confluence")

        assert [r.title for r in run_db(scenario).results] == ["Password reset"]

    def test_timeout_returns_empty_keyword_response(self):
        class SlowEmbedder(FakeEmbedder):
            async def embed(self, text):
                await asyncio.sleep(5)

        engine = SearchEngine(
            repository=DocumentRepository(),
            embedding_service=SlowEmbedder(),
            timeout_seconds=0.01
        )
        response = asyncio.run(engine.search("reset password"))
        assert response.search_type == "keyword"
        assert response.results == []

    def test_storage_failure_returns_empty(self):
        """Without a database the keyword query fails and is absorbed."""
        engine = SearchEngine(
            repository=DocumentRepository(),
            embedding_service=FakeEmbedder(available=False)
        )
        response = asyncio.run(engine.search("reset password"))
        assert response.results == []
        assert response.search_type == "keyword"
