"""
Search Engine.
Keyword and hybrid (vector + keyword) retrieval over indexed documents.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nova.config import get_settings
from nova.core.exceptions import ValidationException
from nova.db.repositories.documents import DocumentRepository
from nova.services.embedding import EmbeddingService
from nova.services.search.ranking import (
    KeywordRanker,
    cosine_similarity,
    hybrid_score,
    query_terms,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class SearchResult:
    """Single ranked document."""
    id: str
    connector_id: str
    source_type: str
    title: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None
    keyword_rank: Optional[float] = None
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "connectorId": self.connector_id,
            "sourceType": self.source_type,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "keywordRank": self.keyword_rank,
            "score": self.score,
        }
        if self.similarity is not None:
            data["similarity"] = self.similarity
        return data


@dataclass
class SearchResponse:
    results: List[SearchResult]
    search_type: str  # "hybrid" or "keyword"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "searchType": self.search_type,
        }


def _to_result(document, keyword_rank: float, similarity: Optional[float] = None) -> SearchResult:
    return SearchResult(
        id=document.id,
        connector_id=document.connector_id,
        source_type=document.source_type,
        title=document.title,
        content=document.content,
        metadata=document.doc_metadata or {},
        similarity=similarity,
        keyword_rank=keyword_rank,
    )


class SearchEngine:
    """
    Ranked retrieval with graceful degradation.

    Hybrid mode is used only when the query can be embedded; any hybrid
    failure falls back to keyword mode. Connector and owner scoping is
    applied inside the candidate queries.
    """

    def __init__(
        self,
        repository: Optional[DocumentRepository] = None,
        embedding_service: Optional[EmbeddingService] = None,
        agent_logger=None,
        timeout_seconds: Optional[float] = None
    ):
        self.repository = repository or DocumentRepository()
        self.embedding_service = embedding_service or EmbeddingService()
        self.agent_logger = agent_logger
        self.timeout_seconds = timeout_seconds or settings.SEARCH_TIMEOUT_SECONDS

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        connector_id: Optional[str] = None,
        owner_user_id: Optional[str] = None
    ) -> SearchResponse:
        """
        Search indexed documents.

        Args:
            query: Free-text query
            limit: Maximum results (SEARCH_DEFAULT_LIMIT when omitted)
            connector_id: Restrict to one connector
            owner_user_id: Restrict to one owner's documents

        Returns:
            SearchResponse; never raises for provider or query failures

        Raises:
            ValidationException: limit is not a positive integer
        """
        if limit is None:
            limit = settings.SEARCH_DEFAULT_LIMIT
        elif limit < 1:
            raise ValidationException(
                "limit must be a positive integer", details={"limit": limit}
            )
        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                self._search(query, limit, connector_id, owner_user_id),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"Search timed out after {self.timeout_seconds}s: {query!r}")
            response = SearchResponse(results=[], search_type="keyword")

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Search '{query}' ({response.search_type}) returned "
            f"{len(response.results)} results in {latency_ms:.0f}ms"
        )

        if self.agent_logger:
            await self.agent_logger.log_search(
                query=query,
                search_type=response.search_type,
                result_count=len(response.results),
                connector_id=connector_id,
                latency_ms=latency_ms
            )

        return response

    async def _search(
        self,
        query: str,
        limit: int,
        connector_id: Optional[str],
        owner_user_id: Optional[str]
    ) -> SearchResponse:
        terms = query_terms(query)

        query_embedding = None
        if self.embedding_service.is_available:
            query_embedding = await self.embedding_service.embed(query)

        if query_embedding:
            try:
                results = await self.hybrid_search(
                    query_embedding, terms, limit, connector_id, owner_user_id
                )
                return SearchResponse(results=results, search_type="hybrid")
            except Exception as e:
                logger.warning(f"Hybrid search failed, falling back to keyword: {e}")

        try:
            results = await self.keyword_search(terms, limit, connector_id, owner_user_id)
        except Exception as e:
            logger.error(f"Keyword search failed: {e}")
            results = []

        return SearchResponse(results=results, search_type="keyword")

    async def keyword_search(
        self,
        terms: List[str],
        limit: int,
        connector_id: Optional[str] = None,
        owner_user_id: Optional[str] = None
    ) -> List[SearchResult]:
        """Documents containing every term, ranked by BM25 relevance."""
        if not terms:
            return []

        candidates = await self.repository.keyword_candidates(
            terms, connector_id=connector_id, owner_user_id=owner_user_id
        )
        if not candidates:
            return []

        ranks = KeywordRanker().fit(
            [(doc.title, doc.content) for doc in candidates]
        ).scores(terms)

        results = [
            _to_result(doc, rank)
            for doc, rank in zip(candidates, ranks)
            if rank > 0
        ]
        results.sort(key=lambda r: r.keyword_rank, reverse=True)
        for result in results:
            result.score = result.keyword_rank
        return results[:limit]

    async def hybrid_search(
        self,
        query_embedding: List[float],
        terms: List[str],
        limit: int,
        connector_id: Optional[str] = None,
        owner_user_id: Optional[str] = None
    ) -> List[SearchResult]:
        """
        Embedded documents ranked by 0.7 * similarity + 0.3 * min(keyword_rank, 1).

        Raises:
            ValueError: stored and query embedding dimensions differ
        """
        candidates = await self.repository.vector_candidates(
            connector_id=connector_id, owner_user_id=owner_user_id
        )
        if not candidates:
            return []

        ranks = KeywordRanker().fit(
            [(doc.title, doc.content) for doc in candidates]
        ).scores(terms)

        results = []
        for doc, rank in zip(candidates, ranks):
            similarity = cosine_similarity(query_embedding, doc.embedding)
            result = _to_result(doc, rank, similarity)
            result.score = hybrid_score(similarity, rank)
            results.append(result)

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]
