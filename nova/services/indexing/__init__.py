"""
Indexing Pipeline.
Per-connector ingestion: sanitize -> hash -> dedupe -> embed -> store.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from nova.config import get_settings
from nova.core.exceptions import DocumentConflictException, ValidationException
from nova.db.repositories.documents import DocumentRepository
from nova.services.embedding import EmbeddingService
from nova.services.indexing.content import sanitize, content_hash, truncate

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class IndexResult:
    """Outcome for one document of a batch."""
    title: str
    status: str  # "indexed", "skipped", "error"
    id: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    has_embedding: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title, "status": self.status}
        if self.id:
            data["id"] = self.id
        if self.error:
            data["error"] = self.error
        if self.reason:
            data["reason"] = self.reason
        if self.status == "indexed":
            data["hasEmbedding"] = self.has_embedding
        return data


class IndexingPipeline:
    """
    Ingests batches of raw connector documents.

    Documents in a batch are processed sequentially and in order. A failure
    on one document is recorded in its result and never aborts the batch.
    """

    def __init__(
        self,
        repository: Optional[DocumentRepository] = None,
        embedding_service: Optional[EmbeddingService] = None,
        agent_logger=None
    ):
        self.repository = repository or DocumentRepository()
        self.embedding_service = embedding_service or EmbeddingService()
        self.agent_logger = agent_logger
        self._hash_algorithm = settings.CONTENT_HASH_ALGORITHM
        self._max_content = settings.DOCUMENT_MAX_CONTENT_CHARS

    async def index(
        self,
        connector_id: str,
        source_type: str,
        documents: List[Dict[str, Any]],
        owner_user_id: Optional[str] = None
    ) -> List[IndexResult]:
        """
        Index a batch of documents.

        Args:
            connector_id: Connector the documents come from
            source_type: Kind of source (file, web, email, ...)
            documents: Raw documents {title, content, source_id?, metadata?}
            owner_user_id: Owner; None for globally owned documents

        Returns:
            One IndexResult per input document, in input order

        Raises:
            ValidationException: missing connector/source type or empty batch
        """
        if not connector_id or not source_type:
            raise ValidationException(
                "connectorId and sourceType are required",
                details={"connector_id": connector_id, "source_type": source_type}
            )
        if not documents:
            raise ValidationException("documents must be a non-empty list")

        start_time = time.time()
        logger.info(f"Indexing {len(documents)} documents for connector {connector_id}")

        results = []
        for raw in documents:
            results.append(
                await self._index_one(connector_id, source_type, raw, owner_user_id)
            )

        latency_ms = (time.time() - start_time) * 1000
        indexed = sum(1 for r in results if r.status == "indexed")
        logger.info(
            f"Indexed {indexed}/{len(results)} documents for {connector_id} "
            f"in {latency_ms:.0f}ms"
        )

        if self.agent_logger:
            await self.agent_logger.log_index_batch(
                connector_id=connector_id,
                source_type=source_type,
                results=[r.to_dict() for r in results],
                owner_user_id=owner_user_id,
                latency_ms=latency_ms
            )

        return results

    async def _index_one(
        self,
        connector_id: str,
        source_type: str,
        raw: Dict[str, Any],
        owner_user_id: Optional[str]
    ) -> IndexResult:
        raw = raw if isinstance(raw, dict) else {}
        title = str(raw.get("title") or "")

        try:
            title = sanitize(raw.get("title"))
            content = sanitize(raw.get("content"))
            fingerprint = content_hash(content, self._hash_algorithm)

            if await self.repository.exists(connector_id, fingerprint, owner_user_id):
                logger.debug(f"Skipping duplicate document: {title}")
                return IndexResult(title=title, status="skipped", reason="duplicate")

            embedding = await self.embedding_service.embed(f"{title}\n\n{content}")

            document_id = await self.repository.insert({
                "connector_id": connector_id,
                "source_type": source_type,
                "source_id": raw.get("source_id") or raw.get("sourceId"),
                "title": title,
                "content": truncate(content, self._max_content),
                "content_hash": fingerprint,
                "metadata": raw.get("metadata") or {},
                "embedding": embedding,
                "owner_user_id": owner_user_id,
            })

            return IndexResult(
                title=title,
                status="indexed",
                id=document_id,
                has_embedding=embedding is not None
            )

        except DocumentConflictException:
            # Lost a race with a concurrent ingest of the same content
            return IndexResult(title=title, status="skipped", reason="duplicate")
        except Exception as e:
            logger.error(f"Error indexing document '{title}': {e}")
            return IndexResult(title=title, status="error", error=str(e))
