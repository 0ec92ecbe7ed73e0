"""
Chunk retrieval: bounded scan of recent chunks in a conversation, ranked by keyword relevance.
"""

import time
from typing import List, Optional

from entities.document import ChunkHit, DocumentKind
from repositories.document_repository import DocumentRepository
from services.relevance import DEFAULT_SCORING, ScoringParams, score_chunk, tokenize
from common.exceptions import ValidationException
from common.logging import get_logger, log_performance

logger = get_logger("retrieval_service")


class RetrievalService:
    """Read-only ranked retrieval over persisted chunks."""

    def __init__(
        self,
        document_repository: DocumentRepository,
        scoring: ScoringParams = DEFAULT_SCORING,
        default_top_k: int = 5,
        default_max_scan: int = 300,
    ):
        self.document_repository = document_repository
        self.scoring = scoring
        self.default_top_k = default_top_k
        self.default_max_scan = default_max_scan

    async def retrieve(
        self,
        scope_id: str,
        kind: DocumentKind,
        query: str,
        top_k: Optional[int] = None,
        max_scan: Optional[int] = None,
    ) -> List[ChunkHit]:
        """
        Return at most top_k hits with score > 0, highest score first.

        Only the max_scan most recently created chunks of the given kind in
        the conversation are considered. A query made only of stop words
        returns an empty list.
        """
        top_k = self.default_top_k if top_k is None else top_k
        max_scan = self.default_max_scan if max_scan is None else max_scan
        if top_k <= 0 or max_scan <= 0:
            raise ValidationException(
                detail="top_k and max_scan must be positive",
                field="top_k" if top_k <= 0 else "max_scan",
                value=top_k if top_k <= 0 else max_scan,
            )

        tokens = tokenize(query)
        if not tokens:
            logger.debug(f"Query has no searchable tokens: {query!r}")
            return []

        start_time = time.time()
        chunks = await self.document_repository.list_recent_chunks(scope_id, kind, max_scan)

        hits = [
            ChunkHit(
                document_id=chunk.document_id,
                doc_name=chunk.doc_name,
                chunk_index=chunk.chunk_index,
                text=chunk.text,
                score=score_chunk(tokens, chunk.text, self.scoring),
                kind=chunk.kind,
            )
            for chunk in chunks
        ]
        # sorted() is stable, so equal scores keep load order (newest first).
        ranked = sorted((h for h in hits if h.score > 0), key=lambda h: h.score, reverse=True)[:top_k]

        log_performance(
            operation="chunk_retrieval",
            duration_ms=(time.time() - start_time) * 1000,
            success=True,
            scanned=len(chunks),
            item_count=len(ranked),
            kind=kind.value,
        )
        return ranked


def create_retrieval_service(
    document_repository: DocumentRepository,
    scoring: ScoringParams = DEFAULT_SCORING,
    default_top_k: int = 5,
    default_max_scan: int = 300,
) -> RetrievalService:
    return RetrievalService(document_repository, scoring, default_top_k, default_max_scan)
