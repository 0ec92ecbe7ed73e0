"""
Document and chunk repository implementation using Supabase.
"""

from typing import List, Optional, Sequence, Tuple

from repositories.base import SupabaseRepository, chunked
from entities.document import (
    Document,
    DocumentCreate,
    DocumentKind,
    DocumentUpdate,
    ScopedChunk,
)
from common.exceptions import ResourceNotFoundException
from common.logging import get_logger

logger = get_logger("document_repository")


class DocumentRepository(SupabaseRepository[Document]):
    """Documents plus their extracted chunks (the document store)."""

    def __init__(
        self,
        supabase_client,
        table_name: str = "documents",
        chunks_table: str = "document_chunks",
        chunks_view: str = "document_chunks_with_document",
        batch_size: int = 900,
    ):
        super().__init__(supabase_client, table_name, batch_size)
        self.chunks_table = chunks_table
        self.chunks_view = chunks_view

    async def create(self, document_create: DocumentCreate) -> Document:
        try:
            data = document_create.model_dump(mode="json")
            data = self._add_audit_fields(data, is_update=False)
            result = self.supabase.table(self.table_name).insert(data).execute()
        except Exception as e:
            raise self._database_error("create", e, filename=document_create.original_name)

        if not result.data:
            raise self._database_error(
                "create", RuntimeError("insert returned no rows"), filename=document_create.original_name
            )
        created = Document.from_dict(result.data[0])
        logger.info(f"Created document {created.id} ({created.original_name}) in {created.conversation_id}")
        return created

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        try:
            res = self.supabase.table(self.table_name).select("*").eq("id", document_id).execute()
        except Exception as e:
            raise self._database_error("get", e, id=document_id)
        if not res.data:
            return None
        return Document.from_dict(res.data[0])

    async def get_or_raise(self, document_id: str) -> Document:
        document = await self.get_by_id(document_id)
        if document is None:
            raise ResourceNotFoundException(resource_type="Document", resource_id=document_id)
        return document

    async def update(self, document_id: str, update_data: DocumentUpdate) -> Document:
        # exclude_unset keeps explicit None values (e.g. clearing a match)
        update_dict = update_data.model_dump(mode="json", exclude_unset=True)
        update_dict = self._add_audit_fields(update_dict, is_update=True)
        try:
            res = self.supabase.table(self.table_name).update(update_dict).eq("id", document_id).execute()
        except Exception as e:
            raise self._database_error("update", e, id=document_id)
        if not res.data:
            raise ResourceNotFoundException(resource_type="Document", resource_id=document_id)
        return Document.from_dict(res.data[0])

    async def list_by_conversation(
        self,
        conversation_id: str,
        kind: Optional[DocumentKind] = None,
    ) -> List[Document]:
        def build_query():
            q = self.supabase.table(self.table_name).select("*").eq("conversation_id", conversation_id)
            if kind is not None:
                q = q.eq("kind", kind.value)
            return self._apply_ordering(q, "-created_at").order("id")

        rows = self._fetch_pages(build_query, "list", conversation_id=conversation_id)
        return [Document.from_dict(row) for row in rows]

    async def list_by_match_controls(self, control_codes: Sequence[str]) -> List[Document]:
        """All documents matched to any of the given control codes, in bounded batches."""
        codes = sorted({c for c in control_codes if c})
        documents: List[Document] = []
        for batch in chunked(codes, self.batch_size):
            rows = self._fetch_pages(
                lambda: (
                    self.supabase.table(self.table_name)
                    .select("*")
                    .in_("match_control_id", batch)
                    .order("id")
                ),
                "list_by_match_controls",
                batch_size=len(batch),
            )
            documents.extend(Document.from_dict(row) for row in rows)
        return documents

    async def write_chunks(self, document_id: str, chunks: Sequence[Tuple[int, str]]) -> int:
        """Replace every chunk of a document atomically; returns the new chunk count."""
        payload = [{"chunk_index": index, "text": text} for index, text in chunks]
        try:
            res = self.supabase.rpc(
                "replace_document_chunks",
                {"p_document_id": document_id, "p_chunks": payload},
            ).execute()
        except Exception as e:
            raise self._database_error("write_chunks", e, id=document_id, chunk_count=len(payload))
        written = res.data if isinstance(res.data, int) else len(payload)
        logger.debug(f"Replaced chunks for document {document_id}: {written}")
        return written

    async def read_chunks(self, document_id: str, limit: int, ascending: bool = True) -> List[str]:
        try:
            res = (
                self.supabase.table(self.chunks_table)
                .select("chunk_index,text")
                .eq("document_id", document_id)
                .order("chunk_index", desc=not ascending)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise self._database_error("read_chunks", e, id=document_id)
        return [row["text"] for row in res.data or []]

    async def list_recent_chunks(self, scope_id: str, kind: DocumentKind, limit: int) -> List[ScopedChunk]:
        """Newest chunks in a conversation for one document kind (bounded scan)."""
        try:
            res = (
                self.supabase.table(self.chunks_view)
                .select("*")
                .eq("conversation_id", scope_id)
                .eq("kind", kind.value)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise self._database_error("list_recent_chunks", e, conversation_id=scope_id, kind=kind.value)
        return [ScopedChunk.from_dict(row) for row in res.data or []]
