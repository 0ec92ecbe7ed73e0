"""
Ingestion service using Repository pattern.
Coordinates file storage, text extraction, chunking and chunk persistence.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from adapters.storage_adapter import BaseStorageAdapter
from entities.document import (
    Document,
    DocumentCreate,
    DocumentKind,
    DocumentUpdate,
    IngestResult,
    TextStatus,
)
from entities.framework import ActiveFramework
from repositories.document_repository import DocumentRepository
from services.chunking import chunk_text
from services.document_analysis_service import DocumentAnalysisService
from services.text_extraction import extract_text
from common.exceptions import (
    BaseComplianceException,
    ExtractionException,
    FileProcessingException,
    ValidationException,
)
from common.logging import get_logger, log_business_event, log_performance

logger = get_logger("ingestion_service")


@dataclass
class UploadedFile:
    filename: str
    data: bytes
    mime_type: Optional[str] = None


@dataclass
class UploadBatchResult:
    """Outcome of one upload request; failures are reported per file."""
    conversation_id: str
    kind: DocumentKind
    documents: List[Document] = field(default_factory=list)
    ingest_results: List[IngestResult] = field(default_factory=list)
    failed_uploads: Dict[str, str] = field(default_factory=dict)
    analysis_errors: Dict[str, str] = field(default_factory=dict)


class IngestionService:
    def __init__(
        self,
        document_repository: DocumentRepository,
        storage: BaseStorageAdapter,
        analysis_service: Optional[DocumentAnalysisService] = None,
        chunk_size: int = 1200,
        chunk_overlap: int = 200,
    ):
        self.document_repository = document_repository
        self.storage = storage
        self.analysis_service = analysis_service
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def ingest_document(self, document_id: str) -> IngestResult:
        """
        Extract, chunk and persist the text of a stored document.

        Re-ingesting replaces all previous chunks. When no text can be read the
        document is marked no_readable_text and keeps zero chunks.
        """
        document = await self.document_repository.get_or_raise(document_id)
        start_time = time.time()
        data = await self.storage.read_bytes(document.storage_path)

        try:
            text = await asyncio.get_running_loop().run_in_executor(
                None, extract_text, data, document.mime_type, document.original_name
            )
        except ExtractionException as e:
            logger.warning(f"No readable text in {document.original_name} ({document.id}): {e.detail}")
            await self.document_repository.write_chunks(document.id, [])
            await self.document_repository.update(
                document.id,
                DocumentUpdate(text_status=TextStatus.NO_READABLE_TEXT, chunk_count=0),
            )
            log_performance(
                operation="document_ingestion",
                duration_ms=(time.time() - start_time) * 1000,
                success=False,
                error=e.error_code,
            )
            return IngestResult(document_id=document.id, ok=False, chunks=0, message=e.detail)

        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        written = await self.document_repository.write_chunks(document.id, list(enumerate(chunks)))
        text_status = TextStatus.OK if written else TextStatus.NO_READABLE_TEXT
        await self.document_repository.update(
            document.id,
            DocumentUpdate(text_status=text_status, chunk_count=written),
        )

        duration_ms = (time.time() - start_time) * 1000
        log_performance("document_ingestion", duration_ms, success=True, item_count=written)
        log_business_event(
            event_type="DOCUMENT_INGESTED",
            entity_type="document",
            entity_id=document.id,
            action="ingest",
            details={"chunks": written, "kind": document.kind.value, "text_status": text_status.value},
        )
        logger.info(f"Ingested {document.original_name}: {written} chunks (id={document.id})")
        return IngestResult(
            document_id=document.id,
            ok=written > 0,
            chunks=written,
            message=None if written else "Document contains no readable text",
        )

    async def upload_documents(
        self,
        conversation_id: str,
        kind: DocumentKind,
        files: Sequence[UploadedFile],
        active_framework: Optional[ActiveFramework] = None,
        language: Optional[str] = None,
    ) -> UploadBatchResult:
        """
        Store, ingest and (for customer evidence) analyze a batch of files.

        A failure on one file is logged and reported without aborting the
        rest of the batch.
        """
        if not files:
            raise ValidationException(detail="At least one file is required", field="files")

        result = UploadBatchResult(conversation_id=conversation_id, kind=kind)

        for upload in files:
            try:
                path = await self.storage.save(conversation_id, upload.filename, upload.data)
                document = await self.document_repository.create(
                    DocumentCreate(
                        conversation_id=conversation_id,
                        kind=kind,
                        original_name=upload.filename,
                        mime_type=upload.mime_type,
                        size_bytes=len(upload.data),
                        storage_path=path,
                    )
                )
            except BaseComplianceException as e:
                logger.error(f"Upload of {upload.filename} failed: {e.detail}")
                result.failed_uploads[upload.filename] = e.detail
                continue
            except Exception as e:
                logger.error(f"Upload of {upload.filename} failed: {e}", exc_info=True)
                result.failed_uploads[upload.filename] = "Unexpected error while storing file"
                continue
            result.documents.append(document)

        for document in result.documents:
            try:
                ingest_result = await self.ingest_document(document.id)
            except BaseComplianceException as e:
                logger.error(f"Ingestion of {document.id} failed: {e.detail}", exc_info=True)
                ingest_result = IngestResult(document_id=document.id, ok=False, message=e.detail)
            except Exception as e:
                logger.error(f"Ingestion of {document.id} failed: {e}", exc_info=True)
                ingest_result = IngestResult(
                    document_id=document.id, ok=False, message="Unexpected error during ingestion"
                )
            result.ingest_results.append(ingest_result)

        if kind == DocumentKind.CUSTOMER and self.analysis_service is not None:
            for ingest_result in result.ingest_results:
                if not ingest_result.ok:
                    continue
                try:
                    await self.analysis_service.analyze_document(
                        ingest_result.document_id, active_framework, language
                    )
                except BaseComplianceException as e:
                    logger.error(f"Analysis of {ingest_result.document_id} failed: {e.detail}")
                    result.analysis_errors[ingest_result.document_id] = e.detail
                except Exception as e:
                    logger.error(f"Analysis of {ingest_result.document_id} failed: {e}", exc_info=True)
                    result.analysis_errors[ingest_result.document_id] = "Unexpected error during analysis"

        if result.documents:
            refreshed = await self.document_repository.list_by_conversation(conversation_id, kind)
            uploaded_ids = {d.id for d in result.documents}
            result.documents = [d for d in refreshed if d.id in uploaded_ids]

        log_business_event(
            event_type="DOCUMENTS_UPLOADED",
            entity_type="conversation",
            entity_id=conversation_id,
            action="upload",
            details={
                "kind": kind.value,
                "uploaded": len(result.documents),
                "failed": len(result.failed_uploads),
                "analysis_errors": len(result.analysis_errors),
            },
        )
        return result

    async def delete_document(self, document_id: str) -> Document:
        """Remove a document, its chunks (cascade) and its stored file."""
        document = await self.document_repository.get_or_raise(document_id)
        await self.document_repository.delete(document.id)
        try:
            await self.storage.delete(document.storage_path)
        except FileProcessingException as e:
            logger.warning(f"Stored file for {document.id} could not be removed: {e.detail}")

        log_business_event(
            event_type="DOCUMENT_DELETED",
            entity_type="document",
            entity_id=document.id,
            action="delete",
            details={"conversation_id": document.conversation_id, "kind": document.kind.value},
        )
        return document


def create_ingestion_service(
    document_repository: DocumentRepository,
    storage: BaseStorageAdapter,
    analysis_service: Optional[DocumentAnalysisService] = None,
    chunk_size: int = 1200,
    chunk_overlap: int = 200,
) -> IngestionService:
    return IngestionService(document_repository, storage, analysis_service, chunk_size, chunk_overlap)
