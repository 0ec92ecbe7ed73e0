import time
from typing import Any, List, Optional
from fastapi import APIRouter, File, Form, Path, Query, UploadFile, status

from dependencies import ActiveFrameworkDep, DocumentAnalysisServiceDep, IngestionServiceDep
from entities.document import DocumentKind
from services.ingestion_service import UploadedFile
from services.schemas import ReplyLanguage, SubmitEvidenceRequest
from config.config import settings
from common.exceptions import InvalidFileException
from common.logging import get_logger, log_performance
from common.validation import validate_uuid
from common.responses import create_success_response

router = APIRouter(prefix="/documents", tags=["Documents"])
logger = get_logger("documents_api")


@router.post("/upload",
    summary="Upload documents to a conversation",
    description="Stores, extracts and chunks each file. Customer evidence is also matched to a control.",
    status_code=status.HTTP_201_CREATED,
)
async def upload_documents(
    ingestion_service: IngestionServiceDep,
    active_framework: ActiveFrameworkDep,
    conversation_id: str = Form(..., description="Conversation UUID"),
    kind: DocumentKind = Form(DocumentKind.CUSTOMER, description="CUSTOMER evidence or STANDARD reference"),
    language: Optional[ReplyLanguage] = Form(None, description="Reply language for analysis notes"),
    files: List[UploadFile] = File(..., description="Files to upload"),
) -> Any:
    start_time = time.time()
    conversation_id = validate_uuid(conversation_id, "conversation_id")

    uploads: List[UploadedFile] = []
    for upload in files:
        data = await upload.read()
        if len(data) > settings.max_upload_bytes:
            raise InvalidFileException(
                detail=f"File exceeds the {settings.max_upload_bytes} byte limit",
                filename=upload.filename,
                file_type=upload.content_type,
            )
        uploads.append(UploadedFile(filename=upload.filename or "document", data=data, mime_type=upload.content_type))

    result = await ingestion_service.upload_documents(
        conversation_id, kind, uploads, active_framework, language
    )

    log_performance(
        operation="upload_documents",
        duration_ms=(time.time() - start_time) * 1000,
        success=True,
        item_count=len(result.documents),
    )
    return create_success_response(
        data={
            "conversation_id": conversation_id,
            "kind": kind,
            "documents": result.documents,
            "ingestion": result.ingest_results,
            "failed_uploads": result.failed_uploads,
            "analysis_errors": result.analysis_errors,
        },
        status_code=status.HTTP_201_CREATED,
    )


@router.get("",
    summary="List documents of a conversation",
    description="Documents with their match status, or an evaluation hint when they have none.",
)
async def list_documents(
    analysis_service: DocumentAnalysisServiceDep,
    active_framework: ActiveFrameworkDep,
    conversation_id: str = Query(..., description="Conversation UUID"),
    kind: Optional[DocumentKind] = Query(None, description="Filter by document kind"),
) -> Any:
    conversation_id = validate_uuid(conversation_id, "conversation_id")
    documents = await analysis_service.list_documents(conversation_id, kind, active_framework)
    return create_success_response(data=documents, meta={"count": len(documents)})


@router.post("/submit",
    summary="Submit documents as evidence for a control",
    description="Marks the documents as reviewed and submitted with status COMPLIANT or PARTIAL.",
)
async def submit_evidence(
    req: SubmitEvidenceRequest,
    analysis_service: DocumentAnalysisServiceDep,
) -> Any:
    document_ids = [validate_uuid(d, "document_ids") for d in req.document_ids]
    documents = await analysis_service.submit_evidence(document_ids, req.control_code, req.status.value, req.note)
    return create_success_response(data=documents)


@router.post("/{document_id}/reingest",
    summary="Re-extract and re-chunk a document",
    description="Replaces every chunk of the document in one transaction.",
)
async def reingest_document(
    ingestion_service: IngestionServiceDep,
    document_id: str = Path(..., description="Document UUID"),
) -> Any:
    document_id = validate_uuid(document_id, "document_id")
    result = await ingestion_service.ingest_document(document_id)
    return create_success_response(data=result)


@router.post("/{document_id}/reevaluate",
    summary="Re-run control matching for a customer document",
)
async def reevaluate_document(
    analysis_service: DocumentAnalysisServiceDep,
    active_framework: ActiveFrameworkDep,
    document_id: str = Path(..., description="Document UUID"),
    language: Optional[ReplyLanguage] = Query(None),
) -> Any:
    document_id = validate_uuid(document_id, "document_id")
    document = await analysis_service.analyze_document(document_id, active_framework, language)
    return create_success_response(data=document)


@router.delete("/{document_id}",
    summary="Delete a document",
    description="Removes the document, its chunks and its stored file.",
)
async def delete_document(
    ingestion_service: IngestionServiceDep,
    document_id: str = Path(..., description="Document UUID"),
) -> Any:
    document_id = validate_uuid(document_id, "document_id")
    deleted = await ingestion_service.delete_document(document_id)
    logger.info(f"Deleted document {deleted.id} ({deleted.original_name})")
    return create_success_response(data={"id": deleted.id, "deleted": True})
