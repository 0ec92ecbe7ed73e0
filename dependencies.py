"""
Dependency injection setup for repositories and services.
"""

from functools import lru_cache
from typing import Annotated, Optional
from fastapi import Depends

from db.supabase_client import create_supabase_client
from repositories.control_repository import ControlCatalogRepository
from repositories.document_repository import DocumentRepository
from repositories.evaluation_repository import EvaluationRepository
from repositories.framework_repository import FrameworkRepository
from adapters.openai_adapter import BaseAIAdapter, MockAIAdapter, OpenAIAdapter
from adapters.storage_adapter import BaseStorageAdapter, LocalFileStorageAdapter
from entities.framework import ActiveFramework
from services.relevance import ScoringParams
from services.retrieval_service import RetrievalService, create_retrieval_service
from services.control_candidates import ControlCandidateService, create_control_candidate_service
from services.compliance_status import ComplianceStatusService, create_compliance_status_service
from services.control_service import ControlService, create_control_service
from services.document_analysis_service import DocumentAnalysisService, create_document_analysis_service
from services.ingestion_service import IngestionService, create_ingestion_service
from services.evidence_evaluation_service import EvidenceEvaluationService, create_evidence_evaluation_service
from services.framework_service import FrameworkService, create_framework_service
from config.config import settings
from common.logging import get_logger

logger = get_logger("dependencies")


@lru_cache()
def get_supabase_client():
    """Get singleton Supabase client."""
    return create_supabase_client()


@lru_cache()
def get_document_repository() -> DocumentRepository:
    """Get singleton Document repository."""
    supabase = get_supabase_client()
    return DocumentRepository(
        supabase,
        settings.supabase_table_documents,
        chunks_table=settings.supabase_table_document_chunks,
        batch_size=settings.status_batch_size,
    )


@lru_cache()
def get_control_repository() -> ControlCatalogRepository:
    """Get singleton control catalog repository."""
    supabase = get_supabase_client()
    return ControlCatalogRepository(
        supabase,
        settings.supabase_table_controls,
        topics_table=settings.supabase_table_control_topics,
        mappings_table=settings.supabase_table_control_topic_mappings,
    )


@lru_cache()
def get_framework_repository() -> FrameworkRepository:
    supabase = get_supabase_client()
    return FrameworkRepository(supabase, settings.supabase_table_frameworks)


@lru_cache()
def get_evaluation_repository() -> EvaluationRepository:
    supabase = get_supabase_client()
    return EvaluationRepository(
        supabase,
        settings.supabase_table_evidence_evaluations,
        batch_size=settings.status_batch_size,
    )


@lru_cache()
def get_storage_adapter() -> BaseStorageAdapter:
    return LocalFileStorageAdapter(settings.uploads_dir)


@lru_cache()
def get_ai_adapter() -> BaseAIAdapter:
    """Get AI adapter (OpenAI or Mock based on configuration)."""
    if settings.openai_api_key and not settings.use_mock_llm:
        return OpenAIAdapter(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            timeout=settings.llm_timeout_seconds,
        )
    logger.warning("OpenAI is not configured; using the mock AI adapter")
    return MockAIAdapter()


@lru_cache()
def get_retrieval_service() -> RetrievalService:
    scoring = ScoringParams(
        token_cap=settings.score_token_cap,
        short_chunk_threshold=settings.short_chunk_threshold,
        short_chunk_bonus=settings.short_chunk_bonus,
    )
    return create_retrieval_service(
        get_document_repository(),
        scoring,
        settings.retrieval_top_k,
        settings.retrieval_max_scan,
    )


@lru_cache()
def get_control_candidate_service() -> ControlCandidateService:
    return create_control_candidate_service(
        get_control_repository(),
        settings.candidate_limit,
        settings.candidate_search_limit,
    )


@lru_cache()
def get_compliance_status_service() -> ComplianceStatusService:
    return create_compliance_status_service(get_document_repository(), get_evaluation_repository())


@lru_cache()
def get_control_service() -> ControlService:
    """Get singleton ControlService with dependencies."""
    return create_control_service(
        get_control_repository(),
        get_compliance_status_service(),
        settings.outdated_policy_days,
    )


@lru_cache()
def get_document_analysis_service() -> DocumentAnalysisService:
    """Get singleton DocumentAnalysisService with dependencies."""
    return create_document_analysis_service(
        get_document_repository(),
        get_evaluation_repository(),
        get_control_repository(),
        get_control_candidate_service(),
        get_ai_adapter(),
        settings.excerpt_chunk_count,
        settings.excerpt_max_chars,
    )


@lru_cache()
def get_ingestion_service() -> IngestionService:
    """Get singleton IngestionService with dependencies."""
    return create_ingestion_service(
        get_document_repository(),
        get_storage_adapter(),
        get_document_analysis_service(),
        settings.chunk_size,
        settings.chunk_overlap,
    )


@lru_cache()
def get_evidence_evaluation_service() -> EvidenceEvaluationService:
    """Get singleton EvidenceEvaluationService with dependencies."""
    return create_evidence_evaluation_service(
        get_retrieval_service(),
        get_control_repository(),
        get_evaluation_repository(),
        get_ai_adapter(),
    )


@lru_cache()
def get_framework_service() -> FrameworkService:
    return create_framework_service(get_framework_repository())


async def get_active_framework(
    framework_service: Annotated[FrameworkService, Depends(get_framework_service)],
) -> Optional[ActiveFramework]:
    """Resolved once per request and passed explicitly to the services."""
    return await framework_service.get_active_framework()


# Type aliases for dependency injection
RetrievalServiceDep = Annotated[RetrievalService, Depends(get_retrieval_service)]
ControlCandidateServiceDep = Annotated[ControlCandidateService, Depends(get_control_candidate_service)]
ControlServiceDep = Annotated[ControlService, Depends(get_control_service)]
DocumentAnalysisServiceDep = Annotated[DocumentAnalysisService, Depends(get_document_analysis_service)]
IngestionServiceDep = Annotated[IngestionService, Depends(get_ingestion_service)]
EvidenceEvaluationServiceDep = Annotated[EvidenceEvaluationService, Depends(get_evidence_evaluation_service)]
FrameworkServiceDep = Annotated[FrameworkService, Depends(get_framework_service)]
ActiveFrameworkDep = Annotated[Optional[ActiveFramework], Depends(get_active_framework)]
