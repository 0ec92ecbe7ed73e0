from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_table_documents: str = "documents"
    supabase_table_document_chunks: str = "document_chunks"
    supabase_table_controls: str = "controls"
    supabase_table_control_topics: str = "control_topics"
    supabase_table_control_topic_mappings: str = "control_topic_mappings"
    supabase_table_frameworks: str = "frameworks"
    supabase_table_evidence_evaluations: str = "evidence_evaluations"

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    llm_timeout_seconds: int = 25
    use_mock_llm: bool = False

    # Chunking
    chunk_size: int = 1200
    chunk_overlap: int = 200

    # Retrieval / scoring
    retrieval_top_k: int = 5
    retrieval_max_scan: int = 300
    score_token_cap: int = 5
    short_chunk_threshold: int = 900
    short_chunk_bonus: int = 1

    # Control candidates
    candidate_limit: int = 8
    candidate_search_limit: int = 50
    excerpt_chunk_count: int = 6
    excerpt_max_chars: int = 6000

    # Status / gaps
    outdated_policy_days: int = 180
    status_batch_size: int = 900

    # Storage
    uploads_dir: str = "uploads/"
    max_upload_bytes: int = 25 * 1024 * 1024

    # App
    log_level: str = "INFO"
    log_format: str = "structured"
    cors_origins: List[str] = ["http://localhost:4200"]
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    llm_rate_limit: str = "20/minute"


settings = Settings()

tags_metadata = [
    {
        "name": "Health",
        "description": "Health-check and diagnostics endpoints.",
    },
    {
        "name": "Documents",
        "description": "Upload, ingest, review and delete evidence documents.",
    },
    {
        "name": "Retrieval",
        "description": "Keyword-ranked chunk retrieval within a conversation.",
    },
    {
        "name": "Evidence",
        "description": "LLM-backed evidence evaluation and compliance questions.",
    },
    {
        "name": "Controls",
        "description": "Control catalog with aggregated compliance status and gaps.",
    },
    {
        "name": "Frameworks",
        "description": "Framework versions and the single active framework.",
    },
]
