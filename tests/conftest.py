import asyncio
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from unittest.mock import AsyncMock

import pytest

from adapters.openai_adapter import AIResponse, BaseAIAdapter
from adapters.storage_adapter import BaseStorageAdapter
from entities.control import ControlDefinition, ControlSummary, ControlTopic
from entities.document import (
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentKind,
    DocumentUpdate,
    ScopedChunk,
)
from entities.evaluation import EvaluationCreate, EvidenceEvaluation
from entities.framework import ActiveFramework, Framework, FrameworkCreate, FrameworkStatus
from common.exceptions import ResourceConflictException, ResourceNotFoundException, StorageException

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)
ISO_2022 = ActiveFramework(name="ISO 27001:2022", version="2022")


class FakeDocumentRepository:
    """In-memory documents and chunks; chunk recency follows write order."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.chunks: Dict[str, List[Tuple[int, DocumentChunk]]] = {}
        self._seq = itertools.count()
        self.recent_chunk_calls = 0

    def _now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=next(self._seq))

    async def create(self, document_create: DocumentCreate) -> Document:
        document = Document(id=str(uuid.uuid4()), created_at=self._now(), **document_create.model_dump())
        self.documents[document.id] = document
        return document

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        return self.documents.get(document_id)

    async def get_or_raise(self, document_id: str) -> Document:
        document = self.documents.get(document_id)
        if document is None:
            raise ResourceNotFoundException(resource_type="Document", resource_id=document_id)
        return document

    async def update(self, document_id: str, update_data: DocumentUpdate) -> Document:
        current = await self.get_or_raise(document_id)
        data = current.model_dump()
        data.update(update_data.model_dump(exclude_unset=True))
        self.documents[document_id] = Document(**data)
        return self.documents[document_id]

    async def delete(self, document_id: str) -> bool:
        self.chunks.pop(document_id, None)
        return self.documents.pop(document_id, None) is not None

    async def list_by_conversation(self, conversation_id: str, kind: Optional[DocumentKind] = None) -> List[Document]:
        docs = [
            d for d in self.documents.values()
            if d.conversation_id == conversation_id and (kind is None or d.kind == kind)
        ]
        return sorted(docs, key=lambda d: d.created_at, reverse=True)

    async def list_by_match_controls(self, control_codes: Sequence[str]) -> List[Document]:
        codes = set(control_codes)
        return [d for d in self.documents.values() if d.match_control_id in codes]

    async def write_chunks(self, document_id: str, chunks: Sequence[Tuple[int, str]]) -> int:
        self.chunks[document_id] = [
            (next(self._seq), DocumentChunk(document_id=document_id, chunk_index=index, text=text))
            for index, text in chunks
        ]
        return len(chunks)

    async def read_chunks(self, document_id: str, limit: int, ascending: bool = True) -> List[str]:
        rows = sorted(self.chunks.get(document_id, []), key=lambda r: r[1].chunk_index, reverse=not ascending)
        return [chunk.text for _, chunk in rows[:limit]]

    async def list_recent_chunks(self, scope_id: str, kind: DocumentKind, limit: int) -> List[ScopedChunk]:
        self.recent_chunk_calls += 1
        rows = []
        for document_id, chunks in self.chunks.items():
            document = self.documents.get(document_id)
            if document is None or document.conversation_id != scope_id or document.kind != kind:
                continue
            for seq, chunk in chunks:
                rows.append((seq, ScopedChunk(doc_name=document.original_name, kind=document.kind, **chunk.model_dump())))
        rows.sort(key=lambda r: r[0], reverse=True)
        return [chunk for _, chunk in rows[:limit]]


class FakeControlRepository:
    def __init__(self, controls: Sequence[ControlDefinition]):
        self.controls = {c.control_code: c for c in controls}
        self.healed: List[str] = []

    async def get_by_code(self, control_code: str) -> Optional[ControlDefinition]:
        return self.controls.get(control_code)

    async def list_by_codes(self, control_codes: Sequence[str]) -> List[ControlDefinition]:
        return [self.controls[c] for c in dict.fromkeys(control_codes) if c in self.controls]

    async def search_controls(self, tokens: Sequence[str], active_only: bool = True, limit: int = 50) -> List[ControlSummary]:
        found = [
            c for c in self.controls.values()
            if (c.is_enabled or not active_only) and any(t in c.searchable_text() for t in tokens)
        ]
        return found[:limit]

    async def list_controls(self, topic_id=None, query=None, active_only: bool = True) -> List[ControlDefinition]:
        controls = [c for c in self.controls.values() if c.is_enabled or not active_only]
        if topic_id:
            controls = [c for c in controls if c.topic_id == topic_id]
        if query:
            controls = [c for c in controls if query.lower() in c.searchable_text()]
        return sorted(controls, key=lambda c: (c.sort_order, c.control_code))

    async def list_topics(self, active_only: bool = True) -> List[ControlTopic]:
        topics = {}
        for control in self.controls.values():
            if control.topic_id and control.topic_id not in topics:
                topics[control.topic_id] = ControlTopic(id=control.topic_id, title=control.topic_title or "")
        return sorted(topics.values(), key=lambda t: t.title)

    async def ensure_primary_topic(self, control: ControlDefinition) -> bool:
        self.healed.append(control.control_code)
        return False


class FakeEvaluationRepository:
    def __init__(self):
        self.evaluations: List[EvidenceEvaluation] = []
        self._seq = itertools.count()

    async def create(self, evaluation_create: EvaluationCreate) -> EvidenceEvaluation:
        evaluation = EvidenceEvaluation(
            id=str(uuid.uuid4()),
            created_at=BASE_TIME + timedelta(minutes=next(self._seq)),
            **evaluation_create.model_dump(),
        )
        self.evaluations.append(evaluation)
        return evaluation

    def _newest_first(self) -> List[EvidenceEvaluation]:
        return sorted(self.evaluations, key=lambda e: e.created_at, reverse=True)

    async def latest_for_controls(self, control_codes: Sequence[str]) -> Dict[str, EvidenceEvaluation]:
        latest: Dict[str, EvidenceEvaluation] = {}
        for evaluation in self._newest_first():
            if evaluation.control_id in control_codes:
                latest.setdefault(evaluation.control_id, evaluation)
        return latest

    async def list_by_conversations(self, conversation_ids: Sequence[str]) -> List[EvidenceEvaluation]:
        return [e for e in self._newest_first() if e.conversation_id in conversation_ids]


class FakeFrameworkRepository:
    """Enable runs under a lock, standing in for the database transaction."""

    def __init__(self):
        self.frameworks: Dict[str, Framework] = {}
        self._lock = asyncio.Lock()

    async def create(self, framework_create: FrameworkCreate) -> Framework:
        if any(f.name == framework_create.name for f in self.frameworks.values()):
            raise ResourceConflictException(detail="exists", resource_type="Framework")
        framework = Framework(
            id=str(uuid.uuid4()),
            name=framework_create.name,
            version=framework_create.version,
            status=FrameworkStatus.DISABLED,
        )
        self.frameworks[framework.id] = framework
        return framework

    async def get_by_id(self, framework_id: str) -> Optional[Framework]:
        return self.frameworks.get(framework_id)

    async def list(self) -> List[Framework]:
        return sorted(self.frameworks.values(), key=lambda f: f.name)

    async def get_active_framework(self) -> Optional[Framework]:
        return next((f for f in self.frameworks.values() if f.is_enabled), None)

    async def enable(self, framework_id: str) -> List[Framework]:
        async with self._lock:
            if framework_id not in self.frameworks:
                raise ResourceNotFoundException(resource_type="Framework", resource_id=framework_id)
            await asyncio.sleep(0)
            for fid, framework in list(self.frameworks.items()):
                status = FrameworkStatus.ENABLED if fid == framework_id else FrameworkStatus.DISABLED
                self.frameworks[fid] = framework.model_copy(update={"status": status})
            return await self.list()

    async def disable(self, framework_id: str) -> Framework:
        if framework_id not in self.frameworks:
            raise ResourceNotFoundException(resource_type="Framework", resource_id=framework_id)
        self.frameworks[framework_id] = self.frameworks[framework_id].model_copy(
            update={"status": FrameworkStatus.DISABLED}
        )
        return self.frameworks[framework_id]


class FakeStorage(BaseStorageAdapter):
    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.fail_on: set = set()

    async def save(self, conversation_id: str, filename: str, data: bytes) -> str:
        if filename in self.fail_on:
            raise StorageException("Failed to store uploaded file", filename)
        path = f"{conversation_id}/{len(self.files)}-{filename}"
        self.files[path] = data
        return path

    async def read_bytes(self, path: str) -> bytes:
        if path not in self.files:
            raise StorageException("Stored file not found", path)
        return self.files[path]

    async def delete(self, path: str) -> bool:
        return self.files.pop(path, None) is not None


def make_control(code: str, title: str, **fields) -> ControlDefinition:
    return ControlDefinition.from_dict({"id": str(uuid.uuid4()), "control_code": code, "title": title, **fields})


def ai_response(data: dict) -> AIResponse:
    return AIResponse(
        data=data,
        raw_text=str(data),
        model_used="test-model",
        tokens_used=0,
        response_time_ms=1.0,
        request_id="req-1",
        created_at=BASE_TIME,
    )


@pytest.fixture
def catalog() -> List[ControlDefinition]:
    return [
        make_control(
            "A.5.15",
            "Access control",
            description="Rules to control physical and logical access",
            topic_id="topic-access",
            topic_title="Access Management",
            owner_role="CISO",
            sort_order=1,
            iso_mappings=["A.9.1.1", "5.15"],
            framework_mappings=[{"framework": "ISO 27001:2022", "code": "5.15"}],
            test_components=[
                {"requirement": "Maintain an approved access control policy", "evidence_types": "Policy document, Access review"}
            ],
        ),
        make_control(
            "A.8.13",
            "Information backup",
            description="Backup copies of information and software are maintained and tested",
            topic_id="topic-ops",
            topic_title="Operations",
            sort_order=2,
            iso_mappings=["8.13", "A.12.3.1"],
        ),
        make_control(
            "CC6.1",
            "Logical access security",
            description="Logical access controls over protected assets",
            owner_role="IT Manager",
            sort_order=3,
            framework_mappings=[{"framework": "SOC 2", "code": "CC6.1"}],
        ),
        make_control(
            "X.1",
            "Access legacy",
            description="Retired access requirement",
            status="disabled",
            sort_order=4,
        ),
    ]


@pytest.fixture
def document_repo() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture
def control_repo(catalog) -> FakeControlRepository:
    return FakeControlRepository(catalog)


@pytest.fixture
def evaluation_repo() -> FakeEvaluationRepository:
    return FakeEvaluationRepository()


@pytest.fixture
def framework_repo() -> FakeFrameworkRepository:
    return FakeFrameworkRepository()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def ai_adapter() -> AsyncMock:
    adapter = AsyncMock(spec=BaseAIAdapter)
    adapter.is_healthy.return_value = True
    return adapter


@pytest.fixture
def conversation_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def seed_document(document_repo):
    """Create a document with the given chunk texts (written in order)."""

    async def _seed(conversation_id: str, name: str, texts: Sequence[str], kind: DocumentKind = DocumentKind.CUSTOMER, **fields) -> Document:
        document = await document_repo.create(
            DocumentCreate(conversation_id=conversation_id, kind=kind, original_name=name, storage_path=f"{conversation_id}/{name}")
        )
        await document_repo.write_chunks(document.id, list(enumerate(texts)))
        if fields:
            document = await document_repo.update(document.id, DocumentUpdate(**fields))
        return document

    return _seed
