import pytest

from entities.document import DocumentKind
from services.relevance import ScoringParams
from services.retrieval_service import RetrievalService
from common.exceptions import ValidationException


@pytest.fixture
def retrieval(document_repo):
    return RetrievalService(document_repo, ScoringParams(), default_top_k=5, default_max_scan=300)


async def test_hits_are_ranked_positive_and_bounded(retrieval, seed_document, conversation_id):
    await seed_document(conversation_id, "policy.txt", [
        "MFA is required for admin accounts. MFA tokens rotate.",
        "Backups run nightly.",
        "Admin access is reviewed quarterly.",
    ])

    hits = await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "MFA admin", top_k=2)

    assert len(hits) == 2
    assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)
    assert all(h.score > 0 for h in hits)
    assert hits[0].chunk_index == 0
    assert hits[0].doc_name == "policy.txt"


async def test_stop_word_query_returns_nothing_without_scanning(retrieval, document_repo, seed_document, conversation_id):
    await seed_document(conversation_id, "policy.txt", ["the policy of the company"])

    assert await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "the of and") == []
    assert document_repo.recent_chunk_calls == 0


async def test_scope_and_kind_are_respected(retrieval, seed_document, conversation_id):
    await seed_document(conversation_id, "standard.txt", ["MFA requirement text"], kind=DocumentKind.STANDARD)
    await seed_document("other-conversation", "evidence.txt", ["MFA enabled everywhere"])

    assert await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "MFA") == []
    standard = await retrieval.retrieve(conversation_id, DocumentKind.STANDARD, "MFA")
    assert [h.kind for h in standard] == [DocumentKind.STANDARD]


async def test_max_scan_limits_to_most_recent_chunks(retrieval, seed_document, conversation_id):
    await seed_document(conversation_id, "old.txt", ["MFA MFA MFA enforced"])
    await seed_document(conversation_id, "new.txt", ["MFA enforced"])

    hits = await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "MFA", max_scan=1)

    assert [h.doc_name for h in hits] == ["new.txt"]


async def test_ties_keep_newest_first(retrieval, seed_document, conversation_id):
    await seed_document(conversation_id, "first.txt", ["encryption at rest"])
    await seed_document(conversation_id, "second.txt", ["encryption in transit"])

    hits = await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "encryption")

    assert [h.doc_name for h in hits] == ["second.txt", "first.txt"]


@pytest.mark.parametrize("kwargs", [{"top_k": 0}, {"max_scan": -1}])
async def test_non_positive_limits_are_rejected(retrieval, conversation_id, kwargs):
    with pytest.raises(ValidationException):
        await retrieval.retrieve(conversation_id, DocumentKind.CUSTOMER, "MFA", **kwargs)
