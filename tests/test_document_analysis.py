import pytest

from entities.compliance import Citation, ComplianceStatus
from entities.document import DocumentKind
from entities.evaluation import EvaluationCreate
from services.control_candidates import ControlCandidateService
from services.document_analysis_service import (
    DEFAULT_MATCH_NOTES,
    PENDING_NOTE,
    UNMATCHED_NOTE,
    DocumentAnalysisService,
    default_match_note,
    names_match,
)
from common.exceptions import LLMResponseException, ResourceNotFoundException, ValidationException

from conftest import ISO_2022, ai_response

ACCESS_EXCERPT = ["Access control policy", "MFA is required for all admin accounts."]


@pytest.fixture
def analysis(document_repo, evaluation_repo, control_repo, ai_adapter):
    return DocumentAnalysisService(
        document_repo,
        evaluation_repo,
        control_repo,
        ControlCandidateService(control_repo),
        ai_adapter,
    )


def analysis_answer(control_id, status="COMPLIANT", note=""):
    return ai_response({
        "docType": "Access Control Policy",
        "matchControlId": control_id,
        "matchStatus": status,
        "matchNote": note,
        "matchRecommendations": ["Add a review date"],
    })


def test_default_notes_cover_every_status():
    assert set(DEFAULT_MATCH_NOTES) == set(ComplianceStatus)
    assert default_match_note(None) == DEFAULT_MATCH_NOTES[ComplianceStatus.UNKNOWN]


@pytest.mark.parametrize("document,cited,expected", [
    ("Access Policy.PDF", "access_policy.pdf", True),
    ("access-policy-v2.pdf", "access policy", True),
    ("backup.xlsx", "access policy", False),
    ("", "anything", False),
])
def test_names_match(document, cited, expected):
    assert names_match(document, cited) is expected


async def test_analysis_matches_a_candidate_control(analysis, ai_adapter, seed_document, conversation_id):
    document = await seed_document(conversation_id, "access-policy.txt", ACCESS_EXCERPT)
    ai_adapter.generate_structured_response.return_value = analysis_answer("A.5.15")

    updated = await analysis.analyze_document(document.id, ISO_2022, "en")

    assert updated.match_control_id == "A.5.15"
    assert updated.match_status == "COMPLIANT"
    assert updated.match_note == DEFAULT_MATCH_NOTES[ComplianceStatus.COMPLIANT]
    assert updated.doc_type == "Access Control Policy"
    assert updated.match_recommendations == ["Add a review date"]
    assert updated.reviewed_at is not None

    request, schema_name, _ = ai_adapter.generate_structured_response.await_args.args
    assert schema_name == "document_analysis"
    assert request.language == "en"
    assert request.context["excerpt"] == "\n".join(ACCESS_EXCERPT)
    assert request.context["controlCandidates"] == [
        {"controlCode": "A.5.15", "title": "Access control", "frameworkCodes": ["5.15"]}
    ]


async def test_match_outside_candidates_is_discarded(analysis, ai_adapter, seed_document, conversation_id):
    document = await seed_document(conversation_id, "access-policy.txt", ACCESS_EXCERPT)
    ai_adapter.generate_structured_response.return_value = analysis_answer("CC6.1", note="Matches SOC 2 access.")

    updated = await analysis.analyze_document(document.id, ISO_2022)

    assert updated.match_control_id is None
    assert updated.match_status == "UNKNOWN"


async def test_only_customer_documents_are_analyzed(analysis, ai_adapter, seed_document, conversation_id):
    document = await seed_document(conversation_id, "iso.txt", ["5.15"], kind=DocumentKind.STANDARD)

    with pytest.raises(ValidationException):
        await analysis.analyze_document(document.id, ISO_2022)
    ai_adapter.generate_structured_response.assert_not_awaited()


async def test_malformed_analysis_is_rejected(analysis, ai_adapter, seed_document, conversation_id):
    document = await seed_document(conversation_id, "access-policy.txt", ACCESS_EXCERPT)
    ai_adapter.generate_structured_response.return_value = ai_response({"matchStatus": "MAYBE"})

    with pytest.raises(LLMResponseException):
        await analysis.analyze_document(document.id, ISO_2022)


async def test_submit_evidence_marks_documents(analysis, seed_document, conversation_id):
    first = await seed_document(conversation_id, "a.txt", ["x"])
    second = await seed_document(conversation_id, "b.txt", ["y"])

    updated = await analysis.submit_evidence([first.id, second.id, first.id], "A.8.13", "partial", "  Restore test log  ")

    assert [d.id for d in updated] == [first.id, second.id]
    for document in updated:
        assert document.match_control_id == "A.8.13"
        assert document.match_status == "PARTIAL"
        assert document.match_note == "Restore test log"
        assert document.submitted_at is not None
        assert document.reviewed_at == document.submitted_at


async def test_submit_evidence_rejects_bad_input(analysis, seed_document, conversation_id):
    document = await seed_document(conversation_id, "a.txt", ["x"])

    with pytest.raises(ValidationException):
        await analysis.submit_evidence([document.id], "A.8.13", "NOT_COMPLIANT")
    with pytest.raises(ValidationException):
        await analysis.submit_evidence([], "A.8.13", "COMPLIANT")
    with pytest.raises(ResourceNotFoundException):
        await analysis.submit_evidence([document.id], "Z.9", "COMPLIANT")


async def test_listing_without_evaluations_is_pending(analysis, seed_document, conversation_id):
    await seed_document(conversation_id, "access-policy.pdf", ["x"])
    await seed_document(conversation_id, "iso.pdf", ["y"], kind=DocumentKind.STANDARD)

    views = {v.original_name: v for v in await analysis.list_documents(conversation_id, None, ISO_2022)}

    assert views["access-policy.pdf"].match_status == "PENDING"
    assert views["access-policy.pdf"].match_note == PENDING_NOTE
    assert views["iso.pdf"].match_status is None


async def test_listing_uses_latest_citing_evaluation(analysis, evaluation_repo, seed_document, conversation_id):
    await seed_document(conversation_id, "Access Policy.pdf", ["x"])
    await seed_document(conversation_id, "holiday-photo.pdf", ["y"])
    await seed_document(conversation_id, "backup-log.pdf", ["z"], match_control_id="A.8.13", match_status="PARTIAL")
    await evaluation_repo.create(EvaluationCreate(
        conversation_id=conversation_id,
        control_id="A.5.15",
        status=ComplianceStatus.COMPLIANT,
        summary="The access policy requires MFA.",
        citations=[Citation(doc="access_policy.pdf", kind=DocumentKind.CUSTOMER)],
    ))

    views = {v.original_name: v for v in await analysis.list_documents(conversation_id, DocumentKind.CUSTOMER, ISO_2022)}

    cited = views["Access Policy.pdf"]
    assert cited.match_control_id == "A.5.15"
    assert cited.match_status == "COMPLIANT"
    assert cited.match_note == "The access policy requires MFA."
    assert cited.framework_references == ["ISO 27001:2022 5.15"]

    assert views["holiday-photo.pdf"].match_status == "UNMATCHED"
    assert views["holiday-photo.pdf"].match_note == UNMATCHED_NOTE

    stored = views["backup-log.pdf"]
    assert stored.match_status == "PARTIAL"
    assert stored.match_note == DEFAULT_MATCH_NOTES[ComplianceStatus.PARTIAL]
    assert stored.framework_references == []
