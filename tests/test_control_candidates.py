import pytest

from entities.control import ControlSummary, FrameworkMapping
from entities.framework import ActiveFramework
from services.control_candidates import (
    ControlCandidateService,
    extract_search_tokens,
    group_framework_references,
    is_framework_compatible,
    normalize_search_text,
    rank_candidates,
    resolve_framework_codes,
)

from conftest import ISO_2022


def summary(code, title, **fields):
    return ControlSummary(id=code, control_code=code, title=title, **fields)


def test_normalize_search_text_strips_extension_and_separators():
    assert normalize_search_text("Access_Control-Policy (v2).PDF") == "access control policy v2"


def test_search_tokens_drop_stop_words_and_short_tokens():
    assert extract_search_tokens("Access_Control-Policy (v2).PDF") == ["access"]
    assert extract_search_tokens("backup-backup_restore plan.docx") == ["backup", "restore"]


def test_framework_mapping_rows_are_validated():
    mappings = FrameworkMapping.parse_many([
        {"framework": "ISO 27001:2022", "code": "5.15"},
        {"framework": "SOC 2", "frameworkCode": "CC6.1", "versionRef": "2017"},
        {"framework": "", "code": "x"},
        {"code": "orphan"},
        "garbage",
    ])
    assert [(m.framework, m.code, m.version_ref) for m in mappings] == [
        ("ISO 27001:2022", "5.15", None),
        ("SOC 2", "CC6.1", "2017"),
    ]


def test_controls_without_mappings_are_framework_agnostic():
    control = summary("A.8.13", "Information backup")
    assert is_framework_compatible(control, ISO_2022)
    assert is_framework_compatible(control, None)


def test_framework_match_ignores_case():
    control = summary("A.5.15", "Access control", framework_mappings=[{"framework": "ISO 27001:2022", "code": "5.15"}])
    assert is_framework_compatible(control, ActiveFramework(name="iso 27001:2022"))
    assert not is_framework_compatible(control, ActiveFramework(name="SOC 2"))


def test_resolve_codes_prefers_active_framework_mappings():
    control = summary(
        "A.5.15", "Access control",
        iso_mappings=["A.9.1.1"],
        framework_mappings=[{"framework": "ISO 27001:2022", "code": "5.15"}, {"framework": "SOC 2", "code": "CC6.1"}],
    )
    assert resolve_framework_codes(control, ISO_2022) == ["5.15"]


@pytest.mark.parametrize("active,expected", [
    (ActiveFramework(name="ISO 27001", version="2022"), ["8.13"]),
    (ActiveFramework(name="ISO 27001:2013"), ["A.12.3.1"]),
    (ActiveFramework(name="NIST CSF"), ["8.13", "A.12.3.1"]),
    (None, ["8.13", "A.12.3.1"]),
])
def test_resolve_codes_falls_back_to_legacy_codes(active, expected):
    control = summary("A.8.13", "Information backup", iso_mappings=["8.13", "A.12.3.1"])
    assert resolve_framework_codes(control, active) == expected


def test_legacy_preference_without_matching_codes_keeps_all():
    control = summary("A.1", "Legacy", iso_mappings=["A.1", "A.2"])
    assert resolve_framework_codes(control, ISO_2022) == ["A.1", "A.2"]


def test_group_framework_references():
    mappings = FrameworkMapping.parse_many([
        {"framework": "ISO 27001:2022", "code": "5.15"},
        {"framework": "ISO 27001:2022", "code": "5.18"},
        {"framework": "SOC 2", "code": "CC6.1"},
    ])
    assert group_framework_references(mappings, None) == ["ISO 27001:2022 5.15, 5.18", "SOC 2 CC6.1"]
    assert group_framework_references(mappings, ISO_2022) == ["ISO 27001:2022 5.15, 5.18"]


def test_rank_candidates_orders_by_score_then_title():
    controls = [
        summary("C3", "Zeta access logging", description="access logs"),
        summary("C2", "Beta access review", description="logical access"),
        summary("C1", "Alpha access review", description="logical access"),
        summary("C4", "Unrelated"),
    ]
    ranked = rank_candidates(controls, ["access", "logical"], None)
    assert [c.control_code for c in ranked] == ["C1", "C2", "C3"]
    assert [c.score for c in ranked] == [2, 2, 1]


def test_rank_candidates_keeps_top_limit():
    controls = [summary(f"C{i}", f"Access {i:02d}") for i in range(12)]
    assert len(rank_candidates(controls, ["access"], None, limit=8)) == 8


async def test_find_candidates_filters_by_active_framework(control_repo):
    service = ControlCandidateService(control_repo)

    candidates = await service.find_candidates("logical-access.pdf", None, ISO_2022)

    codes = [c.control_code for c in candidates]
    assert "A.5.15" in codes
    assert "CC6.1" not in codes
    assert "X.1" not in codes
    assert candidates[0].framework_codes == ["5.15"]


async def test_find_candidates_without_framework_ranks_all_enabled(control_repo):
    service = ControlCandidateService(control_repo)

    candidates = await service.find_candidates("logical-access.pdf", None, None)

    assert [c.control_code for c in candidates] == ["A.5.15", "CC6.1"]


async def test_find_candidates_falls_back_to_content(control_repo):
    service = ControlCandidateService(control_repo)

    candidates = await service.find_candidates("policy.pdf", "Nightly information backup restore tests", ISO_2022)

    assert [c.control_code for c in candidates] == ["A.8.13"]
    assert candidates[0].framework_codes == ["8.13"]


async def test_find_candidates_without_tokens_is_empty(control_repo):
    service = ControlCandidateService(control_repo)
    assert await service.find_candidates("ab.pdf", None, ISO_2022) == []
