"""
Control candidate resolution: which catalog controls a document most likely evidences.
"""

import re
from typing import Dict, List, Optional, Sequence

from entities.control import ControlCandidate, ControlSummary, FrameworkMapping
from entities.framework import ActiveFramework
from repositories.control_repository import ControlCatalogRepository
from common.logging import get_logger

logger = get_logger("control_candidates")

CANDIDATE_STOP_WORDS = frozenset({
    "policy", "procedure", "document", "template", "report", "assessment",
    "plan", "guide", "manual", "standard", "framework", "control", "controls",
    "version",
})

MIN_SEARCH_TOKEN_LENGTH = 3
CONTENT_FALLBACK_CHARS = 180

_EXTENSION = re.compile(r"\.[a-z0-9]+$", re.IGNORECASE)
_SEPARATORS = re.compile(r"[_\-]+")
_BRACKETS = re.compile(r"[()\[\]{}]")
_WHITESPACE = re.compile(r"\s+")


def normalize_search_text(value: str) -> str:
    value = _EXTENSION.sub("", value or "")
    value = _SEPARATORS.sub(" ", value)
    value = _BRACKETS.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip().lower()


def extract_search_tokens(value: str) -> List[str]:
    """Distinct search tokens in first-seen order."""
    tokens = [
        tok for tok in normalize_search_text(value).split(" ")
        if len(tok) >= MIN_SEARCH_TOKEN_LENGTH and tok not in CANDIDATE_STOP_WORDS
    ]
    return list(dict.fromkeys(tokens))


def _same_framework(mapping: FrameworkMapping, active: ActiveFramework) -> bool:
    return mapping.framework.strip().casefold() == active.name.strip().casefold()


def is_framework_compatible(control: ControlSummary, active: Optional[ActiveFramework]) -> bool:
    """Controls without framework mappings are framework-agnostic and always allowed."""
    if active is None or not control.framework_mappings:
        return True
    return any(_same_framework(m, active) for m in control.framework_mappings)


def resolve_framework_codes(control: ControlSummary, active: Optional[ActiveFramework]) -> List[str]:
    """
    Codes to show for a control under the active framework.

    Mapping codes of the active framework win. Otherwise legacy codes are
    used, preferring numeric-leading codes for a "2022" framework and
    "A."-prefixed codes for a "2013" framework when any such code exists.
    """
    legacy = list(dict.fromkeys(control.iso_mappings))
    if active is None:
        return legacy or list(dict.fromkeys(m.code for m in control.framework_mappings))

    mapped = [m.code for m in control.framework_mappings if _same_framework(m, active)]
    if mapped:
        return list(dict.fromkeys(mapped))

    label = f"{active.name} {active.version or ''}"
    if "2022" in label:
        preferred = [code for code in legacy if code[:1].isdigit()]
    elif "2013" in label:
        preferred = [code for code in legacy if code.upper().startswith("A.")]
    else:
        preferred = []
    return preferred or legacy


def group_framework_references(
    mappings: Sequence[FrameworkMapping],
    active: Optional[ActiveFramework],
) -> List[str]:
    """Human-readable references such as 'ISO 27001:2022 5.15, 5.18'."""
    if active is not None:
        mappings = [m for m in mappings if _same_framework(m, active)]
    grouped: Dict[str, List[str]] = {}
    for mapping in mappings:
        codes = grouped.setdefault(mapping.framework, [])
        if mapping.code not in codes:
            codes.append(mapping.code)
    return [f"{name} {', '.join(codes)}" if codes else name for name, codes in grouped.items()]


def rank_candidates(
    controls: Sequence[ControlSummary],
    tokens: Sequence[str],
    active: Optional[ActiveFramework],
    limit: int = 8,
) -> List[ControlCandidate]:
    """Score by distinct tokens contained in code/title/description/topic, best first, ties by title."""
    scored = []
    for control in controls:
        if not is_framework_compatible(control, active):
            continue
        haystack = control.searchable_text()
        score = sum(1 for tok in tokens if tok in haystack)
        if score > 0:
            scored.append((score, control))

    scored.sort(key=lambda item: (-item[0], item[1].title.casefold()))
    return [
        ControlCandidate(
            control_code=control.control_code,
            title=control.title,
            framework_codes=resolve_framework_codes(control, active),
            score=score,
        )
        for score, control in scored[:limit]
    ]


class ControlCandidateService:
    """Finds likely controls for a document from its filename or content excerpt."""

    def __init__(self, control_repository: ControlCatalogRepository, limit: int = 8, search_limit: int = 50):
        self.control_repository = control_repository
        self.limit = limit
        self.search_limit = search_limit

    async def find_candidates(
        self,
        filename: str,
        content_excerpt: Optional[str],
        active_framework: Optional[ActiveFramework],
    ) -> List[ControlCandidate]:
        """Empty list when neither filename nor excerpt yields search tokens."""
        tokens = extract_search_tokens(filename)
        if not tokens and content_excerpt:
            tokens = extract_search_tokens(content_excerpt[:CONTENT_FALLBACK_CHARS])
        if not tokens:
            logger.info(f"No search tokens for '{filename}'; cannot resolve candidates")
            return []

        controls = await self.control_repository.search_controls(tokens, active_only=True, limit=self.search_limit)
        candidates = rank_candidates(controls, tokens, active_framework, self.limit)
        logger.info(
            f"Resolved {len(candidates)} control candidates for '{filename}' "
            f"from {len(controls)} matches (tokens={tokens})"
        )
        return candidates


def create_control_candidate_service(
    control_repository: ControlCatalogRepository,
    limit: int = 8,
    search_limit: int = 50,
) -> ControlCandidateService:
    return ControlCandidateService(control_repository, limit, search_limit)
