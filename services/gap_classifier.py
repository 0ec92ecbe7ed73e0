"""
Gap classification for controls that are PARTIAL or NOT_COMPLIANT.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from entities.compliance import ComplianceStatus, GapReason
from entities.control import ControlDefinition
from entities.document import Document

GAP_STATUSES = (ComplianceStatus.PARTIAL, ComplianceStatus.NOT_COMPLIANT)
POLICY_MARKER = "policy"


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_policy_evidence(document: Document) -> bool:
    return POLICY_MARKER in (document.doc_type or "").lower() or POLICY_MARKER in document.original_name.lower()


def requires_policy(control: ControlDefinition) -> bool:
    if POLICY_MARKER in control.requirement_text.lower():
        return True
    return any(POLICY_MARKER in t.lower() for t in control.evidence_types)


def evidence_age_days(documents: Sequence[Document], now: datetime) -> Optional[int]:
    """Whole days since the most recent reviewed/submitted/created timestamp, or None."""
    stamps = [d.latest_activity_at() for d in documents]
    stamps = [_as_utc(s) for s in stamps if s is not None]
    if not stamps:
        return None
    return (_as_utc(now) - max(stamps)).days


def classify_gap(
    control: ControlDefinition,
    status: ComplianceStatus,
    documents: Sequence[Document],
    has_evaluation: bool,
    now: Optional[datetime] = None,
    outdated_days: int = 180,
) -> Optional[GapReason]:
    """
    Ordered decision tree; the first matching rule wins.

    1. no documents -> missing-evidence
    2. no owner role -> owner-not-assigned
    3. policy evidence whose latest activity is >= outdated_days old -> outdated-policy
    4. no formal evaluation -> control-not-tested
    5. otherwise -> control-not-implemented

    Returns None for statuses other than PARTIAL / NOT_COMPLIANT.
    """
    if status not in GAP_STATUSES:
        return None

    if not documents:
        return GapReason.MISSING_EVIDENCE

    if not (control.owner_role or "").strip():
        return GapReason.OWNER_NOT_ASSIGNED

    policy_docs = [d for d in documents if is_policy_evidence(d)]
    if policy_docs or requires_policy(control):
        age = evidence_age_days(policy_docs or documents, now or datetime.now(timezone.utc))
        if age is not None and age >= outdated_days:
            return GapReason.OUTDATED_POLICY

    if not has_evaluation:
        return GapReason.CONTROL_NOT_TESTED

    return GapReason.CONTROL_NOT_IMPLEMENTED
