"""
Control catalog entity models: topics, controls, test components and
framework mappings. Loosely shaped catalog rows are normalized here, once,
so downstream services work with typed values only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from pydantic import BaseModel, Field, field_validator

from entities.document import parse_datetime


class TopicRelationship(str, Enum):
    PRIMARY = "PRIMARY"
    RELATED = "RELATED"


class ControlTopic(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    framework: Optional[str] = None
    status: str = "enabled"
    priority: int = 0


class FrameworkMapping(BaseModel):
    """A control's code within one named framework."""
    framework: str
    code: str
    version_ref: Optional[str] = None

    @classmethod
    def parse_many(cls, raw: Any) -> List["FrameworkMapping"]:
        """Build mappings from catalog rows; rows without framework or code are dropped."""
        if not isinstance(raw, list):
            return []
        mappings: List[FrameworkMapping] = []
        for item in raw:
            if isinstance(item, FrameworkMapping):
                mappings.append(item)
                continue
            if not isinstance(item, dict):
                continue
            framework = str(item.get("framework") or "").strip()
            code = str(item.get("code") or item.get("framework_code") or item.get("frameworkCode") or "").strip()
            if not framework or not code:
                continue
            version = item.get("version_ref") or item.get("versionRef") or item.get("version")
            mappings.append(cls(framework=framework, code=code, version_ref=str(version) if version else None))
        return mappings


def normalize_evidence_types(value: Any) -> Set[str]:
    """
    Collapse the accepted evidence-type shapes into one set of names.

    Accepts a single string, a comma-joined string, a list of strings,
    or a list of {"name": ...} objects.
    """
    if value is None:
        return set()
    if isinstance(value, (set, frozenset)):
        items = list(value)
    elif isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        items = [value]

    names: Set[str] = set()
    for item in items:
        if isinstance(item, dict):
            item = item.get("name")
        if item is None:
            continue
        name = str(item).strip()
        if name:
            names.add(name)
    return names


class TestComponent(BaseModel):
    requirement: str
    evidence_types: Set[str] = Field(default_factory=set)
    acceptance_criteria: Optional[str] = None
    partial_criteria: Optional[str] = None
    reject_criteria: Optional[str] = None
    sort_order: int = 0

    @field_validator("evidence_types", mode="before")
    @classmethod
    def _normalize_evidence_types(cls, v):
        return normalize_evidence_types(v)


class ControlSummary(BaseModel):
    """Control fields needed for candidate search and ranking."""
    id: str
    control_code: str
    title: str
    description: Optional[str] = None
    topic_id: Optional[str] = None
    topic_title: Optional[str] = None
    iso_mappings: List[str] = Field(default_factory=list)
    framework_mappings: List[FrameworkMapping] = Field(default_factory=list)

    @field_validator("iso_mappings", mode="before")
    @classmethod
    def _listify_iso(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [c.strip() for c in v.split(",") if c.strip()]
        return [str(c).strip() for c in v if str(c).strip()]

    @field_validator("framework_mappings", mode="before")
    @classmethod
    def _parse_mappings(cls, v):
        return FrameworkMapping.parse_many(v)

    def searchable_text(self) -> str:
        return " ".join(
            part for part in (self.control_code, self.title, self.description, self.topic_title) if part
        ).lower()


class ControlDefinition(ControlSummary):
    """A compliance control with ownership and testing requirements."""
    owner_role: Optional[str] = None
    status: str = "enabled"
    sort_order: int = 0
    test_components: List[TestComponent] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def evidence_types(self) -> Set[str]:
        types: Set[str] = set()
        for component in self.test_components:
            types |= component.evidence_types
        return types

    @property
    def requirement_text(self) -> str:
        return "\n".join(c.requirement for c in self.test_components if c.requirement)

    @property
    def is_enabled(self) -> bool:
        return self.status.lower() == "enabled"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlDefinition":
        data = dict(data)
        topic = data.pop("topic", None)
        if isinstance(topic, dict):
            data.setdefault("topic_title", topic.get("title"))
        if "test_components" in data and data["test_components"] is None:
            data["test_components"] = []
        for fld in ("created_at", "updated_at"):
            data[fld] = parse_datetime(data.get(fld))
        return cls(**data)


class ControlCandidate(BaseModel):
    """A control ranked as a likely match for a document."""
    control_code: str
    title: str
    framework_codes: List[str] = Field(default_factory=list)
    score: int = 0
