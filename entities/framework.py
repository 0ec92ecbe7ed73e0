"""
Framework entity models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, field_validator

from entities.document import parse_datetime


class FrameworkStatus(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


class Framework(BaseModel):
    """A named standard version; at most one is enabled at a time."""
    id: str
    name: str
    version: Optional[str] = None
    status: FrameworkStatus = FrameworkStatus.DISABLED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_enabled(self) -> bool:
        return self.status == FrameworkStatus.ENABLED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Framework":
        data = dict(data)
        data["status"] = str(data.get("status") or "disabled").lower()
        for fld in ("created_at", "updated_at"):
            data[fld] = parse_datetime(data.get(fld))
        return cls(**data)


class ActiveFramework(BaseModel):
    """Explicit active-framework context passed into resolvers and aggregators."""
    name: str
    version: Optional[str] = None

    @classmethod
    def from_framework(cls, framework: Framework) -> "ActiveFramework":
        return cls(name=framework.name, version=framework.version)


class FrameworkCreate(BaseModel):
    name: str
    version: Optional[str] = None
    status: FrameworkStatus = FrameworkStatus.DISABLED

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Framework name cannot be empty")
        return v
