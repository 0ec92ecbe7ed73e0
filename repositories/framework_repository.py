"""
Framework repository implementation using Supabase.
"""

from typing import List, Optional

from repositories.base import SupabaseRepository
from entities.framework import Framework, FrameworkCreate, FrameworkStatus
from common.exceptions import ResourceConflictException, ResourceNotFoundException
from common.logging import get_logger

logger = get_logger("framework_repository")


class FrameworkRepository(SupabaseRepository[Framework]):

    def __init__(self, supabase_client, table_name: str = "frameworks"):
        super().__init__(supabase_client, table_name)

    async def create(self, framework_create: FrameworkCreate) -> Framework:
        if await self.get_by_name(framework_create.name):
            raise ResourceConflictException(
                detail=f"Framework '{framework_create.name}' already exists",
                resource_type="Framework",
                resource_id=framework_create.name,
            )
        # New frameworks start disabled; enabling goes through enable().
        data = framework_create.model_dump(mode="json")
        data["status"] = FrameworkStatus.DISABLED.value
        data = self._add_audit_fields(data)
        try:
            res = self.supabase.table(self.table_name).insert(data).execute()
        except Exception as e:
            raise self._database_error("create", e, name=framework_create.name)
        created = Framework.from_dict(res.data[0])
        logger.info(f"Created framework {created.name} ({created.id})")
        return created

    async def get_by_id(self, framework_id: str) -> Optional[Framework]:
        try:
            res = self.supabase.table(self.table_name).select("*").eq("id", framework_id).execute()
        except Exception as e:
            raise self._database_error("get", e, id=framework_id)
        return Framework.from_dict(res.data[0]) if res.data else None

    async def get_by_name(self, name: str) -> Optional[Framework]:
        try:
            res = self.supabase.table(self.table_name).select("*").eq("name", name).limit(1).execute()
        except Exception as e:
            raise self._database_error("get_by_name", e, name=name)
        return Framework.from_dict(res.data[0]) if res.data else None

    async def list(self) -> List[Framework]:
        try:
            res = self.supabase.table(self.table_name).select("*").order("name").execute()
        except Exception as e:
            raise self._database_error("list", e)
        return [Framework.from_dict(row) for row in res.data or []]

    async def get_active_framework(self) -> Optional[Framework]:
        try:
            res = (
                self.supabase.table(self.table_name)
                .select("*")
                .eq("status", FrameworkStatus.ENABLED.value)
                .order("updated_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise self._database_error("get_active", e)
        return Framework.from_dict(res.data[0]) if res.data else None

    async def enable(self, framework_id: str) -> List[Framework]:
        """Enable one framework and disable all others in a single DB transaction."""
        try:
            res = self.supabase.rpc("enable_framework", {"p_framework_id": framework_id}).execute()
        except Exception as e:
            if "not found" in str(e).lower():
                raise ResourceNotFoundException(resource_type="Framework", resource_id=framework_id)
            raise self._database_error("enable", e, id=framework_id)
        return [Framework.from_dict(row) for row in res.data or []]

    async def disable(self, framework_id: str) -> Framework:
        try:
            res = (
                self.supabase.table(self.table_name)
                .update(self._add_audit_fields({"status": FrameworkStatus.DISABLED.value}, is_update=True))
                .eq("id", framework_id)
                .execute()
            )
        except Exception as e:
            raise self._database_error("disable", e, id=framework_id)
        if not res.data:
            raise ResourceNotFoundException(resource_type="Framework", resource_id=framework_id)
        return Framework.from_dict(res.data[0])
