"""
Framework service: the single active framework and its lifecycle.
"""

from typing import List, Optional

from entities.framework import ActiveFramework, Framework, FrameworkCreate, FrameworkStatus
from repositories.framework_repository import FrameworkRepository
from common.exceptions import DatabaseException, ResourceNotFoundException
from common.logging import get_logger, log_business_event

logger = get_logger("framework_service")


class FrameworkService:
    def __init__(self, framework_repository: FrameworkRepository):
        self.framework_repository = framework_repository

    async def list_frameworks(self) -> List[Framework]:
        return await self.framework_repository.list()

    async def get_framework(self, framework_id: str) -> Framework:
        framework = await self.framework_repository.get_by_id(framework_id)
        if framework is None:
            raise ResourceNotFoundException(resource_type="Framework", resource_id=framework_id)
        return framework

    async def get_active_framework(self) -> Optional[ActiveFramework]:
        framework = await self.framework_repository.get_active_framework()
        return ActiveFramework.from_framework(framework) if framework else None

    async def create_framework(self, framework_create: FrameworkCreate) -> Framework:
        """Create a framework; asking for it enabled goes through enable_framework."""
        created = await self.framework_repository.create(framework_create)
        log_business_event(
            event_type="FRAMEWORK_CREATED",
            entity_type="framework",
            entity_id=created.id,
            action="create",
            details={"name": created.name, "version": created.version},
        )
        if framework_create.status == FrameworkStatus.ENABLED:
            return await self.enable_framework(created.id)
        return created

    async def enable_framework(self, framework_id: str) -> Framework:
        """Enable one framework and disable every other one in one transaction."""
        frameworks = await self.framework_repository.enable(framework_id)
        enabled = [f for f in frameworks if f.is_enabled]
        if len(enabled) != 1 or enabled[0].id != framework_id:
            raise DatabaseException(
                detail="Framework enable did not leave exactly one framework enabled",
                operation="enable_framework",
                context={"framework_id": framework_id, "enabled": [f.id for f in enabled]},
            )
        log_business_event(
            event_type="FRAMEWORK_ENABLED",
            entity_type="framework",
            entity_id=framework_id,
            action="enable",
            details={"name": enabled[0].name, "version": enabled[0].version},
        )
        return enabled[0]

    async def disable_framework(self, framework_id: str) -> Framework:
        framework = await self.framework_repository.disable(framework_id)
        log_business_event(
            event_type="FRAMEWORK_DISABLED",
            entity_type="framework",
            entity_id=framework_id,
            action="disable",
            details={"name": framework.name},
        )
        return framework


def create_framework_service(framework_repository: FrameworkRepository) -> FrameworkService:
    return FrameworkService(framework_repository)
