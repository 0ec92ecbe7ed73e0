from typing import Any
from fastapi import APIRouter, Path, status

from dependencies import FrameworkServiceDep
from entities.framework import FrameworkCreate
from common.logging import get_logger
from common.validation import validate_uuid
from common.responses import create_success_response

router = APIRouter(prefix="/frameworks", tags=["Frameworks"])
logger = get_logger("frameworks_api")


@router.get("",
    summary="List frameworks",
)
async def list_frameworks(framework_service: FrameworkServiceDep) -> Any:
    frameworks = await framework_service.list_frameworks()
    return create_success_response(data=frameworks, meta={"count": len(frameworks)})


@router.get("/active",
    summary="The currently enabled framework",
    description="Returns null data when no framework is enabled.",
)
async def get_active_framework(framework_service: FrameworkServiceDep) -> Any:
    active = await framework_service.get_active_framework()
    return create_success_response(data=active)


@router.post("",
    summary="Create a framework",
    description="New frameworks start disabled unless status 'enabled' is requested.",
    status_code=status.HTTP_201_CREATED,
)
async def create_framework(req: FrameworkCreate, framework_service: FrameworkServiceDep) -> Any:
    framework = await framework_service.create_framework(req)
    return create_success_response(data=framework, status_code=status.HTTP_201_CREATED)


@router.post("/{framework_id}/enable",
    summary="Enable a framework",
    description="Disables every other framework in the same transaction.",
)
async def enable_framework(
    framework_service: FrameworkServiceDep,
    framework_id: str = Path(..., description="Framework UUID"),
) -> Any:
    framework_id = validate_uuid(framework_id, "framework_id")
    framework = await framework_service.enable_framework(framework_id)
    return create_success_response(data=framework)


@router.post("/{framework_id}/disable",
    summary="Disable a framework",
)
async def disable_framework(
    framework_service: FrameworkServiceDep,
    framework_id: str = Path(..., description="Framework UUID"),
) -> Any:
    framework_id = validate_uuid(framework_id, "framework_id")
    framework = await framework_service.disable_framework(framework_id)
    return create_success_response(data=framework)
