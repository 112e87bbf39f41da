"""Settings router - admin endpoints for platform settings"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import Principal, require_admin
from ...database import get_db
from .schemas import (
    NotificationSettings,
    NotificationSettingsUpdate,
    PlatformSettingsResponse,
    SecuritySettings,
    SecuritySettingsUpdate,
    SystemSettings,
    SystemSettingsUpdate,
)
from .service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


def get_settings_service(db: Session = Depends(get_db)) -> SettingsService:
    """Dependency injection for SettingsService"""
    return SettingsService(db)


@router.get("", response_model=PlatformSettingsResponse)
async def get_all_settings(
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.get_settings()


@router.get("/security", response_model=SecuritySettings)
async def get_security_settings(
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.get_section("security")


@router.patch("/security", response_model=SecuritySettings)
async def update_security_settings(
    body: SecuritySettingsUpdate,
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.update_section("security", body, admin.email or admin.id)


@router.get("/system", response_model=SystemSettings)
async def get_system_settings(
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.get_section("system")


@router.patch("/system", response_model=SystemSettings)
async def update_system_settings(
    body: SystemSettingsUpdate,
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.update_section("system", body, admin.email or admin.id)


@router.get("/notifications", response_model=NotificationSettings)
async def get_notification_settings(
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.get_section("notifications")


@router.patch("/notifications", response_model=NotificationSettings)
async def update_notification_settings(
    body: NotificationSettingsUpdate,
    admin: Principal = Depends(require_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.update_section("notifications", body, admin.email or admin.id)
