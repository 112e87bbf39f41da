"""Settings repository - persisted singleton row for platform settings"""

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import PlatformSettings
from .schemas import NotificationSettings, SecuritySettings, SystemSettings

SETTINGS_ROW_ID = "default"


class SettingsRepository:
    """Repository for platform settings"""

    @staticmethod
    def get(db: Session) -> Optional[PlatformSettings]:
        return db.query(PlatformSettings).filter(PlatformSettings.id == SETTINGS_ROW_ID).first()

    @staticmethod
    def get_or_create(db: Session) -> PlatformSettings:
        """Load the settings row, inserting defaults on first access"""
        row = SettingsRepository.get(db)
        if row:
            return row

        row = PlatformSettings(
            id=SETTINGS_ROW_ID,
            security=SecuritySettings().model_dump(),
            system=SystemSettings().model_dump(),
            notifications=NotificationSettings().model_dump(),
            version=1,
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # Another instance inserted the defaults first
            db.rollback()
            return SettingsRepository.get(db)
        db.refresh(row)
        return row

    @staticmethod
    def lock_for_update(db: Session) -> PlatformSettings:
        """Select the settings row with a row lock held until commit"""
        SettingsRepository.get_or_create(db)
        return (
            db.query(PlatformSettings)
            .filter(PlatformSettings.id == SETTINGS_ROW_ID)
            .with_for_update()
            .populate_existing()
            .one()
        )

    @staticmethod
    def save_section(
        db: Session, row: PlatformSettings, section: str, values: dict, updated_by: Optional[str]
    ) -> PlatformSettings:
        """Write one section back and release the lock"""
        setattr(row, section, values)
        row.version = (row.version or 0) + 1
        row.updated_by = updated_by
        db.commit()
        db.refresh(row)
        return row
