"""Settings service - load and update persisted platform settings"""

import logging
from typing import Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...shared.errors import NotFoundError, ValidationError
from .repository import SettingsRepository
from .schemas import SECTIONS, NotificationSettings, SystemSettings

logger = logging.getLogger(__name__)


def _load_section(model: type[BaseModel], stored: Optional[dict]) -> BaseModel:
    """Build a section model from stored JSON, ignoring keys no longer recognized"""
    stored = stored or {}
    known = {key: value for key, value in stored.items() if key in model.model_fields}
    return model.model_validate(known)


class SettingsService:
    """Every read goes to the store so all instances see the same settings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SettingsRepository()

    def get_settings(self) -> dict:
        row = self.repo.get_or_create(self.db)
        result = {
            name: _load_section(model, getattr(row, name)).model_dump()
            for name, (model, _update) in SECTIONS.items()
        }
        result["version"] = row.version
        return result

    def get_section(self, section: str) -> BaseModel:
        if section not in SECTIONS:
            raise NotFoundError(f"Unknown settings section: {section}")
        model, _update = SECTIONS[section]
        row = self.repo.get_or_create(self.db)
        return _load_section(model, getattr(row, section))

    def update_section(self, section: str, update: BaseModel, updated_by: Optional[str]) -> BaseModel:
        """
        Apply a partial update to one section inside a single locked transaction.

        The merged section is revalidated as a whole before it is written.
        """
        if section not in SECTIONS:
            raise NotFoundError(f"Unknown settings section: {section}")
        model, update_model = SECTIONS[section]
        if not isinstance(update, update_model):
            raise ValidationError(f"Invalid payload for {section} settings")

        changes = update.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No settings provided")

        try:
            row = self.repo.lock_for_update(self.db)
            current = _load_section(model, getattr(row, section)).model_dump()
            merged = model.model_validate({**current, **changes})
            self.repo.save_section(self.db, row, section, merged.model_dump(), updated_by)
        except PydanticValidationError as e:
            self.db.rollback()
            raise ValidationError(f"Invalid {section} settings: {e.errors()[0]['msg']}") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ {section} settings updated by {updated_by}: {sorted(changes)}")
        return merged

    def get_notification_settings(self) -> NotificationSettings:
        return self.get_section("notifications")

    def get_system_settings(self) -> SystemSettings:
        return self.get_section("system")
