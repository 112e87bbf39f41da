"""Account directory - lookups for admin, clinic and therapist records"""

from typing import Optional, Union

from sqlalchemy.orm import Session

from ...models import ROLE_ADMIN, ROLE_CLINIC, ROLE_THERAPIST, Admin, Clinic, Therapist

Owner = Union[Clinic, Therapist]

_MODELS = {
    ROLE_ADMIN: Admin,
    ROLE_CLINIC: Clinic,
    ROLE_THERAPIST: Therapist,
}


class AccountDirectory:
    """Single lookup capability for every account type"""

    @staticmethod
    def get_account(db: Session, role: str, account_id: str) -> Optional[Union[Admin, Clinic, Therapist]]:
        model = _MODELS.get(role)
        if model is None or not account_id:
            return None
        return db.query(model).filter(model.id == account_id).first()

    @staticmethod
    def get_owner(db: Session, owner_type: str, owner_id: str) -> Optional[Owner]:
        """Resolve a ticket or subscription owner reference"""
        if owner_type not in (ROLE_CLINIC, ROLE_THERAPIST):
            return None
        return AccountDirectory.get_account(db, owner_type, owner_id)

    @staticmethod
    def get_owners(db: Session, refs: set[tuple[str, str]]) -> dict[tuple[str, str], Owner]:
        """Batch-resolve (owner_type, owner_id) pairs for list views"""
        found = {}
        clinic_ids = [owner_id for owner_type, owner_id in refs if owner_type == ROLE_CLINIC]
        therapist_ids = [owner_id for owner_type, owner_id in refs if owner_type == ROLE_THERAPIST]
        if clinic_ids:
            for clinic in db.query(Clinic).filter(Clinic.id.in_(clinic_ids)).all():
                found[(ROLE_CLINIC, clinic.id)] = clinic
        if therapist_ids:
            for therapist in db.query(Therapist).filter(Therapist.id.in_(therapist_ids)).all():
                found[(ROLE_THERAPIST, therapist.id)] = therapist
        return found
