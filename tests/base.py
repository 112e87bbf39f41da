"""
Shared fixtures for API tests

Each test gets a fresh in-memory schema, one admin, two clinics and one
therapist, and outbound email replaced with AsyncMocks.
"""

import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.auth import Principal, create_access_token
from app.database import Base, SessionLocal, engine
from app.main import app
from app.models import ROLE_ADMIN, ROLE_CLINIC, ROLE_THERAPIST, Admin, Clinic, Therapist

EMAIL_FUNCTIONS = (
    "send_ticket_created_email",
    "send_admin_reply_email",
    "send_ticket_resolved_email",
    "send_payment_failed_email",
)


class DatabaseTestCase(unittest.TestCase):
    """Fresh schema and seeded accounts per test"""

    def setUp(self):
        Base.metadata.create_all(bind=engine)

        with SessionLocal() as db:
            admin = Admin(full_name="Sam Support", email="support@example.com")
            clinic = Clinic(
                full_name="Dana Clinic",
                email="dana@harbor.example",
                private_practice_name="Harbor Counseling",
            )
            other_clinic = Clinic(full_name="Morgan Clinic", email="morgan@elm.example")
            therapist = Therapist(full_name="Riley Therapist", email="riley@therapy.example")
            db.add_all([admin, clinic, other_clinic, therapist])
            db.commit()
            self.admin_id = admin.id
            self.clinic_id = clinic.id
            self.other_clinic_id = other_clinic.id
            self.therapist_id = therapist.id

        self.admin = Principal(id=self.admin_id, role=ROLE_ADMIN, email="support@example.com")
        self.clinic = Principal(id=self.clinic_id, role=ROLE_CLINIC, email="dana@harbor.example")
        self.other_clinic = Principal(
            id=self.other_clinic_id, role=ROLE_CLINIC, email="morgan@elm.example"
        )
        self.therapist = Principal(
            id=self.therapist_id, role=ROLE_THERAPIST, email="riley@therapy.example"
        )

        self.emails = {}
        for name in EMAIL_FUNCTIONS:
            patcher = patch(f"app.email_service.{name}", new_callable=AsyncMock)
            self.emails[name] = patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        Base.metadata.drop_all(bind=engine)

    def session(self):
        return SessionLocal()


class ApiTestCase(DatabaseTestCase):
    """DatabaseTestCase plus a TestClient and bearer tokens"""

    def setUp(self):
        super().setUp()
        self.client = TestClient(app)

    @staticmethod
    def auth(principal: Principal) -> dict:
        token = create_access_token(principal.id, principal.role, principal.email)
        return {"Authorization": f"Bearer {token}"}

    def create_ticket(self, principal: Principal, subject="Billing issue", message="Charged twice this month") -> dict:
        response = self.client.post(
            "/support/tickets",
            json={"subject": subject, "message": message},
            headers=self.auth(principal),
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["ticket"]
