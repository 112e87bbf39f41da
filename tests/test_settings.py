"""
Tests for persisted platform settings and the notification switches they drive
"""

import json
from decimal import Decimal

from app.models import PlatformSettings, Subscription, SubscriptionPlan
from app.webhook_security import create_webhook_signature

from .base import ApiTestCase


class TestPlatformSettings(ApiTestCase):
    def test_defaults(self):
        response = self.client.get("/settings", headers=self.auth(self.admin))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["version"], 1)
        self.assertEqual(body["system"]["platformName"], "Therapy Practice")
        self.assertTrue(body["notifications"]["emailNotifications"])
        self.assertEqual(body["security"]["passwordMinLength"], 8)

    def test_requires_admin(self):
        response = self.client.get("/settings", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 403)
        response = self.client.patch(
            "/settings/system", json={"platformName": "Mine"}, headers=self.auth(self.therapist)
        )
        self.assertEqual(response.status_code, 403)

    def test_partial_update_persists(self):
        admin = self.auth(self.admin)
        response = self.client.patch(
            "/settings/security", json={"sessionTimeout": 60}, headers=admin
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["sessionTimeout"], 60)
        self.assertEqual(response.json()["maxLoginAttempts"], 5)

        with self.session() as db:
            row = db.get(PlatformSettings, "default")
            self.assertEqual(row.security["sessionTimeout"], 60)
            self.assertEqual(row.version, 2)
            self.assertEqual(row.updated_by, "support@example.com")

        response = self.client.get("/settings/security", headers=admin)
        self.assertEqual(response.json()["sessionTimeout"], 60)

    def test_unknown_key_rejected_without_write(self):
        admin = self.auth(self.admin)
        self.client.get("/settings", headers=admin)

        response = self.client.patch(
            "/settings/system", json={"platformName": "Calm Minds", "theme": "dark"}, headers=admin
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.get("/settings", headers=admin)
        self.assertEqual(response.json()["system"]["platformName"], "Therapy Practice")
        self.assertEqual(response.json()["version"], 1)

    def test_out_of_range_value_rejected(self):
        response = self.client.patch(
            "/settings/security", json={"passwordMinLength": 4}, headers=self.auth(self.admin)
        )
        self.assertEqual(response.status_code, 400)

    def test_empty_update_rejected(self):
        response = self.client.patch("/settings/notifications", json={}, headers=self.auth(self.admin))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "No settings provided")

    def test_platform_name_used_in_emails(self):
        self.client.patch(
            "/settings/system", json={"platformName": "Calm Minds"}, headers=self.auth(self.admin)
        )
        self.create_ticket(self.clinic)
        kwargs = self.emails["send_ticket_created_email"].await_args.kwargs
        self.assertEqual(kwargs["platform_name"], "Calm Minds")

    def test_support_emails_can_be_disabled(self):
        self.client.patch(
            "/settings/notifications",
            json={"notifyOnSupportTicket": False},
            headers=self.auth(self.admin),
        )
        self.create_ticket(self.clinic)
        self.emails["send_ticket_created_email"].assert_not_awaited()

    def test_master_switch_disables_all_email(self):
        self.client.patch(
            "/settings/notifications",
            json={"emailNotifications": False},
            headers=self.auth(self.admin),
        )
        ticket = self.create_ticket(self.clinic)
        self.client.patch(
            f"/support/admin/tickets/{ticket['id']}/resolve",
            json={"resolutionNote": "Refund issued to card"},
            headers=self.auth(self.admin),
        )
        self.emails["send_ticket_created_email"].assert_not_awaited()
        self.emails["send_ticket_resolved_email"].assert_not_awaited()

    def test_failed_payment_emails_can_be_disabled(self):
        with self.session() as db:
            plan = SubscriptionPlan(plan_name="Practice Pro", price=Decimal("49.00"))
            db.add(plan)
            db.flush()
            db.add(
                Subscription(
                    stripe_subscription_id="sub_abc",
                    status="active",
                    therapist_id=self.therapist_id,
                    subscription_plan_id=plan.id,
                )
            )
            db.commit()

        self.client.patch(
            "/settings/notifications",
            json={"notifyOnFailedPayment": False},
            headers=self.auth(self.admin),
        )
        event = {
            "id": "evt_f",
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "subscription": "sub_abc", "amount_due": 4900}},
        }
        body = json.dumps(event).encode("utf-8")
        response = self.client.post(
            "/webhooks/stripe",
            content=body,
            headers={"stripe-signature": create_webhook_signature("whsec_test", body)},
        )
        self.assertEqual(response.status_code, 200)
        self.emails["send_payment_failed_email"].assert_not_awaited()
