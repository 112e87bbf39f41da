"""
Tests for the support ticket lifecycle
"""

import asyncio

from app.domain.support.service import TicketService
from app.models import ROLE_THERAPIST, SupportMessage, SupportTicket
from app.shared.errors import InvalidStateError

from .base import ApiTestCase, DatabaseTestCase


class TestTicketLifecycleService(DatabaseTestCase):
    """Service-level walk through the whole lifecycle"""

    def test_open_reply_resolve_close_then_update_fails(self):
        with self.session() as db:
            service = TicketService(db)

            created = asyncio.run(
                service.create_ticket(self.therapist_id, ROLE_THERAPIST, "Billing issue", "Charged twice")
            )
            ticket_id = created["ticket"].id
            self.assertEqual(created["ticket"].status, "open")

            replied = asyncio.run(
                service.reply_as_admin(ticket_id, "support@example.com", "We are looking into it")
            )
            self.assertEqual(replied["ticket"].status, "in-progress")
            self.assertEqual(replied["ticket"].adminReply, "We are looking into it")
            self.assertEqual(replied["ticket"].adminEmail, "support@example.com")

            resolved = asyncio.run(service.resolve_ticket(ticket_id, "Refunded"))
            self.assertEqual(resolved["ticket"].status, "resolved")
            self.assertIsNotNone(resolved["ticket"].resolvedAt)
            self.assertEqual(resolved["ticket"].resolutionNote, "Refunded")

            closed = service.close_ticket(ticket_id)
            self.assertEqual(closed["ticket"].status, "closed")

            with self.assertRaises(InvalidStateError):
                service.update_ticket(ticket_id, self.therapist, subject="Billing issue again")

        self.emails["send_ticket_created_email"].assert_awaited_once()
        self.emails["send_admin_reply_email"].assert_awaited_once()
        self.emails["send_ticket_resolved_email"].assert_awaited_once()
        kwargs = self.emails["send_ticket_resolved_email"].await_args.kwargs
        self.assertEqual(kwargs["to"], "riley@therapy.example")
        self.assertEqual(kwargs["resolution_note"], "Refunded")
        self.assertEqual(kwargs["platform_name"], "Therapy Practice")

    def test_close_keeps_existing_resolved_at(self):
        with self.session() as db:
            service = TicketService(db)
            created = asyncio.run(
                service.create_ticket(self.therapist_id, ROLE_THERAPIST, "Login trouble", "Cannot sign in")
            )
            ticket_id = created["ticket"].id
            resolved = asyncio.run(service.resolve_ticket(ticket_id, "Password reset sent"))
            closed = service.close_ticket(ticket_id)
            self.assertEqual(closed["ticket"].resolvedAt, resolved["ticket"].resolvedAt)


class TestTicketApi(ApiTestCase):
    """HTTP-level ticket tests"""

    def test_create_ticket(self):
        response = self.client.post(
            "/support/tickets",
            json={"subject": "  Billing issue  ", "message": "Charged twice this month"},
            headers=self.auth(self.clinic),
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Support ticket created successfully")
        ticket = body["ticket"]
        self.assertEqual(ticket["status"], "open")
        self.assertEqual(ticket["subject"], "Billing issue")
        self.assertEqual(ticket["ownerType"], "CLINIC")
        self.assertEqual(ticket["ownerId"], self.clinic_id)
        self.assertEqual(ticket["owner"]["privatePracticeName"], "Harbor Counseling")
        self.emails["send_ticket_created_email"].assert_awaited_once()

    def test_owner_foreign_key_matches_owner_reference(self):
        clinic_ticket = self.create_ticket(self.clinic)
        therapist_ticket = self.create_ticket(self.therapist)

        with self.session() as db:
            row = db.get(SupportTicket, clinic_ticket["id"])
            self.assertEqual(row.clinic_id, self.clinic_id)
            self.assertIsNone(row.therapist_id)

            row = db.get(SupportTicket, therapist_ticket["id"])
            self.assertEqual(row.therapist_id, self.therapist_id)
            self.assertIsNone(row.clinic_id)

    def test_create_requires_authentication(self):
        response = self.client.post(
            "/support/tickets", json={"subject": "Billing issue", "message": "Charged twice this month"}
        )
        self.assertEqual(response.status_code, 401)

    def test_admin_cannot_create_ticket(self):
        response = self.client.post(
            "/support/tickets",
            json={"subject": "Billing issue", "message": "Charged twice this month"},
            headers=self.auth(self.admin),
        )
        self.assertEqual(response.status_code, 400)

    def test_invalid_payload_is_400(self):
        response = self.client.post(
            "/support/tickets",
            json={"subject": "Hi", "message": "Charged twice this month"},
            headers=self.auth(self.clinic),
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("errors", response.json())

    def test_unknown_field_is_rejected(self):
        response = self.client.post(
            "/support/tickets",
            json={"subject": "Billing issue", "message": "Charged twice this month", "status": "closed"},
            headers=self.auth(self.clinic),
        )
        self.assertEqual(response.status_code, 400)

    def test_notification_failure_does_not_fail_request(self):
        self.emails["send_ticket_created_email"].side_effect = Exception("SMTP down")
        response = self.client.post(
            "/support/tickets",
            json={"subject": "Billing issue", "message": "Charged twice this month"},
            headers=self.auth(self.clinic),
        )
        self.assertEqual(response.status_code, 201)
        with self.session() as db:
            self.assertEqual(db.query(SupportTicket).count(), 1)

    def test_get_ticket_access(self):
        ticket = self.create_ticket(self.clinic)
        url = f"/support/tickets/{ticket['id']}"

        self.assertEqual(self.client.get(url, headers=self.auth(self.clinic)).status_code, 200)
        self.assertEqual(self.client.get(url, headers=self.auth(self.admin)).status_code, 200)

        response = self.client.get(url, headers=self.auth(self.other_clinic))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "You do not have access to this ticket")

        response = self.client.get("/support/tickets/missing", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 404)

    def test_list_my_tickets_only_returns_own(self):
        self.create_ticket(self.clinic, subject="First clinic ticket")
        self.create_ticket(self.clinic, subject="Second clinic ticket")
        self.create_ticket(self.therapist)

        response = self.client.get("/support/tickets", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 2)
        self.assertTrue(all(t["ownerId"] == self.clinic_id for t in body["tickets"]))

        response = self.client.get(
            "/support/tickets", params={"search": "second"}, headers=self.auth(self.clinic)
        )
        self.assertEqual(response.json()["total"], 1)

    def test_admin_lists_all_tickets_with_filters(self):
        self.create_ticket(self.clinic)
        self.create_ticket(self.therapist)

        response = self.client.get("/support/admin/tickets", headers=self.auth(self.admin))
        self.assertEqual(response.json()["total"], 2)

        response = self.client.get(
            "/support/admin/tickets", params={"ownerType": "THERAPIST"}, headers=self.auth(self.admin)
        )
        self.assertEqual(response.json()["total"], 1)

        response = self.client.get("/support/admin/tickets", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 403)

    def test_owner_updates_ticket(self):
        ticket = self.create_ticket(self.clinic)
        url = f"/support/tickets/{ticket['id']}"

        response = self.client.patch(url, json={"subject": "Double charge"}, headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["ticket"]["subject"], "Double charge")

        response = self.client.patch(url, json={}, headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 400)

        response = self.client.patch(
            url, json={"subject": "Not my ticket"}, headers=self.auth(self.other_clinic)
        )
        self.assertEqual(response.status_code, 403)

    def test_delete_only_while_open(self):
        admin = self.auth(self.admin)
        owner = self.auth(self.clinic)

        open_ticket = self.create_ticket(self.clinic)
        response = self.client.delete(f"/support/tickets/{open_ticket['id']}", headers=owner)
        self.assertEqual(response.status_code, 200)
        with self.session() as db:
            self.assertIsNone(db.get(SupportTicket, open_ticket["id"]))

        for status in ("in-progress", "resolved", "closed"):
            ticket = self.create_ticket(self.clinic)
            response = self.client.patch(
                f"/support/admin/tickets/{ticket['id']}/status", json={"status": status}, headers=admin
            )
            self.assertEqual(response.status_code, 200, response.text)

            response = self.client.delete(f"/support/tickets/{ticket['id']}", headers=owner)
            self.assertEqual(response.status_code, 400, status)
            self.assertEqual(response.json()["detail"], "Can only delete open tickets")

    def test_non_owner_cannot_delete(self):
        ticket = self.create_ticket(self.clinic)
        response = self.client.delete(
            f"/support/tickets/{ticket['id']}", headers=self.auth(self.other_clinic)
        )
        self.assertEqual(response.status_code, 403)

    def test_deleting_ticket_removes_its_messages(self):
        ticket = self.create_ticket(self.clinic)
        self.client.post(
            f"/support/tickets/{ticket['id']}/messages",
            json={"message": "Any update?"},
            headers=self.auth(self.clinic),
        )
        response = self.client.delete(f"/support/tickets/{ticket['id']}", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 200)

        with self.session() as db:
            self.assertEqual(db.query(SupportMessage).count(), 0)

    def test_admin_reply_keeps_resolved_status(self):
        ticket = self.create_ticket(self.clinic)
        admin = self.auth(self.admin)
        self.client.patch(
            f"/support/admin/tickets/{ticket['id']}/resolve",
            json={"resolutionNote": "Refund issued to card"},
            headers=admin,
        )

        response = self.client.post(
            f"/support/admin/tickets/{ticket['id']}/reply",
            json={"reply": "Following up on the refund"},
            headers=admin,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["ticket"]["status"], "resolved")

    def test_admin_reply_to_closed_ticket_fails(self):
        ticket = self.create_ticket(self.clinic)
        admin = self.auth(self.admin)
        self.client.patch(f"/support/admin/tickets/{ticket['id']}/close", headers=admin)

        response = self.client.post(
            f"/support/admin/tickets/{ticket['id']}/reply",
            json={"reply": "Following up on the refund"},
            headers=admin,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Cannot reply to a closed ticket")

    def test_close_twice_fails(self):
        ticket = self.create_ticket(self.clinic)
        admin = self.auth(self.admin)
        url = f"/support/admin/tickets/{ticket['id']}/close"
        self.assertEqual(self.client.patch(url, headers=admin).status_code, 200)
        response = self.client.patch(url, headers=admin)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Ticket is already closed")

    def test_update_status_rules(self):
        ticket = self.create_ticket(self.clinic)
        admin = self.auth(self.admin)
        url = f"/support/admin/tickets/{ticket['id']}/status"

        response = self.client.patch(url, json={"status": "pending"}, headers=admin)
        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()["detail"].startswith("Invalid status. Must be one of:"))

        response = self.client.patch(url, json={"status": "resolved"}, headers=admin)
        self.assertIsNotNone(response.json()["ticket"]["resolvedAt"])

        # Admins may reopen anything that is not closed
        response = self.client.patch(url, json={"status": "open"}, headers=admin)
        self.assertEqual(response.json()["ticket"]["status"], "open")

        self.client.patch(url, json={"status": "closed"}, headers=admin)
        response = self.client.patch(url, json={"status": "open"}, headers=admin)
        self.assertEqual(response.status_code, 400)

    def test_reopening_clears_resolved_at(self):
        ticket = self.create_ticket(self.clinic)
        admin = self.auth(self.admin)
        url = f"/support/admin/tickets/{ticket['id']}/status"

        self.client.patch(url, json={"status": "resolved"}, headers=admin)
        response = self.client.patch(url, json={"status": "in-progress"}, headers=admin)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["ticket"]["resolvedAt"])

        self.client.patch(url, json={"status": "resolved"}, headers=admin)
        response = self.client.patch(url, json={"status": "open"}, headers=admin)
        self.assertIsNone(response.json()["ticket"]["resolvedAt"])
        with self.session() as db:
            self.assertIsNone(db.get(SupportTicket, ticket["id"]).resolved_at)

    def test_search_treats_wildcards_literally(self):
        self.create_ticket(self.clinic, subject="Refund of 50% requested")
        self.create_ticket(self.clinic, subject="Refund of 500 dollars")
        self.create_ticket(self.clinic, subject="Invoice user_name wrong")
        self.create_ticket(self.clinic, subject="Invoice username wrong")

        response = self.client.get(
            "/support/tickets", params={"search": "50%"}, headers=self.auth(self.clinic)
        )
        self.assertEqual(response.json()["total"], 1)
        self.assertEqual(response.json()["tickets"][0]["subject"], "Refund of 50% requested")

        response = self.client.get(
            "/support/tickets", params={"search": "user_name"}, headers=self.auth(self.clinic)
        )
        self.assertEqual(response.json()["total"], 1)

    def test_status_update_requires_admin(self):
        ticket = self.create_ticket(self.clinic)
        response = self.client.patch(
            f"/support/admin/tickets/{ticket['id']}/status",
            json={"status": "closed"},
            headers=self.auth(self.clinic),
        )
        self.assertEqual(response.status_code, 403)

    def test_ticket_stats(self):
        first = self.create_ticket(self.clinic)
        self.create_ticket(self.clinic)
        self.create_ticket(self.therapist)
        admin = self.auth(self.admin)
        self.client.patch(f"/support/admin/tickets/{first['id']}/close", headers=admin)

        response = self.client.get("/support/admin/stats", headers=admin)
        self.assertEqual(response.status_code, 200)
        stats = response.json()
        self.assertEqual(stats["total"], 3)
        self.assertEqual(
            stats["byStatus"], {"open": 2, "inProgress": 0, "resolved": 0, "closed": 1}
        )
        self.assertEqual(stats["byUserType"], {"clinic": 2, "therapist": 1})
