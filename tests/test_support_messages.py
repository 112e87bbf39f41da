"""
Tests for ticket message threads, read tracking and attachments
"""

from unittest.mock import patch

from app.models import SupportMessage, SupportTicket
from app.storage import StorageError

from .base import ApiTestCase


class TestSupportMessages(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.ticket = self.create_ticket(self.clinic)
        self.messages_url = f"/support/tickets/{self.ticket['id']}/messages"

    def send(self, principal, text="Any update on this?", **extra):
        return self.client.post(
            self.messages_url, json={"message": text, **extra}, headers=self.auth(principal)
        )

    def ticket_status(self, ticket_id=None) -> str:
        with self.session() as db:
            return db.get(SupportTicket, ticket_id or self.ticket["id"]).status

    def test_owner_sends_message(self):
        response = self.send(self.clinic)
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["senderType"], "USER")
        self.assertEqual(data["senderId"], self.clinic_id)
        self.assertEqual(data["senderName"], "Dana Clinic")
        self.assertEqual(data["senderEmail"], "dana@harbor.example")
        self.assertFalse(data["isRead"])
        self.assertEqual(self.ticket_status(), "open")

    def test_admin_message_promotes_open_ticket(self):
        response = self.send(self.admin, "Looking into this now")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["senderType"], "ADMIN")
        self.assertEqual(self.ticket_status(), "in-progress")

    def test_admin_message_leaves_resolved_ticket_alone(self):
        self.client.patch(
            f"/support/admin/tickets/{self.ticket['id']}/status",
            json={"status": "resolved"},
            headers=self.auth(self.admin),
        )
        self.send(self.admin, "One more note")
        self.assertEqual(self.ticket_status(), "resolved")

    def test_cannot_message_closed_ticket(self):
        self.client.patch(
            f"/support/admin/tickets/{self.ticket['id']}/close", headers=self.auth(self.admin)
        )
        response = self.send(self.clinic)
        self.assertEqual(response.status_code, 400)

    def test_non_owner_cannot_message(self):
        response = self.send(self.other_clinic)
        self.assertEqual(response.status_code, 403)

    def test_reading_marks_only_counterpart_messages_read(self):
        self.send(self.admin, "First admin message")
        self.send(self.admin, "Second admin message")
        self.send(self.clinic, "Owner message")

        response = self.client.get(self.messages_url, headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 3)
        self.assertEqual(
            [m["message"] for m in body["messages"]],
            ["First admin message", "Second admin message", "Owner message"],
        )
        # Response reflects the thread as it was before this read
        self.assertFalse(any(m["isRead"] for m in body["messages"]))

        with self.session() as db:
            rows = db.query(SupportMessage).filter(SupportMessage.support_id == self.ticket["id"]).all()
            flags = {row.message: row.is_read for row in rows}
        self.assertEqual(
            flags,
            {"First admin message": True, "Second admin message": True, "Owner message": False},
        )

    def test_unread_counts(self):
        self.send(self.admin, "First admin message")
        self.send(self.admin, "Second admin message")
        self.send(self.clinic, "Owner message")
        other = self.create_ticket(self.therapist)
        self.client.post(
            f"/support/tickets/{other['id']}/messages",
            json={"message": "Therapist message"},
            headers=self.auth(self.therapist),
        )

        url = f"/support/tickets/{self.ticket['id']}/unread-count"
        response = self.client.get(url, headers=self.auth(self.clinic))
        self.assertEqual(response.json(), {"ticketId": self.ticket["id"], "unreadCount": 2})
        response = self.client.get(url, headers=self.auth(self.admin))
        self.assertEqual(response.json()["unreadCount"], 1)

        response = self.client.get("/support/unread-messages", headers=self.auth(self.clinic))
        self.assertEqual(response.json(), {"totalUnreadMessages": 2})
        response = self.client.get("/support/unread-messages", headers=self.auth(self.admin))
        self.assertEqual(response.json(), {"totalUnreadMessages": 2})
        response = self.client.get("/support/unread-messages", headers=self.auth(self.therapist))
        self.assertEqual(response.json(), {"totalUnreadMessages": 0})

        self.client.get(self.messages_url, headers=self.auth(self.clinic))
        response = self.client.get(url, headers=self.auth(self.clinic))
        self.assertEqual(response.json()["unreadCount"], 0)

    def test_cannot_delete_message_of_another_owner(self):
        other = self.create_ticket(self.therapist)
        sent = self.client.post(
            f"/support/tickets/{other['id']}/messages",
            json={"message": "Therapist message"},
            headers=self.auth(self.therapist),
        ).json()["data"]

        response = self.client.delete(f"/support/messages/{sent['id']}", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "You can only delete your own messages")

    def test_sender_and_admin_can_delete(self):
        mine = self.send(self.clinic).json()["data"]
        response = self.client.delete(f"/support/messages/{mine['id']}", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 200)

        another = self.send(self.clinic, "Second message").json()["data"]
        response = self.client.delete(f"/support/messages/{another['id']}", headers=self.auth(self.admin))
        self.assertEqual(response.status_code, 200)

        response = self.client.delete(f"/support/messages/{another['id']}", headers=self.auth(self.admin))
        self.assertEqual(response.status_code, 404)

    def test_owner_cannot_delete_message_on_closed_ticket(self):
        mine = self.send(self.clinic).json()["data"]
        self.client.patch(
            f"/support/admin/tickets/{self.ticket['id']}/close", headers=self.auth(self.admin)
        )
        response = self.client.delete(f"/support/messages/{mine['id']}", headers=self.auth(self.clinic))
        self.assertEqual(response.status_code, 400)

    def test_attachment_must_belong_to_ticket(self):
        response = self.send(
            self.clinic,
            attachments=[
                {
                    "url": "https://files.example/support/other/a.pdf",
                    "key": "support/other-ticket/a.pdf",
                    "filename": "a.pdf",
                }
            ],
        )
        self.assertEqual(response.status_code, 400)

    def test_upload_attachment_and_reference_it(self):
        def fake_upload(key, content, content_type, metadata=None):
            return {"key": key, "url": f"https://files.example/{key}"}

        with patch("app.storage.upload_object", side_effect=fake_upload) as upload:
            response = self.client.post(
                f"/support/tickets/{self.ticket['id']}/attachments",
                files={"file": ("../Invoice March.pdf", b"%PDF-1.4 test", "application/pdf")},
                headers=self.auth(self.clinic),
            )
        self.assertEqual(response.status_code, 201, response.text)
        attachment = response.json()
        self.assertTrue(attachment["key"].startswith(f"support/{self.ticket['id']}/"))
        self.assertEqual(attachment["filename"], "Invoice_March.pdf")
        self.assertEqual(attachment["size"], len(b"%PDF-1.4 test"))
        upload.assert_called_once()

        response = self.send(self.clinic, "See attached invoice", attachments=[attachment])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["attachments"][0]["key"], attachment["key"])

    def test_upload_rejects_disallowed_type(self):
        with patch("app.storage.upload_object") as upload:
            response = self.client.post(
                f"/support/tickets/{self.ticket['id']}/attachments",
                files={"file": ("run.sh", b"#!/bin/sh", "application/x-sh")},
                headers=self.auth(self.clinic),
            )
        self.assertEqual(response.status_code, 400)
        upload.assert_not_called()

    def test_upload_storage_failure_is_502(self):
        with patch("app.storage.upload_object", side_effect=StorageError("bucket unavailable")):
            response = self.client.post(
                f"/support/tickets/{self.ticket['id']}/attachments",
                files={"file": ("scan.png", b"\x89PNG data", "image/png")},
                headers=self.auth(self.clinic),
            )
        self.assertEqual(response.status_code, 502)
