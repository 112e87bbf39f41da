"""Message service - per-ticket message threads with read tracking

Each message is sent either by support (ADMIN) or by the ticket owner (USER).
Reading a thread acknowledges it: the messages from the other side are
returned as stored and marked read in the same transaction.
"""

import logging
import uuid
from typing import Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from ... import storage
from ...auth import Principal
from ...models import (
    ROLE_ADMIN,
    ROLE_CLINIC,
    SENDER_ADMIN,
    SENDER_USER,
    TICKET_CLOSED,
    TICKET_IN_PROGRESS,
    TICKET_OPEN,
    SupportMessage,
)
from ...shared.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from ...utils.sanitization import safe_filename
from ..accounts import AccountDirectory
from .repository import SupportRepository
from .schemas import AttachmentInfo, message_to_response
from .service import TicketService

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024

ALLOWED_ATTACHMENT_TYPES = [
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
    "application/pdf",
    "text/plain",
]

FALLBACK_NAMES = {
    ROLE_ADMIN: "Admin",
    ROLE_CLINIC: "Clinic User",
}


def sender_type_for(principal: Principal) -> str:
    return SENDER_ADMIN if principal.is_admin else SENDER_USER


def counterpart_of(principal: Principal) -> str:
    """Sender type whose messages this principal reads"""
    return SENDER_USER if principal.is_admin else SENDER_ADMIN


class MessageService:
    """Service layer for support ticket messages"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SupportRepository()
        self.accounts = AccountDirectory()
        self.tickets = TicketService(db)

    def _ticket_for(self, ticket_id: str, principal: Principal):
        ticket = self.tickets.get_ticket_or_404(ticket_id)
        self.tickets.ensure_access(ticket, principal)
        return ticket

    def _sender_identity(self, principal: Principal) -> tuple[str, str]:
        """Display name and email for the sender, from their account record"""
        account = self.accounts.get_account(self.db, principal.role, principal.id)
        fallback = FALLBACK_NAMES.get(principal.role, "Therapist User")
        name = (account.full_name if account else None) or fallback
        email = (account.email if account else None) or principal.email or ""
        return name, email

    def send_message(
        self,
        ticket_id: str,
        principal: Principal,
        text: str,
        attachments: Optional[list[AttachmentInfo]] = None,
    ) -> dict:
        """Append a message to the thread; a first admin message moves an open ticket to in-progress"""
        ticket = self._ticket_for(ticket_id, principal)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot send messages to a closed ticket")

        for attachment in attachments or []:
            if not attachment.key.startswith(f"support/{ticket_id}/"):
                raise ValidationError("Attachment does not belong to this ticket")

        sender_name, sender_email = self._sender_identity(principal)
        sender_type = sender_type_for(principal)

        message = SupportMessage(
            support_id=ticket_id,
            sender_type=sender_type,
            sender_id=principal.id,
            sender_name=sender_name,
            sender_email=sender_email,
            message=text,
            attachments=[a.model_dump() for a in attachments] if attachments else None,
            is_read=False,
        )
        try:
            self.repo.create_message(self.db, message)
            if sender_type == SENDER_ADMIN:
                # Only promotes while still open, never touches later states
                self.repo.update_ticket_where_status(
                    self.db, ticket_id, (TICKET_OPEN,), status=TICKET_IN_PROGRESS
                )
            else:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(message)

        logger.info(f"💬 {sender_type} {principal.id} posted message {message.id} on ticket {ticket_id}")
        return {"message": "Message sent successfully", "data": message_to_response(message)}

    def get_messages(self, ticket_id: str, principal: Principal) -> dict:
        """
        Read-and-acknowledge: return the thread as stored, then mark the
        counterpart's messages read in the same transaction.
        """
        self._ticket_for(ticket_id, principal)

        messages = self.repo.get_messages(self.db, ticket_id)
        payload = [message_to_response(m) for m in messages]

        try:
            marked = self.repo.mark_read(self.db, ticket_id, counterpart_of(principal))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if marked:
            logger.debug(f"👁️ Marked {marked} messages read on ticket {ticket_id} for {principal.id}")

        return {"total": len(payload), "messages": payload}

    def unread_count(self, ticket_id: str, principal: Principal) -> dict:
        self._ticket_for(ticket_id, principal)
        count = self.repo.count_unread(self.db, counterpart_of(principal), ticket_id=ticket_id)
        return {"ticketId": ticket_id, "unreadCount": count}

    def total_unread_count(self, principal: Principal) -> dict:
        """Unread messages across every ticket the principal can see"""
        if principal.is_admin:
            count = self.repo.count_unread(self.db, SENDER_USER)
        else:
            count = self.repo.count_unread(
                self.db, SENDER_ADMIN, owner_type=principal.role, owner_id=principal.id
            )
        return {"totalUnreadMessages": count}

    def delete_message(self, message_id: str, principal: Principal) -> dict:
        """Senders may delete their own messages, admins any message"""
        message = self.repo.get_message(self.db, message_id)
        if not message:
            raise NotFoundError("Message not found")

        is_sender = (
            message.sender_id == principal.id
            and message.sender_type == sender_type_for(principal)
        )
        if not principal.is_admin and not is_sender:
            raise ForbiddenError("You can only delete your own messages")

        if not principal.is_admin and message.ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot delete messages from a closed ticket")

        self.repo.delete_message(self.db, message)
        logger.info(f"🗑️ Message {message_id} deleted by {principal.role} {principal.id}")
        return {"message": "Message deleted successfully"}

    async def upload_attachment(self, ticket_id: str, principal: Principal, file: UploadFile) -> dict:
        """Store a file for a later message on this ticket"""
        ticket = self._ticket_for(ticket_id, principal)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot add attachments to a closed ticket")

        if file.content_type not in ALLOWED_ATTACHMENT_TYPES:
            raise ValidationError(
                "Invalid file type. Only images, PDF and plain text files are allowed."
            )

        content = await file.read()
        if not content:
            raise ValidationError("Empty file")
        if len(content) > MAX_ATTACHMENT_BYTES:
            raise ValidationError("File too large. Maximum size is 10MB")

        filename = safe_filename(file.filename)
        key = f"support/{ticket_id}/{uuid.uuid4().hex}-{filename}"

        try:
            stored = storage.upload_object(
                key,
                content,
                file.content_type,
                metadata={"ticket-id": ticket_id, "uploaded-by": principal.id},
            )
        except storage.StorageError as e:
            raise UpstreamError("Failed to store attachment") from e

        return {
            "url": stored["url"],
            "key": stored["key"],
            "filename": filename,
            "contentType": file.content_type,
            "size": len(content),
        }
