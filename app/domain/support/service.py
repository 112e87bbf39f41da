"""Ticket service - support ticket lifecycle

States: open -> in-progress -> resolved -> closed. Closed is terminal.
Owners edit and delete their own tickets; admins reply, resolve, close and
set the status explicitly. Owner emails go out after the write commits.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ...auth import Principal
from ...models import (
    OWNER_TYPES,
    TICKET_CLOSED,
    TICKET_IN_PROGRESS,
    TICKET_OPEN,
    TICKET_RESOLVED,
    TICKET_STATUSES,
    SupportTicket,
)
from ...services import notification_service
from ...shared.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..accounts import AccountDirectory
from .repository import SupportRepository
from .schemas import ticket_to_response

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (TICKET_OPEN, TICKET_IN_PROGRESS)
MAX_PAGE_SIZE = 100


def _page_bounds(page: int, limit: int) -> tuple[int, int, int]:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


class TicketService:
    """Service layer for the support ticket lifecycle"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SupportRepository()
        self.accounts = AccountDirectory()

    # ------------------------------------------------------------ helpers

    def get_ticket_or_404(self, ticket_id: str) -> SupportTicket:
        ticket = self.repo.get_ticket(self.db, ticket_id)
        if not ticket:
            raise NotFoundError("Support ticket not found")
        return ticket

    @staticmethod
    def is_owner(ticket: SupportTicket, principal: Principal) -> bool:
        return ticket.owner_type == principal.role and ticket.owner_id == principal.id

    def ensure_access(self, ticket: SupportTicket, principal: Principal) -> None:
        """Admins see every ticket, everyone else only their own"""
        if not principal.is_admin and not self.is_owner(ticket, principal):
            logger.warning(f"⚠️ {principal.role} {principal.id} denied access to ticket {ticket.id}")
            raise ForbiddenError("You do not have access to this ticket")

    def _owner_of(self, ticket: SupportTicket):
        return self.accounts.get_owner(self.db, ticket.owner_type, ticket.owner_id)

    def _reload(self, ticket_id: str) -> SupportTicket:
        self.db.expire_all()
        return self.get_ticket_or_404(ticket_id)

    def _response(self, ticket: SupportTicket) -> dict:
        count = self.repo.count_messages(self.db, [ticket.id]).get(ticket.id, 0)
        return ticket_to_response(ticket, self._owner_of(ticket), count)

    def _page(self, total: int, page: int, limit: int, tickets: list[SupportTicket]) -> dict:
        owners = self.accounts.get_owners(self.db, {(t.owner_type, t.owner_id) for t in tickets})
        counts = self.repo.count_messages(self.db, [t.id for t in tickets])
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "tickets": [
                ticket_to_response(t, owners.get((t.owner_type, t.owner_id)), counts.get(t.id, 0))
                for t in tickets
            ],
        }

    # -------------------------------------------------------- owner side

    async def create_ticket(self, owner_id: str, owner_type: str, subject: str, message: str) -> dict:
        """Open a ticket for a clinic or therapist and confirm it by email"""
        if owner_type not in OWNER_TYPES:
            raise ValidationError("Only CLINIC and THERAPIST can create support tickets")

        owner = self.accounts.get_owner(self.db, owner_type, owner_id)
        if not owner:
            raise NotFoundError(f"{owner_type.capitalize()} account not found")

        ticket = SupportTicket.for_owner(
            owner_type, owner_id, subject=subject, message=message, status=TICKET_OPEN
        )
        ticket = self.repo.create_ticket(self.db, ticket)
        logger.info(f"🎫 Support ticket {ticket.id} created by {owner_type} {owner_id}")

        try:
            await notification_service.notify_ticket_created(self.db, ticket, owner)
        except Exception as e:
            logger.error(f"Failed to send ticket confirmation for {ticket.id}: {e}")

        return {
            "message": "Support ticket created successfully",
            "ticket": ticket_to_response(ticket, owner, 0),
        }

    def list_my_tickets(
        self,
        principal: Principal,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Tickets owned by the caller"""
        if status and status not in TICKET_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}")
        page, limit, offset = _page_bounds(page, limit)
        total, tickets = self.repo.list_tickets(
            self.db,
            owner_type=principal.role,
            owner_id=principal.id,
            status=status,
            search=search,
            offset=offset,
            limit=limit,
        )
        return self._page(total, page, limit, tickets)

    def get_ticket(self, ticket_id: str, principal: Principal) -> dict:
        ticket = self.get_ticket_or_404(ticket_id)
        self.ensure_access(ticket, principal)
        return self._response(ticket)

    def update_ticket(
        self,
        ticket_id: str,
        principal: Principal,
        subject: Optional[str] = None,
        message: Optional[str] = None,
    ) -> dict:
        """Owner edit of subject/message while the ticket is still being worked"""
        ticket = self.get_ticket_or_404(ticket_id)
        if not self.is_owner(ticket, principal):
            raise ForbiddenError("You do not have access to this ticket")
        if ticket.status not in EDITABLE_STATUSES:
            raise InvalidStateError("Cannot update a closed or resolved ticket")

        updates = {}
        if subject is not None:
            updates["subject"] = subject
        if message is not None:
            updates["message"] = message
        if not updates:
            raise ValidationError("Nothing to update. Provide a subject or message")

        if not self.repo.update_ticket_where_status(
            self.db, ticket_id, EDITABLE_STATUSES, **updates
        ):
            # Status moved on between the read and the write
            raise InvalidStateError("Cannot update a closed or resolved ticket")

        logger.info(f"✏️ Ticket {ticket_id} updated by owner {principal.id}")
        return {"message": "Ticket updated successfully", "ticket": self._response(self._reload(ticket_id))}

    def delete_ticket(self, ticket_id: str, principal: Principal) -> dict:
        """Owners may delete their ticket only while it is open"""
        ticket = self.get_ticket_or_404(ticket_id)
        if not self.is_owner(ticket, principal):
            raise ForbiddenError("You do not have access to this ticket")
        if ticket.status != TICKET_OPEN:
            raise InvalidStateError("Can only delete open tickets")

        if not self.repo.delete_ticket_where_status(self.db, ticket_id, principal.id, TICKET_OPEN):
            raise InvalidStateError("Can only delete open tickets")

        logger.info(f"🗑️ Ticket {ticket_id} deleted by owner {principal.id}")
        return {"message": "Ticket deleted successfully"}

    # -------------------------------------------------------- admin side

    def list_all_tickets(
        self,
        status: Optional[str] = None,
        owner_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        if status and status not in TICKET_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}")
        if owner_type and owner_type not in OWNER_TYPES:
            raise ValidationError(f"Invalid owner type. Must be one of: {', '.join(OWNER_TYPES)}")
        page, limit, offset = _page_bounds(page, limit)
        total, tickets = self.repo.list_tickets(
            self.db, owner_type=owner_type, status=status, search=search, offset=offset, limit=limit
        )
        return self._page(total, page, limit, tickets)

    async def reply_as_admin(self, ticket_id: str, admin_email: str, reply_text: str) -> dict:
        """
        Record the admin reply on the ticket and email the owner.

        Open and in-progress tickets move to in-progress. A resolved ticket
        stays resolved; reopening it takes an explicit status update.
        """
        ticket = self.get_ticket_or_404(ticket_id)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot reply to a closed ticket")

        next_status = case(
            (SupportTicket.status == TICKET_RESOLVED, TICKET_RESOLVED),
            else_=TICKET_IN_PROGRESS,
        )
        if not self.repo.update_ticket_unless_status(
            self.db,
            ticket_id,
            (TICKET_CLOSED,),
            admin_reply=reply_text,
            admin_replied_at=datetime.utcnow(),
            admin_email=admin_email,
            status=next_status,
        ):
            raise InvalidStateError("Cannot reply to a closed ticket")

        ticket = self._reload(ticket_id)
        owner = self._owner_of(ticket)
        logger.info(f"💬 Admin {admin_email} replied to ticket {ticket_id} (status {ticket.status})")

        try:
            await notification_service.notify_admin_replied(self.db, ticket, owner)
        except Exception as e:
            logger.error(f"Failed to send admin reply notification for {ticket_id}: {e}")

        return {"message": "Reply sent successfully", "ticket": self._response(ticket)}

    async def resolve_ticket(self, ticket_id: str, resolution_note: str) -> dict:
        ticket = self.get_ticket_or_404(ticket_id)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot resolve a closed ticket")

        if not self.repo.update_ticket_unless_status(
            self.db,
            ticket_id,
            (TICKET_CLOSED,),
            status=TICKET_RESOLVED,
            resolved_at=datetime.utcnow(),
            resolution_note=resolution_note,
        ):
            raise InvalidStateError("Cannot resolve a closed ticket")

        ticket = self._reload(ticket_id)
        owner = self._owner_of(ticket)
        logger.info(f"✅ Ticket {ticket_id} resolved")

        try:
            await notification_service.notify_ticket_resolved(self.db, ticket, owner)
        except Exception as e:
            logger.error(f"Failed to send resolution notification for {ticket_id}: {e}")

        return {"message": "Ticket resolved successfully", "ticket": self._response(ticket)}

    def close_ticket(self, ticket_id: str) -> dict:
        ticket = self.get_ticket_or_404(ticket_id)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Ticket is already closed")

        if not self.repo.update_ticket_unless_status(
            self.db,
            ticket_id,
            (TICKET_CLOSED,),
            status=TICKET_CLOSED,
            resolved_at=func.coalesce(SupportTicket.resolved_at, datetime.utcnow()),
        ):
            raise InvalidStateError("Ticket is already closed")

        logger.info(f"🔒 Ticket {ticket_id} closed")
        return {"message": "Ticket closed successfully", "ticket": self._response(self._reload(ticket_id))}

    def update_status(
        self, ticket_id: str, new_status: str, resolution_note: Optional[str] = None
    ) -> dict:
        """
        Explicit admin status change.

        Closed tickets cannot change status. Entering resolved or closed from
        another status stamps resolved_at; reopening clears it.
        """
        if new_status not in TICKET_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(TICKET_STATUSES)}")

        ticket = self.get_ticket_or_404(ticket_id)
        if ticket.status == TICKET_CLOSED:
            raise InvalidStateError("Cannot change the status of a closed ticket")

        current_status = ticket.status
        updates = {"status": new_status}
        if new_status in (TICKET_RESOLVED, TICKET_CLOSED) and current_status != new_status:
            updates["resolved_at"] = datetime.utcnow()
        elif new_status in (TICKET_OPEN, TICKET_IN_PROGRESS):
            updates["resolved_at"] = None
        if resolution_note:
            updates["resolution_note"] = resolution_note.strip()

        # Compare-and-set on the status that was read
        if not self.repo.update_ticket_where_status(self.db, ticket_id, (current_status,), **updates):
            latest = self._reload(ticket_id)
            if latest.status == TICKET_CLOSED:
                raise InvalidStateError("Cannot change the status of a closed ticket")
            raise InvalidStateError("Ticket status changed while updating, please retry")

        logger.info(f"🔄 Ticket {ticket_id} status {current_status} -> {new_status}")
        return {
            "message": "Ticket status updated successfully",
            "ticket": self._response(self._reload(ticket_id)),
        }

    def get_ticket_stats(self) -> dict:
        """Counts by status and by owner type"""
        by_status = self.repo.count_by_status(self.db)
        by_owner = self.repo.count_by_owner_type(self.db)
        return {
            "total": sum(by_status.values()),
            "byStatus": {
                "open": by_status.get(TICKET_OPEN, 0),
                "inProgress": by_status.get(TICKET_IN_PROGRESS, 0),
                "resolved": by_status.get(TICKET_RESOLVED, 0),
                "closed": by_status.get(TICKET_CLOSED, 0),
            },
            "byUserType": {
                "clinic": by_owner.get("CLINIC", 0),
                "therapist": by_owner.get("THERAPIST", 0),
            },
        }
