"""Support repository - Database operations for tickets and their messages

State-dependent writes are conditional updates (``UPDATE ... WHERE status ...``)
and report the affected row count, so concurrent requests on other instances
cannot push a ticket through an illegal transition.
"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import SupportMessage, SupportTicket


def escape_like(value: str) -> str:
    """Make LIKE wildcards in user input match literally"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupportRepository:
    """Repository for support ticket database operations"""

    # ---------------------------------------------------------------- tickets

    @staticmethod
    def create_ticket(db: Session, ticket: SupportTicket) -> SupportTicket:
        db.add(ticket)
        db.commit()
        db.refresh(ticket)
        return ticket

    @staticmethod
    def get_ticket(db: Session, ticket_id: str) -> Optional[SupportTicket]:
        return db.query(SupportTicket).filter(SupportTicket.id == ticket_id).first()

    @staticmethod
    def list_tickets(
        db: Session,
        owner_type: Optional[str] = None,
        owner_id: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[int, list[SupportTicket]]:
        """Filtered ticket page, newest first, with the unpaged total"""
        query = db.query(SupportTicket)
        if owner_type:
            query = query.filter(SupportTicket.owner_type == owner_type)
        if owner_id:
            query = query.filter(SupportTicket.owner_id == owner_id)
        if status:
            query = query.filter(SupportTicket.status == status)
        if search:
            pattern = f"%{escape_like(search)}%"
            query = query.filter(
                or_(
                    SupportTicket.subject.ilike(pattern, escape="\\"),
                    SupportTicket.message.ilike(pattern, escape="\\"),
                )
            )

        total = query.count()
        tickets = (
            query.order_by(SupportTicket.created_at.desc()).offset(offset).limit(limit).all()
        )
        return total, tickets

    @staticmethod
    def count_messages(db: Session, ticket_ids: list[str]) -> dict[str, int]:
        """Message count per ticket"""
        if not ticket_ids:
            return {}
        rows = (
            db.query(SupportMessage.support_id, func.count(SupportMessage.id))
            .filter(SupportMessage.support_id.in_(ticket_ids))
            .group_by(SupportMessage.support_id)
            .all()
        )
        return {ticket_id: count for ticket_id, count in rows}

    @staticmethod
    def update_ticket_where_status(
        db: Session, ticket_id: str, allowed_statuses: tuple, **values
    ) -> int:
        """Update a ticket only while its status is one of ``allowed_statuses``"""
        updated = (
            db.query(SupportTicket)
            .filter(SupportTicket.id == ticket_id, SupportTicket.status.in_(allowed_statuses))
            .update(values, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def update_ticket_unless_status(
        db: Session, ticket_id: str, blocked_statuses: tuple, **values
    ) -> int:
        """Update a ticket unless its status is one of ``blocked_statuses``"""
        updated = (
            db.query(SupportTicket)
            .filter(SupportTicket.id == ticket_id, SupportTicket.status.notin_(blocked_statuses))
            .update(values, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def delete_ticket_where_status(
        db: Session, ticket_id: str, owner_id: str, status: str
    ) -> int:
        """Delete an owner's ticket only while it is still in ``status``"""
        ticket = (
            db.query(SupportTicket)
            .filter(
                SupportTicket.id == ticket_id,
                SupportTicket.owner_id == owner_id,
                SupportTicket.status == status,
            )
            .with_for_update()
            .first()
        )
        if not ticket:
            db.rollback()
            return 0
        db.delete(ticket)
        db.commit()
        return 1

    @staticmethod
    def count_by_status(db: Session) -> dict[str, int]:
        rows = (
            db.query(SupportTicket.status, func.count(SupportTicket.id))
            .group_by(SupportTicket.status)
            .all()
        )
        return {status: count for status, count in rows}

    @staticmethod
    def count_by_owner_type(db: Session) -> dict[str, int]:
        rows = (
            db.query(SupportTicket.owner_type, func.count(SupportTicket.id))
            .group_by(SupportTicket.owner_type)
            .all()
        )
        return {owner_type: count for owner_type, count in rows}

    # --------------------------------------------------------------- messages

    @staticmethod
    def create_message(db: Session, message: SupportMessage) -> SupportMessage:
        db.add(message)
        db.flush()
        return message

    @staticmethod
    def get_message(db: Session, message_id: str) -> Optional[SupportMessage]:
        return db.query(SupportMessage).filter(SupportMessage.id == message_id).first()

    @staticmethod
    def get_messages(db: Session, ticket_id: str) -> list[SupportMessage]:
        """Full thread in creation order"""
        return (
            db.query(SupportMessage)
            .filter(SupportMessage.support_id == ticket_id)
            .order_by(SupportMessage.created_at.asc(), SupportMessage.id.asc())
            .all()
        )

    @staticmethod
    def mark_read(db: Session, ticket_id: str, sender_type: str) -> int:
        """Flag unread messages from one side of the thread as read, caller commits"""
        return (
            db.query(SupportMessage)
            .filter(
                SupportMessage.support_id == ticket_id,
                SupportMessage.sender_type == sender_type,
                SupportMessage.is_read.is_(False),
            )
            .update({SupportMessage.is_read: True}, synchronize_session=False)
        )

    @staticmethod
    def count_unread(
        db: Session,
        sender_type: str,
        ticket_id: Optional[str] = None,
        owner_type: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> int:
        """Unread messages from ``sender_type``, optionally limited to one ticket or one owner's tickets"""
        query = db.query(func.count(SupportMessage.id)).filter(
            SupportMessage.sender_type == sender_type,
            SupportMessage.is_read.is_(False),
        )
        if ticket_id:
            query = query.filter(SupportMessage.support_id == ticket_id)
        if owner_id:
            query = query.join(SupportTicket, SupportTicket.id == SupportMessage.support_id).filter(
                SupportTicket.owner_type == owner_type,
                SupportTicket.owner_id == owner_id,
            )
        return query.scalar() or 0

    @staticmethod
    def delete_message(db: Session, message: SupportMessage) -> None:
        db.delete(message)
        db.commit()
