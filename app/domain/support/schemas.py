"""Support domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models import SupportMessage, SupportTicket


def _strip(v: Optional[str]) -> Optional[str]:
    return v.strip() if isinstance(v, str) else v


class CreateTicketRequest(BaseModel):
    """Schema for opening a support ticket"""

    model_config = ConfigDict(extra="forbid")

    subject: str = Field(..., min_length=5, max_length=200)
    message: str = Field(..., min_length=10, max_length=10000)

    @field_validator("subject", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class UpdateTicketRequest(BaseModel):
    """Owner edits while the ticket is still being worked"""

    model_config = ConfigDict(extra="forbid")

    subject: Optional[str] = Field(None, min_length=5, max_length=200)
    message: Optional[str] = Field(None, min_length=10, max_length=10000)

    @field_validator("subject", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class AdminReplyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reply: str = Field(..., min_length=10, max_length=10000)

    @field_validator("reply", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class ResolveTicketRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    resolutionNote: str = Field(..., min_length=10, max_length=10000)

    @field_validator("resolutionNote", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class UpdateStatusRequest(BaseModel):
    """Explicit admin status change, the status value is checked by the service"""

    model_config = ConfigDict(extra="forbid")

    status: str
    resolutionNote: Optional[str] = Field(None, max_length=10000)


class AttachmentInfo(BaseModel):
    """Stored file reference carried by a message"""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., max_length=2048)
    key: str = Field(..., max_length=512)
    filename: str = Field(..., max_length=255)
    contentType: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str = Field(..., min_length=1, max_length=5000)
    attachments: Optional[list[AttachmentInfo]] = Field(None, max_length=10)

    @field_validator("message", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class OwnerInfo(BaseModel):
    id: str
    type: str
    fullName: Optional[str] = None
    email: Optional[str] = None
    privatePracticeName: Optional[str] = None


class TicketResponse(BaseModel):
    id: str
    ownerType: str
    ownerId: str
    clinicId: Optional[str] = None
    therapistId: Optional[str] = None
    subject: str
    message: str
    status: str
    adminReply: Optional[str] = None
    adminRepliedAt: Optional[datetime] = None
    adminEmail: Optional[str] = None
    resolvedAt: Optional[datetime] = None
    resolutionNote: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    owner: Optional[OwnerInfo] = None
    messageCount: Optional[int] = None


class TicketMutationResponse(BaseModel):
    message: str
    ticket: TicketResponse


class TicketListResponse(BaseModel):
    total: int
    page: int
    limit: int
    tickets: list[TicketResponse]


class MessageResponse(BaseModel):
    id: str
    supportId: str
    senderType: str
    senderId: str
    senderName: str
    senderEmail: str
    message: str
    attachments: list[AttachmentInfo] = []
    isRead: bool
    createdAt: Optional[datetime] = None


class MessageMutationResponse(BaseModel):
    message: str
    data: MessageResponse


class MessageListResponse(BaseModel):
    total: int
    messages: list[MessageResponse]


class UnreadCountResponse(BaseModel):
    ticketId: str
    unreadCount: int


class TotalUnreadResponse(BaseModel):
    totalUnreadMessages: int


class StatusBreakdown(BaseModel):
    open: int
    inProgress: int
    resolved: int
    closed: int


class UserTypeBreakdown(BaseModel):
    clinic: int
    therapist: int


class TicketStatsResponse(BaseModel):
    total: int
    byStatus: StatusBreakdown
    byUserType: UserTypeBreakdown


class DeleteResponse(BaseModel):
    message: str


def owner_info(owner_type: str, owner) -> Optional[OwnerInfo]:
    if owner is None:
        return None
    return OwnerInfo(
        id=owner.id,
        type=owner_type,
        fullName=owner.full_name,
        email=owner.email,
        privatePracticeName=getattr(owner, "private_practice_name", None),
    )


def ticket_to_response(
    ticket: SupportTicket, owner=None, message_count: Optional[int] = None
) -> TicketResponse:
    """Map a ticket row to its API shape"""
    return TicketResponse(
        id=ticket.id,
        ownerType=ticket.owner_type,
        ownerId=ticket.owner_id,
        clinicId=ticket.clinic_id,
        therapistId=ticket.therapist_id,
        subject=ticket.subject,
        message=ticket.message,
        status=ticket.status,
        adminReply=ticket.admin_reply,
        adminRepliedAt=ticket.admin_replied_at,
        adminEmail=ticket.admin_email,
        resolvedAt=ticket.resolved_at,
        resolutionNote=ticket.resolution_note,
        createdAt=ticket.created_at,
        updatedAt=ticket.updated_at,
        owner=owner_info(ticket.owner_type, owner),
        messageCount=message_count,
    )


def message_to_response(message: SupportMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        supportId=message.support_id,
        senderType=message.sender_type,
        senderId=message.sender_id,
        senderName=message.sender_name,
        senderEmail=message.sender_email,
        message=message.message,
        attachments=[AttachmentInfo(**item) for item in (message.attachments or [])],
        isRead=bool(message.is_read),
        createdAt=message.created_at,
    )
