"""Support router - FastAPI endpoints for tickets and ticket messages"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from ...auth import Principal, get_current_principal, require_admin
from ...database import get_db
from .messaging import MessageService
from .schemas import (
    AdminReplyRequest,
    AttachmentInfo,
    CreateTicketRequest,
    DeleteResponse,
    MessageListResponse,
    MessageMutationResponse,
    ResolveTicketRequest,
    SendMessageRequest,
    TicketListResponse,
    TicketMutationResponse,
    TicketResponse,
    TicketStatsResponse,
    TotalUnreadResponse,
    UnreadCountResponse,
    UpdateStatusRequest,
    UpdateTicketRequest,
)
from .service import TicketService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support", tags=["Support"])


def get_ticket_service(db: Session = Depends(get_db)) -> TicketService:
    """Dependency injection for TicketService"""
    return TicketService(db)


def get_message_service(db: Session = Depends(get_db)) -> MessageService:
    """Dependency injection for MessageService"""
    return MessageService(db)


# ============================================================================
# TICKETS
# ============================================================================


@router.post("/tickets", response_model=TicketMutationResponse, status_code=201)
async def create_ticket(
    body: CreateTicketRequest,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    """Open a support ticket as a clinic or therapist"""
    return await service.create_ticket(principal.id, principal.role, body.subject, body.message)


@router.get("/tickets", response_model=TicketListResponse)
async def get_my_tickets(
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
    status: Optional[str] = Query(None, description="Filter by ticket status"),
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Get the current user's tickets"""
    return service.list_my_tickets(principal, status, search, page, limit)


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: str,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.get_ticket(ticket_id, principal)


@router.patch("/tickets/{ticket_id}", response_model=TicketMutationResponse)
async def update_ticket(
    ticket_id: str,
    body: UpdateTicketRequest,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.update_ticket(ticket_id, principal, body.subject, body.message)


@router.delete("/tickets/{ticket_id}", response_model=DeleteResponse)
async def delete_ticket(
    ticket_id: str,
    principal: Principal = Depends(get_current_principal),
    service: TicketService = Depends(get_ticket_service),
):
    return service.delete_ticket(ticket_id, principal)


# ============================================================================
# MESSAGES
# ============================================================================


@router.post(
    "/tickets/{ticket_id}/messages", response_model=MessageMutationResponse, status_code=201
)
async def send_message(
    ticket_id: str,
    body: SendMessageRequest,
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    return service.send_message(ticket_id, principal, body.message, body.attachments)


@router.get("/tickets/{ticket_id}/messages", response_model=MessageListResponse)
async def get_messages(
    ticket_id: str,
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    """Get the thread and mark the other side's messages as read"""
    return service.get_messages(ticket_id, principal)


@router.post("/tickets/{ticket_id}/attachments", response_model=AttachmentInfo, status_code=201)
async def upload_attachment(
    ticket_id: str,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    """Upload a file to reference from a message"""
    return await service.upload_attachment(ticket_id, principal, file)


@router.get("/tickets/{ticket_id}/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    ticket_id: str,
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    return service.unread_count(ticket_id, principal)


@router.get("/unread-messages", response_model=TotalUnreadResponse)
async def get_total_unread(
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    return service.total_unread_count(principal)


@router.delete("/messages/{message_id}", response_model=DeleteResponse)
async def delete_message(
    message_id: str,
    principal: Principal = Depends(get_current_principal),
    service: MessageService = Depends(get_message_service),
):
    return service.delete_message(message_id, principal)


# ============================================================================
# ADMIN
# ============================================================================


@router.get("/admin/tickets", response_model=TicketListResponse)
async def get_all_tickets(
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
    status: Optional[str] = Query(None),
    ownerType: Optional[str] = Query(None, description="CLINIC or THERAPIST"),
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Get all tickets across clinics and therapists"""
    return service.list_all_tickets(status, ownerType, search, page, limit)


@router.post("/admin/tickets/{ticket_id}/reply", response_model=TicketMutationResponse)
async def reply_to_ticket(
    ticket_id: str,
    body: AdminReplyRequest,
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
):
    return await service.reply_as_admin(ticket_id, admin.email, body.reply)


@router.patch("/admin/tickets/{ticket_id}/resolve", response_model=TicketMutationResponse)
async def resolve_ticket(
    ticket_id: str,
    body: ResolveTicketRequest,
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
):
    return await service.resolve_ticket(ticket_id, body.resolutionNote)


@router.patch("/admin/tickets/{ticket_id}/close", response_model=TicketMutationResponse)
async def close_ticket(
    ticket_id: str,
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
):
    return service.close_ticket(ticket_id)


@router.patch("/admin/tickets/{ticket_id}/status", response_model=TicketMutationResponse)
async def update_ticket_status(
    ticket_id: str,
    body: UpdateStatusRequest,
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
):
    return service.update_status(ticket_id, body.status, body.resolutionNote)


@router.get("/admin/stats", response_model=TicketStatsResponse)
async def get_ticket_stats(
    admin: Principal = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service),
):
    return service.get_ticket_stats()
