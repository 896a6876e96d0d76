from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional
from datetime import date
from decimal import Decimal
from trueastro.modules.sessions.dependencies import get_session_ledger
from trueastro.modules.sessions.models import SessionKind, SessionStatus
from trueastro.modules.sessions.schemas import (
    ExpireResponse,
    MessageCreate,
    MessageListResponse,
    ParticipantSessionView,
    ParticipantType,
    SessionCreate,
    SessionListItem,
    SessionListResponse,
    SessionResponse,
    SessionStats,
    SessionStatsResponse,
    SessionView,
    TransitionRequest,
)
from trueastro.modules.sessions.service import SessionLedger

session_router = APIRouter(prefix="/sessions", tags=["Sessions"])


@session_router.post("", response_model=SessionResponse)
async def create_session(
    data: SessionCreate,
    response: Response,
    ledger: SessionLedger = Depends(get_session_ledger)):
    session, created = await ledger.create_session(data.customer_id, data.astrologer_id, data.kind)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return SessionResponse(
        message="Session created successfully" if created else "Open session already exists",
        session=SessionView(**session.model_dump()),
    )

@session_router.get("", response_model=SessionListResponse)
async def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(30, ge=1, le=100),
    kind: Optional[SessionKind] = None,
    session_status: Optional[SessionStatus] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    astrologer_id: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    ledger: SessionLedger = Depends(get_session_ledger)):
    filters = {
        "kind": kind,
        "status": session_status,
        "customer_id": customer_id,
        "astrologer_id": astrologer_id,
        "from_date": from_date,
        "to_date": to_date,
        "min_amount": min_amount,
        "max_amount": max_amount,
    }
    result = await ledger.list_sessions(filters, page=page, limit=limit)
    viewer = None
    if customer_id and not astrologer_id:
        viewer = ParticipantType.customer
    elif astrologer_id and not customer_id:
        viewer = ParticipantType.astrologer
    return SessionListResponse(
        sessions=[
            SessionListItem(
                **s.model_dump(),
                unread_count=s.unread_count_for(viewer.value) if viewer else None,
            )
            for s in result["sessions"]
        ],
        pagination=result["pagination"],
    )

@session_router.get("/stats", response_model=SessionStatsResponse)
async def session_stats(
    kind: SessionKind = SessionKind.chat,
    ledger: SessionLedger = Depends(get_session_ledger)):
    return SessionStatsResponse(data=SessionStats(**await ledger.session_stats(kind)))

@session_router.post("/expire", response_model=ExpireResponse)
async def expire_sessions(ledger: SessionLedger = Depends(get_session_ledger)):
    return ExpireResponse(expired=await ledger.expire_stale_sessions())

@session_router.get("/{session_id}")
async def get_session(
    session_id: str,
    user_id: str,
    user_type: ParticipantType = ParticipantType.customer,
    ledger: SessionLedger = Depends(get_session_ledger)):
    session = await ledger.get_session(session_id, user_id, user_type.value)
    view = ParticipantSessionView(
        **session.model_dump(),
        unread_count=session.unread_count_for(user_type.value),
    )
    return {"success": True, "session": view}

@session_router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    data: TransitionRequest,
    ledger: SessionLedger = Depends(get_session_ledger)):
    session = await ledger.request_transition(session_id, data.action, data.user_id, data.user_type.value)
    return SessionResponse(
        message=f"Session {session.status.value}",
        session=SessionView(**session.model_dump()),
    )

@session_router.post("/{session_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    session_id: str,
    data: MessageCreate,
    ledger: SessionLedger = Depends(get_session_ledger)):
    message = await ledger.send_message(
        session_id, data.sender_id, data.sender_type.value, data.content, data.image_url
    )
    return {"success": True, "message": "Message sent successfully", "message_data": message}

@session_router.get("/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: str,
    user_id: str,
    user_type: ParticipantType = ParticipantType.customer,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ledger: SessionLedger = Depends(get_session_ledger)):
    result = await ledger.list_messages(session_id, user_id, user_type.value, page=page, limit=limit)
    return MessageListResponse(**result)
