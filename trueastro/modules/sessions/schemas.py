from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime
from enum import Enum
from trueastro.modules.sessions.models import ChatMessage, SessionEvent, SessionKind, SessionStatus


class ParticipantType(str, Enum):
    customer = "customer"
    astrologer = "astrologer"


class SessionCreate(BaseModel):
    customer_id: str
    astrologer_id: str
    kind: SessionKind


class TransitionRequest(BaseModel):
    action: SessionEvent
    user_id: str
    user_type: ParticipantType


class MessageCreate(BaseModel):
    sender_id: str
    sender_type: ParticipantType
    content: Optional[str] = None
    image_url: Optional[str] = None


class SessionView(BaseModel):
    id: str
    kind: SessionKind
    customer_id: str
    astrologer_id: str
    status: SessionStatus
    rate_per_minute: Decimal
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    total_amount: Optional[Decimal] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ParticipantSessionView(SessionView):
    unread_count: int = 0


class SessionListItem(SessionView):
    # only set when the listing is filtered to one participant
    unread_count: Optional[int] = None


class SessionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    session: SessionView


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: List[SessionListItem]
    pagination: Dict[str, Any]


class MessageListResponse(BaseModel):
    success: bool = True
    messages: List[ChatMessage]
    pagination: Dict[str, Any]


class ExpireResponse(BaseModel):
    success: bool = True
    expired: List[str] = Field(default_factory=list)


class SessionStats(BaseModel):
    kind: SessionKind
    total_today: int
    by_status: Dict[str, int]
    total_billed: Decimal
    avg_duration_minutes: float


class SessionStatsResponse(BaseModel):
    success: bool = True
    data: SessionStats
