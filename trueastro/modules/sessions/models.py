from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import uuid


class SessionKind(str, Enum):
    chat = "chat"
    voice_call = "voice_call"
    video_call = "video_call"

class SessionStatus(str, Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"
    expired = "expired"

class SessionEvent(str, Enum):
    accept = "accept"
    reject = "reject"
    cancel = "cancel"
    end = "end"
    timeout = "timeout"

class RequesterRole(str, Enum):
    customer = "customer"
    astrologer = "astrologer"
    # Only the expiry sweep acts as "system"
    system = "system"

class MessageType(str, Enum):
    text = "text"
    image = "image"
    system = "system"


class ConsultationSession(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: SessionKind
    customer_id: str
    astrologer_id: str
    status: SessionStatus = SessionStatus.pending
    rate_per_minute: Decimal
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    total_amount: Optional[Decimal] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    customer_unread_count: int = 0
    astrologer_unread_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def participant_id(self, role: RequesterRole) -> Optional[str]:
        if role == RequesterRole.customer:
            return self.customer_id
        if role == RequesterRole.astrologer:
            return self.astrologer_id
        return None

    def unread_count_for(self, role: RequesterRole) -> int:
        if role == RequesterRole.astrologer:
            return self.astrologer_unread_count
        return self.customer_unread_count


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    sender_id: str
    sender_type: RequesterRole
    message_type: MessageType = MessageType.text
    content: str = ""
    image_url: Optional[str] = None
    read_by_customer: bool = False
    read_by_astrologer: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
