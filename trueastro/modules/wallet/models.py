from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import uuid


class TransactionType(str, Enum):
    debit = "debit"
    credit = "credit"
    commission = "commission"

class TransactionStatus(str, Enum):
    completed = "completed"
    # customer balance could not cover the session
    unpaid = "unpaid"


class SessionTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    transaction_type: TransactionType
    user_id: Optional[str] = None
    service_type: str
    amount: Decimal
    description: Optional[str] = None
    status: TransactionStatus = TransactionStatus.completed
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class Settlement(BaseModel):
    session_id: str
    total_amount: Decimal
    astrologer_share: Decimal
    platform_commission: Decimal
    customer_debited: bool
