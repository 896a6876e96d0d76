"""
In-memory stand-ins for the Mongo repositories plus a controllable clock.

They implement the same async methods as the real repositories so the
ledger can be exercised without a database.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from trueastro.core.config import DEFAULT_RATES
from trueastro.modules.sessions.models import ChatMessage, ConsultationSession
from trueastro.modules.sessions.service import SessionLedger
from trueastro.modules.users.repository import RATE_FIELDS
from trueastro.modules.wallet.models import SessionTransaction
from trueastro.modules.wallet.service import WalletService

T0 = datetime(2026, 3, 14, 10, 0, 0, tzinfo=timezone.utc)

CUSTOMER_ID = "cust-1"
ASTROLOGER_ID = "astro-1"
OTHER_ASTROLOGER_ID = "astro-2"


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _matches(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict):
        for op, operand in condition.items():
            if op == "$in" and value not in operand:
                return False
            if value is None and op in ("$gte", "$gt", "$lt", "$lte"):
                return False
            if op == "$gte" and not value >= operand:
                return False
            if op == "$lt" and not value < operand:
                return False
            if op == "$lte" and not value <= operand:
                return False
        return True
    return value == condition


class InMemorySessionRepository:
    def __init__(self):
        self.sessions: Dict[str, ConsultationSession] = {}
        self.messages: List[ChatMessage] = []
        self.write_attempts = 0

    async def create_session(self, session: ConsultationSession):
        self.sessions[session.id] = session.model_copy()

    async def read_session(self, session_id: str) -> Optional[ConsultationSession]:
        session = self.sessions.get(session_id)
        snapshot = session.model_copy() if session else None
        # yield after reading so concurrent callers can interleave
        await asyncio.sleep(0)
        return snapshot

    async def write_session_if_status(self, session_id, expected_status, new_fields) -> bool:
        self.write_attempts += 1
        session = self.sessions.get(session_id)
        if session is None or session.status != expected_status:
            return False
        self.sessions[session_id] = session.model_copy(update=new_fields)
        return True

    async def append_message(self, message: ChatMessage, session_fields, unread_fields):
        self.messages.append(message)
        session = self.sessions[message.session_id]
        update = dict(session_fields)
        for field in unread_fields:
            update[field] = getattr(session, field) + 1
        self.sessions[message.session_id] = session.model_copy(update=update)

    async def reset_unread(self, session_id, role, time):
        session = self.sessions.get(session_id)
        if session is None:
            return None
        role = getattr(role, "value", role)
        flag = f"read_by_{role}"
        self.messages = [
            m.model_copy(update={flag: True}) if m.session_id == session_id and m.sender_type != role else m
            for m in self.messages
        ]
        self.sessions[session_id] = session.model_copy(update={f"{role}_unread_count": 0, "updated_at": time})
        return self.sessions[session_id].model_copy()

    async def find_open_session(self, customer_id, astrologer_id, kind):
        for session in self.sessions.values():
            if (session.customer_id, session.astrologer_id, session.kind) == (customer_id, astrologer_id, kind) \
                    and session.status in ("pending", "active"):
                return session.model_copy()
        return None

    async def find_stale_pending(self, created_before, limit=500):
        stale = [
            s for s in self.sessions.values()
            if s.status == "pending" and s.created_at < created_before
        ]
        return [s.model_copy() for s in sorted(stale, key=lambda s: s.created_at)[:limit]]

    async def list_messages(self, session_id, skip, limit):
        newest_first = sorted(
            (m for m in self.messages if m.session_id == session_id),
            key=lambda m: m.timestamp, reverse=True
        )
        return list(reversed(newest_first[skip:skip + limit]))

    async def count_messages(self, session_id):
        return sum(1 for m in self.messages if m.session_id == session_id)

    def _query(self, query: Dict[str, Any]) -> List[ConsultationSession]:
        found = [
            s for s in self.sessions.values()
            if all(_matches(getattr(s, key), condition) for key, condition in query.items())
        ]
        return sorted(found, key=lambda s: s.created_at, reverse=True)

    async def list_sessions(self, query, skip, limit):
        return self._query(query)[skip:skip + limit]

    async def count_sessions(self, query):
        return len(self._query(query))

    async def session_stats(self, kind, since, until):
        rows: Dict[str, Dict[str, Any]] = {}
        for s in self.sessions.values():
            if s.kind != kind or not (since <= s.created_at < until):
                continue
            row = rows.setdefault(s.status.value, {"_id": s.status.value, "count": 0,
                                                   "total_duration": 0, "total_amount": Decimal("0")})
            row["count"] += 1
            row["total_duration"] += s.duration_minutes or 0
            row["total_amount"] += s.total_amount or Decimal("0")
        return list(rows.values())


class InMemoryUserRepository:
    def __init__(self, users: Optional[Dict[str, Dict[str, Any]]] = None):
        self.users = users if users is not None else default_users()

    async def exists(self, user_id: str) -> bool:
        return user_id in self.users

    async def get_rate_card(self, astrologer_id: str, kind) -> Optional[Decimal]:
        kind = getattr(kind, "value", kind)
        user = self.users.get(astrologer_id)
        if not user or user.get("user_type") != "astrologer":
            return None
        rate = user.get(RATE_FIELDS[kind])
        return DEFAULT_RATES[kind] if rate is None else Decimal(str(rate))


class InMemoryWalletRepository:
    def __init__(self, balances: Optional[Dict[str, Decimal]] = None):
        self.balances: Dict[str, Decimal] = dict(balances or {})
        self.transactions: Dict[tuple, SessionTransaction] = {}

    async def debit_if_sufficient(self, user_id, amount, time) -> bool:
        if self.balances.get(user_id, Decimal("0")) < amount:
            return False
        self.balances[user_id] -= amount
        return True

    async def credit(self, user_id, amount, time) -> bool:
        if user_id not in self.balances:
            return False
        self.balances[user_id] += amount
        return True

    async def upsert_transaction(self, transaction: SessionTransaction):
        self.transactions[(transaction.session_id, transaction.transaction_type.value)] = transaction


def default_users() -> Dict[str, Dict[str, Any]]:
    return {
        CUSTOMER_ID: {"user_type": "customer"},
        ASTROLOGER_ID: {"user_type": "astrologer", "chat_rate": "15.00", "call_rate": "20.00", "video_rate": "35.50"},
        OTHER_ASTROLOGER_ID: {"user_type": "astrologer"},
    }


def build_ledger(clock: Optional[FakeClock] = None, balances: Optional[Dict[str, Decimal]] = None,
                 session_repo: Optional[InMemorySessionRepository] = None, **kwargs):
    """Returns (ledger, session_repo, wallet_repo)."""
    session_repo = session_repo or InMemorySessionRepository()
    wallet_repo = InMemoryWalletRepository(balances if balances is not None else {
        CUSTOMER_ID: Decimal("1000.00"),
        ASTROLOGER_ID: Decimal("0.00"),
    })
    ledger = SessionLedger(
        session_repo=session_repo,
        user_repo=InMemoryUserRepository(),
        wallet_service=WalletService(wallet_repo),
        clock=clock or FakeClock(),
        **kwargs,
    )
    return ledger, session_repo, wallet_repo
