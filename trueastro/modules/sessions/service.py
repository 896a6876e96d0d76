from datetime import date, datetime, time, timezone, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from trueastro.core.config import PENDING_SESSION_TTL_MINUTES
from trueastro.core.errors import (
    Conflict,
    InconsistentState,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from trueastro.modules.sessions import billing, state_machine
from trueastro.modules.sessions.models import (
    ChatMessage,
    ConsultationSession,
    MessageType,
    RequesterRole,
    SessionEvent,
    SessionKind,
    SessionStatus,
)
from trueastro.modules.sessions.repository import SessionRepository
from trueastro.modules.users.repository import UserRepository
from trueastro.modules.wallet.service import WalletService

logger = logging.getLogger(__name__)

# one retry after losing an optimistic write
MAX_WRITE_ATTEMPTS = 2

SYSTEM_SENDER_ID = "system"

KIND_LABELS = {
    SessionKind.chat: "Chat",
    SessionKind.voice_call: "Call",
    SessionKind.video_call: "Video call",
}

PARTICIPANT_ROLES = (RequesterRole.customer, RequesterRole.astrologer)


def to_millis(moment: datetime) -> datetime:
    # MongoDB stores datetimes with millisecond precision
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    return to_millis(datetime.now(timezone.utc))


def _coerce(enum_type, value, what: str):
    try:
        return enum_type(value)
    except ValueError:
        raise ValidationFailed(f"Invalid {what}: {value}") from None


class SessionLedger:
    """
    Lifecycle and billing for chat/call/video consultations.

    Every transition is read -> validate -> conditional write keyed on the
    status that was read. Nothing is cached between calls; the stored record
    is the only source of truth.
    """

    def __init__(self,
                 session_repo: SessionRepository,
                 user_repo: UserRepository,
                 wallet_service: Optional[WalletService] = None,
                 clock: Callable[[], datetime] = utcnow,
                 pending_ttl: timedelta = timedelta(minutes=PENDING_SESSION_TTL_MINUTES)
                 ):
        self.session_repo = session_repo
        self.user_repo = user_repo
        self.wallet_service = wallet_service
        self.clock = clock
        self.pending_ttl = pending_ttl

    async def create_session(self, customer_id: str, astrologer_id: str, kind) -> Tuple[ConsultationSession, bool]:
        """Returns (session, created). An open session for the same pair and kind is reused."""
        kind = _coerce(SessionKind, kind, "session kind")
        if customer_id == astrologer_id:
            raise ValidationFailed("Customer and astrologer must be different users")

        if not await self.user_repo.exists(customer_id):
            raise NotFound(f"Customer not found: {customer_id}")
        if not await self.user_repo.exists(astrologer_id):
            raise NotFound(f"Astrologer not found: {astrologer_id}")

        existing = await self.session_repo.find_open_session(customer_id, astrologer_id, kind)
        if existing:
            return existing, False

        rate = await self.user_repo.get_rate_card(astrologer_id, kind)
        if rate is None:
            raise NotFound(f"Astrologer not found: {astrologer_id}")
        if rate < 0:
            logger.error("Negative %s rate %s for astrologer %s", kind.value, rate, astrologer_id)
            raise InconsistentState(f"Rate card for astrologer {astrologer_id} is negative")

        now = self._now()
        session = ConsultationSession(
            kind=kind,
            customer_id=customer_id,
            astrologer_id=astrologer_id,
            rate_per_minute=billing.to_money(rate),
            created_at=now,
            updated_at=now,
        )
        await self.session_repo.create_session(session)
        logger.info(
            "Created %s session %s (customer %s, astrologer %s, ₹%s/min)",
            kind.value, session.id, customer_id, astrologer_id, session.rate_per_minute
        )
        return session, True

    async def request_transition(self, session_id: str, event, requester_id: str, requester_role) -> ConsultationSession:
        event = _coerce(SessionEvent, event, "event")
        role = _coerce(RequesterRole, requester_role, "requester role")

        for attempt in range(MAX_WRITE_ATTEMPTS):
            session = await self._load(session_id)
            self._check_participant(session, requester_id, role)

            if state_machine.is_replay(session.status, event, role):
                logger.info("Session %s already %s; ignoring repeated %s", session.id, session.status.value, event.value)
                return session

            transition = state_machine.lookup(session.status, event)
            if transition is None or role not in transition.allowed_roles:
                raise InvalidTransition(event.value, session.status.value)

            now = self._now()
            fields = self._transition_fields(session, transition, now)
            if await self.session_repo.write_session_if_status(session.id, session.status, fields):
                updated = session.model_copy(update=fields)
                logger.info(
                    "Session %s %s -> %s by %s %s",
                    session.id, session.status.value, updated.status.value, role.value, requester_id
                )
                updated = await self._append_system_message(updated, transition, now)
                if updated.status == SessionStatus.completed:
                    await self._settle(updated, now)
                return updated

            logger.warning(
                "Session %s changed while applying %s (attempt %d)", session.id, event.value, attempt + 1
            )

        raise Conflict(
            f"Session {session_id} was modified concurrently",
            details={"session_id": session_id, "event": event.value},
        )

    async def send_message(self, session_id: str, sender_id: str, sender_role,
                           content: Optional[str] = None, image_url: Optional[str] = None) -> ChatMessage:
        role = _coerce(RequesterRole, sender_role, "sender role")
        if role not in PARTICIPANT_ROLES:
            raise ValidationFailed("Messages can only be sent by a participant")
        if not content and not image_url:
            raise ValidationFailed("Message content or image is required")

        session = await self._load(session_id)
        self._check_participant(session, sender_id, role)
        if session.kind != SessionKind.chat:
            raise ValidationFailed(f"Cannot send messages in a {session.kind.value} session")
        if session.status not in (SessionStatus.pending, SessionStatus.active):
            raise InvalidTransition("message", session.status.value,
                                    "Cannot send messages to an inactive session")

        message = ChatMessage(
            session_id=session.id,
            sender_id=sender_id,
            sender_type=role,
            message_type=MessageType.image if image_url and not content else MessageType.text,
            content=content or "",
            image_url=image_url,
            timestamp=self._now(),
            **{f"read_by_{role.value}": True},
        )
        await self.append_message(session, message)
        return message

    async def append_message(self, session: ConsultationSession, message: ChatMessage) -> ConsultationSession:
        """Store a message and bump the session's preview and unread counters."""
        fields: Dict[str, Any] = {"updated_at": message.timestamp}
        if session.kind == SessionKind.chat:
            fields["last_message"] = message.content or "[Image]"
            fields["last_message_time"] = message.timestamp

        unread_fields = [
            f"{role.value}_unread_count" for role in PARTICIPANT_ROLES if role != message.sender_type
        ]
        await self.session_repo.append_message(message, fields, unread_fields)

        for field in unread_fields:
            fields[field] = getattr(session, field) + 1
        return session.model_copy(update=fields)

    async def get_session(self, session_id: str, user_id: str, role) -> ConsultationSession:
        """Participant fetch; clears the caller's unread counter and marks the other side's messages read."""
        role = _coerce(RequesterRole, role, "user type")
        if role not in PARTICIPANT_ROLES:
            raise ValidationFailed("Only participants can open a session")

        session = await self._load(session_id)
        self._check_participant(session, user_id, role)
        updated = await self.session_repo.reset_unread(session.id, role, self._now())
        if updated is None:
            raise NotFound(f"Session not found: {session_id}")
        return updated

    async def list_messages(self, session_id: str, user_id: str, role, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        role = _coerce(RequesterRole, role, "user type")
        if role not in PARTICIPANT_ROLES:
            raise ValidationFailed("Only participants can read messages")
        session = await self._load(session_id)
        self._check_participant(session, user_id, role)

        skip = (page - 1) * limit
        messages = await self.session_repo.list_messages(session.id, skip, limit)
        total = await self.session_repo.count_messages(session.id)
        return {
            "messages": messages,
            "pagination": _pagination(total, page, limit),
        }

    async def expire_stale_sessions(self) -> List[str]:
        """Drive every pending session older than the TTL through `timeout`."""
        cutoff = self._now() - self.pending_ttl
        expired = []
        for session in await self.session_repo.find_stale_pending(cutoff):
            try:
                updated = await self.request_transition(
                    session.id, SessionEvent.timeout, SYSTEM_SENDER_ID, RequesterRole.system
                )
            except (InvalidTransition, Conflict) as e:
                # accepted or rejected between the query and the transition
                logger.info("Skipped expiring session %s: %s", session.id, e.message)
                continue
            except NotFound:
                logger.warning("Session %s disappeared before it could expire", session.id)
                continue
            if updated.status == SessionStatus.expired:
                expired.append(updated.id)

        if expired:
            logger.info("Expired %d pending sessions", len(expired))
        return expired

    async def list_sessions(self, filters: Dict[str, Any], page: int = 1, limit: int = 30) -> Dict[str, Any]:
        query = _build_query(filters)
        skip = (page - 1) * limit
        sessions = await self.session_repo.list_sessions(query, skip, limit)
        total = await self.session_repo.count_sessions(query)
        return {
            "sessions": sessions,
            "pagination": _pagination(total, page, limit),
        }

    async def session_stats(self, kind) -> Dict[str, Any]:
        kind = _coerce(SessionKind, kind, "session kind")
        now = self._now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        rows = await self.session_repo.session_stats(kind, start_of_day, start_of_day + timedelta(days=1))

        counts = {status.value: 0 for status in SessionStatus}
        total_duration = 0
        total_billed = Decimal("0")
        for row in rows:
            counts[row["_id"]] = row["count"]
            if row["_id"] == SessionStatus.completed.value:
                total_duration += row.get("total_duration") or 0
                total_billed += Decimal(str(row.get("total_amount") or 0))

        completed = counts[SessionStatus.completed.value]
        return {
            "kind": kind.value,
            "total_today": sum(counts.values()),
            "by_status": counts,
            "total_billed": billing.to_money(total_billed),
            "avg_duration_minutes": round(total_duration / completed, 1) if completed else 0,
        }

    def _now(self) -> datetime:
        # what gets billed must match what the store keeps
        return to_millis(self.clock())

    async def _load(self, session_id: str) -> ConsultationSession:
        session = await self.session_repo.read_session(session_id)
        if session is None:
            raise NotFound(f"Session not found: {session_id}")
        return session

    def _check_participant(self, session: ConsultationSession, requester_id: str, role: RequesterRole):
        if role == RequesterRole.system:
            return
        if not requester_id or session.participant_id(role) != requester_id:
            raise PermissionDenied(
                "You do not have permission to modify this session",
                details={"session_id": session.id, "role": role.value},
            )

    def _transition_fields(self, session: ConsultationSession, transition: state_machine.Transition,
                           now: datetime) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"status": transition.target, "updated_at": now}

        if transition.event == SessionEvent.accept:
            fields["start_time"] = now

        elif transition.event == SessionEvent.end:
            if session.start_time is None:
                logger.error("Session %s is active but has no start_time", session.id)
                raise InconsistentState(f"Session {session.id} has no start time",
                                        details={"session_id": session.id})
            if now < session.start_time:
                logger.error("Session %s ends before it started (%s < %s)", session.id, now, session.start_time)
                raise InconsistentState(f"Session {session.id} ends before its start time",
                                        details={"session_id": session.id})
            minutes, amount = billing.bill(session.start_time, now, session.rate_per_minute)
            fields["end_time"] = now
            fields["duration_minutes"] = minutes
            fields["total_amount"] = amount

        elif transition.event == SessionEvent.timeout:
            if now - session.created_at <= self.pending_ttl:
                raise InvalidTransition(transition.event.value, session.status.value,
                                        "Session has not been pending long enough to expire")

        return fields

    async def _append_system_message(self, session: ConsultationSession, transition: state_machine.Transition,
                                     now: datetime) -> ConsultationSession:
        content = transition.notice.format(
            kind=KIND_LABELS[session.kind],
            duration_minutes=session.duration_minutes,
            total_amount=session.total_amount,
        )
        message = ChatMessage(
            session_id=session.id,
            sender_id=SYSTEM_SENDER_ID,
            sender_type=RequesterRole.system,
            message_type=MessageType.system,
            content=content,
            timestamp=now,
        )
        return await self.append_message(session, message)

    async def _settle(self, session: ConsultationSession, now: datetime):
        if self.wallet_service is None:
            return
        try:
            await self.wallet_service.settle_session(session, now)
        except Exception:
            # the session stays completed; the id in the log is what reconciliation needs
            logger.exception("Wallet settlement failed for session %s", session.id)


def _pagination(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total,
        "limit": limit,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def _start_of(day: date) -> datetime:
    if isinstance(day, datetime):
        return day
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _build_query(filters: Dict[str, Any]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if filters.get("kind"):
        query["kind"] = _coerce(SessionKind, filters["kind"], "session kind")
    if filters.get("status"):
        query["status"] = _coerce(SessionStatus, filters["status"], "status")
    if filters.get("customer_id"):
        query["customer_id"] = filters["customer_id"]
    if filters.get("astrologer_id"):
        query["astrologer_id"] = filters["astrologer_id"]

    created = {}
    if filters.get("from_date"):
        created["$gte"] = _start_of(filters["from_date"])
    if filters.get("to_date"):
        # to_date is inclusive of the whole day
        created["$lt"] = _start_of(filters["to_date"]) + timedelta(days=1)
    if created:
        query["created_at"] = created

    amount = {}
    if filters.get("min_amount") is not None:
        amount["$gte"] = Decimal(str(filters["min_amount"]))
    if filters.get("max_amount") is not None:
        amount["$lte"] = Decimal(str(filters["max_amount"]))
    if amount:
        query["total_amount"] = amount
    return query
