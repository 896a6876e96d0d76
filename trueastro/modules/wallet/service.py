from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import logging

from trueastro.core.config import PLATFORM_COMMISSION_PERCENT
from trueastro.modules.sessions.billing import to_money
from trueastro.modules.sessions.models import ConsultationSession, SessionStatus
from trueastro.modules.wallet.models import (
    SessionTransaction,
    Settlement,
    TransactionStatus,
    TransactionType,
)
from trueastro.modules.wallet.repository import WalletRepository

logger = logging.getLogger(__name__)


def split_amount(total: Decimal, commission_percent: Decimal = PLATFORM_COMMISSION_PERCENT):
    """Returns (astrologer_share, platform_commission); the two always add up to total."""
    commission = to_money(total * commission_percent / Decimal(100))
    return total - commission, commission


class WalletService:
    def __init__(self,
                 wallet_repo: WalletRepository,
                 commission_percent: Decimal = PLATFORM_COMMISSION_PERCENT
                 ):
        self.wallet_repo = wallet_repo
        self.commission_percent = commission_percent

    async def settle_session(self, session: ConsultationSession, now: Optional[datetime] = None) -> Settlement:
        """
        Move money for a completed session: debit the customer, credit the
        astrologer their share and record debit/credit/commission rows.

        A customer short on balance does not block settlement; the debit row
        is recorded as unpaid and the astrologer is still credited.
        """
        if session.status != SessionStatus.completed or session.total_amount is None:
            raise ValueError(f"Session {session.id} is not completed")

        now = now or datetime.now(timezone.utc)
        total = session.total_amount
        share, commission = split_amount(total, self.commission_percent)
        service_type = session.kind.value
        minutes = session.duration_minutes

        debited = True
        if total > 0:
            debited = await self.wallet_repo.debit_if_sufficient(session.customer_id, total, now)
            if not debited:
                logger.warning(
                    "Insufficient balance for customer %s: required ₹%s for session %s",
                    session.customer_id, total, session.id
                )
            await self.wallet_repo.credit(session.astrologer_id, share, now)

        await self.wallet_repo.upsert_transaction(SessionTransaction(
            session_id=session.id,
            transaction_type=TransactionType.debit,
            user_id=session.customer_id,
            service_type=service_type,
            amount=total,
            description=f"Payment for {service_type} session ({minutes} minutes)",
            status=TransactionStatus.completed if debited else TransactionStatus.unpaid,
            created_at=now,
        ))
        await self.wallet_repo.upsert_transaction(SessionTransaction(
            session_id=session.id,
            transaction_type=TransactionType.credit,
            user_id=session.astrologer_id,
            service_type=service_type,
            amount=share,
            description=f"Earnings from {service_type} session ({minutes} minutes)",
            created_at=now,
        ))
        await self.wallet_repo.upsert_transaction(SessionTransaction(
            session_id=session.id,
            transaction_type=TransactionType.commission,
            service_type=service_type,
            amount=commission,
            description=f"Platform commission for {service_type} session ({minutes} minutes)",
            created_at=now,
        ))

        logger.info(
            "Settled session %s: total ₹%s, astrologer ₹%s, commission ₹%s",
            session.id, total, share, commission
        )
        return Settlement(
            session_id=session.id,
            total_amount=total,
            astrologer_share=share,
            platform_commission=commission,
            customer_debited=debited,
        )
