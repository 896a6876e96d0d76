from fastapi import Depends
from trueastro.modules.sessions.repository import SessionRepository
from trueastro.modules.sessions.service import SessionLedger
from trueastro.modules.users.repository import UserRepository
from trueastro.modules.wallet.dependencies import get_wallet_service
from trueastro.modules.wallet.service import WalletService

def get_session_ledger(
    session_repo: SessionRepository = Depends(),
    user_repo: UserRepository = Depends(),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> SessionLedger:
    return SessionLedger(
        session_repo=session_repo,
        user_repo=user_repo,
        wallet_service=wallet_service,
    )
