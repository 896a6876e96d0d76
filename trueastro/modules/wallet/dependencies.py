from fastapi import Depends
from trueastro.modules.wallet.repository import WalletRepository
from trueastro.modules.wallet.service import WalletService

def get_wallet_service(
    wallet_repo: WalletRepository = Depends(),
) -> WalletService:
    return WalletService(wallet_repo)
