from datetime import datetime
from decimal import Decimal

from bson.decimal128 import Decimal128

from trueastro.core.database import mongodb
from trueastro.modules.sessions.repository import to_document
from trueastro.modules.wallet.models import SessionTransaction


class WalletRepository:
    async def debit_if_sufficient(self, user_id: str, amount: Decimal, time: datetime) -> bool:
        # balance check and debit in one update so two settlements cannot overdraw
        result = await mongodb.db.users.update_one(
            {"user_id": user_id, "wallet_balance": {"$gte": Decimal128(amount)}},
            {
                "$inc": {"wallet_balance": Decimal128(-amount)},
                "$set": {"updated_at": time}
            }
        )
        return result.modified_count == 1

    async def credit(self, user_id: str, amount: Decimal, time: datetime) -> bool:
        result = await mongodb.db.users.update_one(
            {"user_id": user_id},
            {
                "$inc": {"wallet_balance": Decimal128(amount)},
                "$set": {"updated_at": time}
            }
        )
        return result.modified_count == 1

    async def upsert_transaction(self, transaction: SessionTransaction):
        doc = to_document(transaction.model_dump())
        created_at = doc.pop("created_at")
        doc.pop("id")
        return await mongodb.db.transactions.update_one(
            {
                "session_id": transaction.session_id,
                "transaction_type": doc["transaction_type"]
            },
            {
                "$set": doc,
                "$setOnInsert": {"id": transaction.id, "created_at": created_at}
            },
            upsert=True
        )
