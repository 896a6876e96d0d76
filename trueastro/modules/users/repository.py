from decimal import Decimal
from typing import Optional

from bson.decimal128 import Decimal128

from trueastro.core.config import DEFAULT_RATES
from trueastro.core.database import mongodb

RATE_FIELDS = {
    "chat": "chat_rate",
    "voice_call": "call_rate",
    "video_call": "video_rate",
}


class UserRepository:
    async def exists(self, user_id: str) -> bool:
        return await mongodb.db.users.find_one({"user_id": user_id}, {"_id": 1}) is not None

    async def find_astrologer(self, astrologer_id: str) -> Optional[dict]:
        return await mongodb.db.users.find_one(
            {"user_id": astrologer_id, "user_type": "astrologer"},
            {"_id": 0}
        )

    async def get_rate_card(self, astrologer_id: str, kind) -> Optional[Decimal]:
        """Per-minute rate for `kind`, or None when the astrologer is unknown."""
        kind = getattr(kind, "value", kind)
        astrologer = await self.find_astrologer(astrologer_id)
        if not astrologer:
            return None

        rate = astrologer.get(RATE_FIELDS[kind])
        if rate is None:
            return DEFAULT_RATES[kind]
        if isinstance(rate, Decimal128):
            return rate.to_decimal()
        return Decimal(str(rate))
