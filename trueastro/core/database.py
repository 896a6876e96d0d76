import logging
from motor.motor_asyncio import AsyncIOMotorClient
from trueastro.core.config import MONGODB_URL, DATABASE_NAME

logger = logging.getLogger(__name__)


class MongoDB:
    client: AsyncIOMotorClient = None
    db = None

mongodb = MongoDB()

async def connect_to_mongo():
    # tz_aware so stored start/end times come back comparable with now()
    mongodb.client = AsyncIOMotorClient(MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[DATABASE_NAME]

    await mongodb.client.admin.command("ping")
    logger.info("MongoDB connected (%s)", DATABASE_NAME)

async def close_mongo_connection():
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("MongoDB disconnected")

async def ensure_indexes():
    await mongodb.db.sessions.create_index("id", unique=True)
    await mongodb.db.sessions.create_index([("status", 1), ("created_at", 1)])
    await mongodb.db.sessions.create_index([("customer_id", 1), ("astrologer_id", 1), ("kind", 1)])
    await mongodb.db.chat_messages.create_index([("session_id", 1), ("timestamp", -1)])
    await mongodb.db.transactions.create_index([("session_id", 1), ("transaction_type", 1)])
