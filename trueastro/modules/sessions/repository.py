from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from bson.decimal128 import Decimal128
from pymongo import ReturnDocument

from trueastro.core.database import mongodb
from trueastro.modules.sessions.models import ChatMessage, ConsultationSession


def encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return to_document(value)
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    return value

def to_document(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode(value) for key, value in data.items()}

def from_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.to_decimal() if isinstance(value, Decimal128) else value
        for key, value in doc.items()
    }


class SessionRepository:
    async def create_session(self, session: ConsultationSession):
        return await mongodb.db.sessions.insert_one(to_document(session.model_dump()))

    async def read_session(self, session_id: str) -> Optional[ConsultationSession]:
        doc = await mongodb.db.sessions.find_one({"id": session_id}, {"_id": 0})
        if not doc:
            return None
        return ConsultationSession(**from_document(doc))

    async def write_session_if_status(self, session_id: str, expected_status, new_fields: Dict[str, Any]) -> bool:
        result = await mongodb.db.sessions.update_one(
            {"id": session_id, "status": encode(expected_status)},
            {"$set": to_document(new_fields)}
        )
        return result.modified_count == 1

    async def append_message(self, message: ChatMessage, session_fields: Dict[str, Any], unread_fields: List[str]):
        await mongodb.db.chat_messages.insert_one(to_document(message.model_dump()))
        update: Dict[str, Any] = {"$set": to_document(session_fields)}
        if unread_fields:
            update["$inc"] = {field: 1 for field in unread_fields}
        return await mongodb.db.sessions.update_one({"id": message.session_id}, update)

    async def reset_unread(self, session_id: str, role, time: datetime) -> Optional[ConsultationSession]:
        """Zero `role`'s unread counter and flag the other side's messages as read by `role`."""
        role = encode(role)
        await mongodb.db.chat_messages.update_many(
            {"session_id": session_id, "sender_type": {"$ne": role}, f"read_by_{role}": False},
            {"$set": {f"read_by_{role}": True}}
        )
        doc = await mongodb.db.sessions.find_one_and_update(
            {"id": session_id},
            {"$set": {f"{role}_unread_count": 0, "updated_at": time}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return ConsultationSession(**from_document(doc))

    async def find_open_session(self, customer_id: str, astrologer_id: str, kind) -> Optional[ConsultationSession]:
        doc = await mongodb.db.sessions.find_one({
            "customer_id": customer_id,
            "astrologer_id": astrologer_id,
            "kind": encode(kind),
            "status": {"$in": ["pending", "active"]}
        }, {"_id": 0})
        if not doc:
            return None
        return ConsultationSession(**from_document(doc))

    async def find_stale_pending(self, created_before: datetime, limit: int = 500) -> List[ConsultationSession]:
        docs = await mongodb.db.sessions.find(
            {"status": "pending", "created_at": {"$lt": created_before}},
            {"_id": 0}
        ).sort("created_at", 1).to_list(limit)
        return [ConsultationSession(**from_document(doc)) for doc in docs]

    async def list_messages(self, session_id: str, skip: int, limit: int) -> List[ChatMessage]:
        docs = await mongodb.db.chat_messages.find(
            {"session_id": session_id}, {"_id": 0}
        ).sort("timestamp", -1).skip(skip).to_list(limit)
        return [ChatMessage(**doc) for doc in reversed(docs)]

    async def count_messages(self, session_id: str) -> int:
        return await mongodb.db.chat_messages.count_documents({"session_id": session_id})

    async def list_sessions(self, query: Dict[str, Any], skip: int, limit: int) -> List[ConsultationSession]:
        docs = await mongodb.db.sessions.find(
            to_document(query), {"_id": 0}
        ).sort("created_at", -1).skip(skip).to_list(limit)
        return [ConsultationSession(**from_document(doc)) for doc in docs]

    async def count_sessions(self, query: Dict[str, Any]) -> int:
        return await mongodb.db.sessions.count_documents(to_document(query))

    async def session_stats(self, kind, since: datetime, until: datetime) -> List[Dict[str, Any]]:
        pipeline = [
            {"$match": {
                "kind": encode(kind),
                "created_at": {"$gte": since, "$lt": until}
            }},
            {"$group": {
                "_id": "$status",
                "count": {"$sum": 1},
                "total_duration": {"$sum": {"$ifNull": ["$duration_minutes", 0]}},
                "total_amount": {"$sum": {"$ifNull": ["$total_amount", 0]}}
            }}
        ]
        rows = await mongodb.db.sessions.aggregate(pipeline).to_list(None)
        return [from_document(row) for row in rows]
