"""
Move pending sessions past their TTL to "expired".

Meant to run from cron every minute or so:

    python -m trueastro.scripts.expire_sessions
"""
import asyncio
import logging

from trueastro.core.database import close_mongo_connection, connect_to_mongo
from trueastro.core.logging_config import configure_logging
from trueastro.modules.sessions.repository import SessionRepository
from trueastro.modules.sessions.service import SessionLedger
from trueastro.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


async def run() -> int:
    await connect_to_mongo()
    try:
        # expiry never completes a session, so no wallet settlement is involved
        ledger = SessionLedger(session_repo=SessionRepository(), user_repo=UserRepository())
        expired = await ledger.expire_stale_sessions()
    finally:
        await close_mongo_connection()
    logger.info("Sweep finished: %d sessions expired", len(expired))
    return len(expired)


def main():
    configure_logging()
    asyncio.run(run())


if __name__ == "__main__":
    main()
