from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging
from trueastro.core.database import connect_to_mongo, close_mongo_connection, ensure_indexes
from trueastro.core.errors import LedgerError, ledger_error_handler
from trueastro.core.logging_config import configure_logging
from trueastro.modules.sessions.router import session_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    await connect_to_mongo()
    await ensure_indexes()
    logger.info("Session ledger ready")
    yield
    # Shutdown
    await close_mongo_connection()


app = FastAPI(lifespan=lifespan)
app.add_exception_handler(LedgerError, ledger_error_handler)


@app.get("/")
async def root():
    return {"message": "TrueAstro session ledger"}


app.include_router(session_router, prefix="/api")
