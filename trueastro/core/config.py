from pathlib import Path
from decimal import Decimal
from dotenv import load_dotenv
import os


ROOT_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(ROOT_DIR / ".env")

MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "trueastrotalkDB")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Pending sessions older than this are moved to "expired" by the sweep
PENDING_SESSION_TTL_MINUTES = int(os.getenv("PENDING_SESSION_TTL_MINUTES", "5"))

# Share of every completed session kept by the platform
PLATFORM_COMMISSION_PERCENT = Decimal(os.getenv("PLATFORM_COMMISSION_PERCENT", "20"))

# Fallback per-minute rates (INR) for astrologers with no rate on file
DEFAULT_RATES = {
    "chat": Decimal(os.getenv("DEFAULT_CHAT_RATE", "5")),
    "voice_call": Decimal(os.getenv("DEFAULT_CALL_RATE", "10")),
    "video_call": Decimal(os.getenv("DEFAULT_VIDEO_RATE", "15")),
}
