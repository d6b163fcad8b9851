from os import getenv
from pathlib import Path

DEFAULT_DB_PATH = Path.home() / ".config" / "insuratask" / "tasks.db"


class Settings:
    DATABASE_URL = getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")
    SEED_DEMO_DATA = getenv("SEED_DEMO_DATA", "1") == "1"

    # OAuth state signing
    STATE_SECRET = getenv("STATE_SECRET", "dev-secret-change-in-prod")
    STATE_EXPIRE_MIN = int(getenv("STATE_EXPIRE_MIN", "10"))

    # Google Calendar
    GOOGLE_CLIENT_ID = getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET = getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_REDIRECT_URI = getenv("GOOGLE_REDIRECT_URI", "http://localhost:5000/auth/google/callback")
    SYNC_LOOKBACK_DAYS = int(getenv("SYNC_LOOKBACK_DAYS", "30"))
    SYNC_LOOKAHEAD_DAYS = int(getenv("SYNC_LOOKAHEAD_DAYS", "90"))
    CALENDAR_TIMEZONE = getenv("CALENDAR_TIMEZONE", "Europe/Rome")

    # Template scheduler
    SCHEDULER_ENABLED = getenv("SCHEDULER_ENABLED", "1") == "1"
    SCHEDULER_TIMEZONE = getenv("SCHEDULER_TIMEZONE", "Europe/Rome")
    SCHEDULER_POLL_SECONDS = int(getenv("SCHEDULER_POLL_SECONDS", "30"))

    # Attachments
    UPLOAD_DIR = getenv("UPLOAD_DIR", str(Path.home() / ".config" / "insuratask" / "uploads"))
    MAX_UPLOAD_BYTES = int(getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    LOG_LEVEL = getenv("LOG_LEVEL", "INFO")
    HOST = getenv("HOST", "0.0.0.0")
    PORT = int(getenv("PORT", "5000"))

settings = Settings()
