# backend/core/config.py
import os
from dotenv import load_dotenv


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - DATABASE_URL the SQLAlchemy async URL of the message store
        - UPLOAD_DIR directory where uploaded media is written and served from
        - HISTORY_LIMIT number of messages delivered to a session on join
        - EXPLICIT_DELETE_DENIAL tell the requester when a delete is refused
    """

    # Load environment variables from the .env file
    load_dotenv()

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///chat.db")

    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "50"))
    REST_HISTORY_LIMIT: int = int(os.getenv("REST_HISTORY_LIMIT", "100"))
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "500"))

    EXPLICIT_DELETE_DENIAL: bool = _env_bool("EXPLICIT_DELETE_DENIAL")

    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))

settings = Settings()
