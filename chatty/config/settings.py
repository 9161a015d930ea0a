"""Application configuration settings"""

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Database
    MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    MONGODB_DB = os.getenv("MONGODB_DB", "chatty")

    # Auth
    JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))

    # Realtime bus (unset = deliver to local sessions only)
    REDIS_URL = os.getenv("REDIS_URL") or None

    # HTTP
    CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "5000"))
    DEBUG = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes", "on"}

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Messages
    MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "1000"))
    HISTORY_PAGE_SIZE = int(os.getenv("HISTORY_PAGE_SIZE", "50"))
    HISTORY_MAX_PAGE_SIZE = int(os.getenv("HISTORY_MAX_PAGE_SIZE", "200"))
