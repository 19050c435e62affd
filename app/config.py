"""
Service Configuration
Validated settings loaded from the environment at startup
"""

import os
from typing import Optional


class Config:
    """Validated configuration - fails fast on missing vars"""

    def __init__(self):
        self.MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
        self.MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "lms_db")

        self.JWT_SECRET = self._require_env("JWT_SECRET")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ISSUER = os.getenv("JWT_ISSUER", "lms-auth")
        self.JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "lms-api")
        self.TOKEN_EXPIRE_HOURS = self._int_env("TOKEN_EXPIRE_HOURS", 24)

        # Platform share of every course payment, the teacher gets the rest
        self.ADMIN_COMMISSION_PERCENT = self._int_env("ADMIN_COMMISSION_PERCENT", 10)
        if not 0 <= self.ADMIN_COMMISSION_PERCENT <= 100:
            raise RuntimeError("FATAL: ADMIN_COMMISSION_PERCENT must be between 0 and 100")

        self.RECEIPT_BUCKET = os.getenv("RECEIPT_BUCKET", "receipts")
        self.CURRENCY_CODE = os.getenv("CURRENCY_CODE", "INR")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def _require_env(key: str) -> str:
        """Get required environment variable or crash"""
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"FATAL: Missing required environment variable: {key}")
        return value

    @staticmethod
    def _int_env(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise RuntimeError(f"FATAL: {key} must be an integer, got {raw!r}")


# Global config instance
config: Optional[Config] = None


def init_config() -> Config:
    """
    Build the global config from the environment
    Call this once at app startup (tests call it after patching env)
    """
    global config
    config = Config()
    return config


def get_config() -> Config:
    if config is None:
        return init_config()
    return config
