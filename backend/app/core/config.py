"""Application configuration using Pydantic BaseSettings"""
import logging
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Setup logging
logger = logging.getLogger("config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    ENVIRONMENT: str = "development"
    PORT: int = 3000

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Minecraft server RCON
    RCON_HOST: str = "localhost"
    RCON_PORT: int = 25575
    RCON_PASSWORD: str = ""
    RCON_TIMEOUT: float = 10.0  # seconds, per command
    # Substrings in a server response that mean the command was not applied
    RCON_FAILURE_MARKERS: List[str] = [
        "Unknown or incomplete command",
        "Unknown command",
        "An unexpected error occurred",
    ]

    # Admin credential for voucher issuance and reporting
    ADMIN_KEY: str = ""

    # Ledger files
    TRANSACTIONS_FILE: Path = Path("data/transactions.json")
    VOUCHERS_FILE: Path = Path("data/vouchers.json")

    # Vouchers
    VOUCHER_CODE_PREFIX: str = "VOUCHER-"
    VOUCHER_CODE_LENGTH: int = 8

    # Rank grants
    RANK_DURATION: str = "30d"

    # Pydantic V2 Config
    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("ADMIN_KEY")
    @classmethod
    def check_admin_key(cls, v):
        if not v or v.strip() == "":
            # Issuance and reporting endpoints reject every request without it
            logger.warning("ADMIN_KEY is not set - voucher issuance is disabled")
        return v

    @field_validator("VOUCHER_CODE_LENGTH")
    @classmethod
    def check_code_length(cls, v):
        if v < 4:
            raise ValueError("VOUCHER_CODE_LENGTH must be at least 4")
        return v


# Create global settings instance
settings = Settings()
