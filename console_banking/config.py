"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BankConfig(BaseSettings):
    """Console banking configuration"""

    # Database configuration
    database_url: str = "sqlite:///console_bank.db"  # memory://, sqlite:///path, postgresql://...
    database_busy_timeout: float = 5.0  # Seconds SQLite waits on a locked file

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "text"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Business rules configuration
    password_min_length: int = 6
    currency_symbol: str = "R$"
    statement_limit: int = 50

    # Encryption configuration
    encryption_enabled: bool = False  # Must opt-in
    encryption_master_key: str = ""  # BANK_ENCRYPTION_MASTER_KEY env var

    class Config:
        env_prefix = "BANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
