"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class LoanDeskConfig(BaseSettings):
    """Loan desk configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LOANDESK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    database_path: str = "loan_desk.db"
    use_sqlite: bool = True

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Money
    currency: str = "INR"

    # Loan application bounds
    min_loan_amount: str = "1000"
    max_loan_amount: str = "100000000"
    min_interest_rate: str = "1"
    max_interest_rate: str = "30"
    min_tenure_months: int = 6
    max_tenure_months: int = 120
    max_processing_fee: str = "10"
    default_processing_fee: str = "5"

    # Reporting
    upcoming_emi_window_days: int = 7

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = LoanDeskConfig()


def get_config() -> LoanDeskConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanDeskConfig:
    """Reload configuration from environment"""
    global config
    config = LoanDeskConfig()
    return config
