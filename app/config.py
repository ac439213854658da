"""
Application configuration using Pydantic Settings
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.domain.budget_entry import (
    DEFAULT_ACCOUNT_CATEGORIES,
    DEFAULT_BUSINESS_DIVISIONS,
    DEFAULT_COST_TYPES,
    DEFAULT_DEPARTMENTS,
    Vocabulary,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Ledger file (pseudo-database)
    BUDGET_FILE_PATH: str = "data/budget.xlsx"

    # Fiscal calendar
    SETTLEMENT_MONTH: int = 9  # last closed month
    DEFAULT_YEAR: int = 2025
    MIN_YEAR: int = 2020
    MAX_YEAR: int = 2030

    # File watch
    WATCH_ENABLED: bool = True
    WATCH_INTERVAL_SECONDS: float = 1.0
    SAVE_SETTLE_SECONDS: float = 2.0

    # Application
    DEBUG: bool = False

    # Closed vocabularies (JSON lists in env)
    DEPARTMENTS: List[str] = list(DEFAULT_DEPARTMENTS)
    ACCOUNT_CATEGORIES: List[str] = list(DEFAULT_ACCOUNT_CATEGORIES)
    BUSINESS_DIVISIONS: List[str] = list(DEFAULT_BUSINESS_DIVISIONS)
    COST_TYPES: List[str] = list(DEFAULT_COST_TYPES)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def vocabulary(self) -> Vocabulary:
        """Closed vocabularies plus the year band used by ingestion."""
        return Vocabulary(
            departments=tuple(self.DEPARTMENTS),
            account_categories=tuple(self.ACCOUNT_CATEGORIES),
            business_divisions=tuple(self.BUSINESS_DIVISIONS),
            cost_types=tuple(self.COST_TYPES),
            min_year=self.MIN_YEAR,
            max_year=self.MAX_YEAR,
            default_year=self.DEFAULT_YEAR,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
