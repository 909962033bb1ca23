"""Configuration from environment variables."""

from dataclasses import dataclass
from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # PostgreSQL (from postgresql-credentials secret)
    postgres_host: str = "postgresql.agents.svc.cluster.local"
    postgres_port: int = 5432
    postgres_user: str = "app"
    postgres_password: str = ""
    postgres_db: str = "app"

    # Logging
    log_level: str = "INFO"

    # Batch reconciliation
    reconcile_max_retries: int = 3

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Synchronous database URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_prefix = ""
        case_sensitive = False


settings = Settings()


@dataclass(frozen=True)
class MatchingConfig:
    """Weights and thresholds for transaction/document scoring."""

    # Amount component (40%)
    amount_exact_weight: Decimal = Decimal("0.40")
    amount_close_weight: Decimal = Decimal("0.35")
    amount_near_weight: Decimal = Decimal("0.20")
    amount_close_tolerance: Decimal = Decimal("0.01")
    amount_near_tolerance: Decimal = Decimal("0.05")

    # Date component (30%)
    date_exact_weight: Decimal = Decimal("0.30")
    date_close_weight: Decimal = Decimal("0.25")
    date_near_weight: Decimal = Decimal("0.15")
    date_close_days: int = 2
    date_near_days: int = 5

    # Identity components
    tax_id_weight: Decimal = Decimal("0.20")
    folio_weight: Decimal = Decimal("0.10")
    issuer_name_weight: Decimal = Decimal("0.05")
    issuer_name_prefix: int = 10

    # Learned patterns
    default_pattern_boost: Decimal = Decimal("0.10")

    # Classification
    max_confidence: Decimal = Decimal("1.00")
    match_threshold: Decimal = Decimal("0.70")
    partial_threshold: Decimal = Decimal("0.50")
    suggestion_threshold: Decimal = Decimal("0.30")
    suggestion_limit: int = 3


@dataclass(frozen=True)
class AnomalyConfig:
    """Thresholds for the anomaly rules."""

    # Unusual amount
    min_group_size_for_average: int = 2
    min_group_size_for_alert: int = 3
    unusual_multiplier: Decimal = Decimal("3")
    high_severity_multiplier: Decimal = Decimal("5")

    # Possible duplicate
    duplicate_window_days: int = 3


DEFAULT_MATCHING_CONFIG = MatchingConfig()
DEFAULT_ANOMALY_CONFIG = AnomalyConfig()
