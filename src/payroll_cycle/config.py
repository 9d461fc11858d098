"""Configuration management for the payroll cycle service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

from payroll_cycle.services.config import (
    ApprovalConfig,
    CycleConfig,
    ExecutionConfig,
    FxConfig,
    SubmissionConfig,
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    host: str
    port: int
    debug: bool
    log_level: str
    approval_threshold: Decimal
    execution_min_delay_ms: int
    execution_max_delay_ms: int
    auto_retry: bool
    max_payment_attempts: int
    fx_lock_minutes: int
    queue_late_submissions: bool
    cutoff_warning_days: int

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=_env_bool("DEBUG", "false"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            approval_threshold=Decimal(os.getenv("APPROVAL_THRESHOLD", "50000")),
            execution_min_delay_ms=int(os.getenv("EXECUTION_MIN_DELAY_MS", "800")),
            execution_max_delay_ms=int(os.getenv("EXECUTION_MAX_DELAY_MS", "1500")),
            auto_retry=_env_bool("AUTO_RETRY", "true"),
            max_payment_attempts=int(os.getenv("MAX_PAYMENT_ATTEMPTS", "3")),
            fx_lock_minutes=int(os.getenv("FX_LOCK_MINUTES", "15")),
            queue_late_submissions=_env_bool("QUEUE_LATE_SUBMISSIONS", "false"),
            cutoff_warning_days=int(os.getenv("CUTOFF_WARNING_DAYS", "3")),
        )

    def cycle_config(self) -> CycleConfig:
        """Build the policy configuration from these settings."""
        return CycleConfig(
            submissions=SubmissionConfig(
                queue_late_submissions=self.queue_late_submissions,
                cutoff_warning_days=self.cutoff_warning_days,
            ),
            approval=ApprovalConfig(threshold=self.approval_threshold),
            execution=ExecutionConfig(
                min_delay_ms=self.execution_min_delay_ms,
                max_delay_ms=self.execution_max_delay_ms,
                auto_retry=self.auto_retry,
                max_attempts=self.max_payment_attempts,
            ),
            fx=FxConfig(lock_minutes=self.fx_lock_minutes),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


settings = get_settings()
