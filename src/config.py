import os
from datetime import timedelta

from src.engine.guard import GuardSettings


class Config:
    DEFAULT_WEBHOOK_MIN_INTERVAL_SECONDS = 5.0

    @staticmethod
    def require_env(name: str) -> str:
        value = os.getenv(name, "").strip()
        if not value:
            raise RuntimeError(f"Missing required env var: {name}")
        return value

    @staticmethod
    def _number(name: str, default: float) -> float:
        raw_value = os.getenv(name, "").strip()
        if not raw_value:
            return default
        try:
            value = float(raw_value)
        except ValueError as exc:
            raise RuntimeError(f"Invalid {name}: expected a positive number.") from exc
        if value <= 0:
            raise RuntimeError(f"Invalid {name}: expected a positive number.")
        return value

    @staticmethod
    def get_guard_settings() -> GuardSettings:
        defaults = GuardSettings()
        return GuardSettings(
            min_interval=timedelta(
                seconds=Config._number(
                    "RULEBRIDGE_GUARD_MIN_INTERVAL_SECONDS", defaults.min_interval.total_seconds()
                )
            ),
            max_per_hour=int(Config._number("RULEBRIDGE_GUARD_MAX_PER_HOUR", defaults.max_per_hour)),
            duplicate_window=timedelta(
                seconds=Config._number(
                    "RULEBRIDGE_GUARD_DUPLICATE_WINDOW_SECONDS",
                    defaults.duplicate_window.total_seconds(),
                )
            ),
            sweep_interval=timedelta(
                seconds=Config._number(
                    "RULEBRIDGE_GUARD_SWEEP_INTERVAL_SECONDS", defaults.sweep_interval.total_seconds()
                )
            ),
            retention=timedelta(
                seconds=Config._number(
                    "RULEBRIDGE_GUARD_RETENTION_SECONDS", defaults.retention.total_seconds()
                )
            ),
            max_entries=int(Config._number("RULEBRIDGE_GUARD_MAX_ENTRIES", defaults.max_entries)),
        )

    @staticmethod
    def get_webhook_min_interval() -> timedelta:
        return timedelta(
            seconds=Config._number(
                "RULEBRIDGE_WEBHOOK_MIN_INTERVAL_SECONDS",
                Config.DEFAULT_WEBHOOK_MIN_INTERVAL_SECONDS,
            )
        )
