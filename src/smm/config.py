"""Configuration loaded from environment variables.

Values are read once when the config object is created. ``load_dotenv()``
is called by the process entry points (``src/smm/app.py``, ``scheduler.py``)
before any config object is built.
"""
import os
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class SyncConfig:
    """Settings for the sync orchestrator and its HTTP surface."""

    def __init__(self):
        self.database_url: Optional[str] = os.getenv("DATABASE_URL") or None
        self.concurrency = _env_int("SYNC_CONCURRENCY", 4)
        self.max_orders = _env_int("SYNC_MAX_ORDERS", 100)
        self.max_errors = _env_int("SYNC_MAX_ERRORS", 10)
        self.max_duration_seconds = _env_int("SYNC_MAX_DURATION_SECONDS", 25)
        self.provider_default_timeout = _env_int("PROVIDER_DEFAULT_TIMEOUT", 30)
        self.sse_keepalive_seconds = _env_int("SSE_KEEPALIVE_SECONDS", 30)
        self.cron_secret: Optional[str] = os.getenv("CRON_SECRET") or None

    def __repr__(self):
        return (
            f"SyncConfig("
            f"concurrency={self.concurrency}, "
            f"max_orders={self.max_orders}, "
            f"max_errors={self.max_errors}, "
            f"max_duration={self.max_duration_seconds}s, "
            f"provider_timeout={self.provider_default_timeout}s, "
            f"keepalive={self.sse_keepalive_seconds}s, "
            f"cron_secret={'set' if self.cron_secret else 'unset'})"
        )


class SchedulerConfig:
    """Settings for the periodic sync-all run."""

    def __init__(self):
        self.enabled = _env_bool("SYNC_SCHEDULER_ENABLED", "true")
        self.interval_minutes = _env_int("SYNC_INTERVAL_MINUTES", 5)
        self.sync_on_startup = _env_bool("SYNC_ON_STARTUP", "false")
        self.health_check_port = _env_int("HEALTH_CHECK_PORT", 8080)

    def __repr__(self):
        return (
            f"SchedulerConfig("
            f"enabled={self.enabled}, "
            f"interval={self.interval_minutes}m, "
            f"startup={self.sync_on_startup}, "
            f"health_port={self.health_check_port})"
        )
