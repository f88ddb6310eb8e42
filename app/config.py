"""
Order Sync Engine Configuration
===============================

PURPOSE:
    Pydantic-Settings based configuration for the order sync engine.
    All settings can be overridden via environment variables (ORDERSYNC_ prefix).

NOTES:
    The in-memory order source reads the source_* and push_* settings; the
    engine itself only reads fetch_retries, the default sort and the
    notification durations.
"""

from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine, simulated source and HTTP surface settings."""

    app_name: str = "Order Sync Engine"
    debug: bool = False

    # Bulk fetch: one automatic retry on TransientError, then surface the failure
    fetch_retries: int = 1

    # Default projection sort (matches the dashboard's initial view)
    default_sort_field: Literal[
        "order_number",
        "customer_name",
        "status",
        "priority",
        "total_amount",
        "created_at",
        "updated_at",
    ] = "created_at"
    default_sort_direction: Literal["asc", "desc"] = "desc"

    # Notification side-channel
    notification_duration_ms: int = 5000
    status_notification_duration_ms: int = 3000
    max_notifications: int = 100

    # Push channel
    realtime_enabled: bool = True

    # Ops users only see their own region; None means all regions
    region_scope: Optional[str] = None

    # Simulated in-memory order source
    seed_order_count: int = 10_000
    source_min_latency_ms: int = 100
    source_max_latency_ms: int = 500
    source_failure_rate: float = 0.05  # 5% of calls raise TransientError
    push_min_interval_s: float = 2.0
    push_max_interval_s: float = 5.0
    push_failure_chance: float = 0.1

    # Simulated delivery agents (ids driver-1 .. driver-<agent_count>)
    agent_count: int = 50
    agent_push_min_interval_s: float = 1.0
    agent_push_max_interval_s: float = 2.0
    max_generated_exceptions: int = 50

    # Logging
    log_dir: str = "logs"
    log_file: str = "ordersync.jsonl"
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    class Config:
        env_file = ".env"
        env_prefix = "ORDERSYNC_"


settings = Settings()
