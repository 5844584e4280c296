from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Redis connection string
    redis_url: str = Field(
        "redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis connection URL, e.g. 'redis://redis:6379/0'",
    )

    # HTTP timeout for provider calls (seconds)
    upstream_timeout: float = Field(60.0, alias="UPSTREAM_TIMEOUT")

    # Raw provider id list; concrete provider configs are derived from this.
    llm_providers_raw: Optional[str] = Field(
        default=None,
        alias="LLM_PROVIDERS",
        description="Comma-separated provider ids, e.g. 'openai,gemini'",
    )

    # Logging
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: Optional[str] = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Europe/Berlin'. Defaults to system local time.",
    )
    log_dir: str = Field("logs", alias="LOG_DIR", description="Directory for daily log files")

    # Health monitoring
    health_check_interval_seconds: int = Field(
        30,
        alias="HEALTH_CHECK_INTERVAL_SECONDS",
        description="Period of the background health probe cycle",
    )
    health_check_timeout_seconds: float = Field(
        10.0,
        alias="HEALTH_CHECK_TIMEOUT_SECONDS",
        description="Wall-clock bound for one check_all() cycle",
    )
    health_cache_ttl_seconds: int = Field(
        30,
        alias="HEALTH_CACHE_TTL_SECONDS",
        description="How long a cached HealthStatus counts as fresh",
    )
    health_retention_seconds: int = Field(
        300,
        alias="HEALTH_RETENTION_SECONDS",
        description="How long the last known HealthStatus is kept in Redis",
    )
    health_degraded_response_time_ms: int = Field(
        10000,
        alias="HEALTH_DEGRADED_RESPONSE_TIME_MS",
        description="Default average response time above which a provider is DEGRADED",
    )

    # Rolling metrics
    metrics_ttl_seconds: int = Field(
        86400,
        alias="METRICS_TTL_SECONDS",
        description="TTL for per-provider rolling counters",
    )

    # Selection / routing caches
    recommendation_cache_ttl_seconds: int = Field(
        3600, alias="RECOMMENDATION_CACHE_TTL_SECONDS"
    )
    routing_strategy_cache_ttl_seconds: int = Field(
        3600, alias="ROUTING_STRATEGY_CACHE_TTL_SECONDS"
    )

    # Alerting
    alert_monitor_interval_seconds: int = Field(
        120, alias="ALERT_MONITOR_INTERVAL_SECONDS"
    )
    alert_cooldown_seconds: int = Field(
        1800,
        alias="ALERT_COOLDOWN_SECONDS",
        description="Minimum time between two alerts of the same type for one provider",
    )
    alert_history_size: int = Field(100, alias="ALERT_HISTORY_SIZE")
    alert_history_retention_days: int = Field(30, alias="ALERT_HISTORY_RETENTION_DAYS")
    alert_response_time_threshold_ms: int = Field(
        30000, alias="ALERT_RESPONSE_TIME_THRESHOLD_MS"
    )
    alert_error_rate_threshold: float = Field(0.05, alias="ALERT_ERROR_RATE_THRESHOLD")
    alert_consecutive_failures_threshold: int = Field(
        5, alias="ALERT_CONSECUTIVE_FAILURES_THRESHOLD"
    )
    alert_webhook_url: Optional[str] = Field(
        None,
        alias="ALERT_WEBHOOK_URL",
        description="When set, fired alerts are POSTed to this URL as JSON",
    )

    # Budgets (USD)
    daily_cost_budget: float = Field(100.0, alias="DAILY_COST_BUDGET")
    monthly_cost_budget: float = Field(2500.0, alias="MONTHLY_COST_BUDGET")

    # Failover / circuit breaker
    circuit_breaker_failure_threshold: int = Field(
        5, alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_reset_seconds: float = Field(
        30.0, alias="CIRCUIT_BREAKER_RESET_SECONDS"
    )
    circuit_breaker_min_requests: int = Field(
        10,
        alias="CIRCUIT_BREAKER_MIN_REQUESTS",
        description="Samples required before the error-rate breaker can exclude a provider",
    )
    failover_backoff_cap_ms: int = Field(10000, alias="FAILOVER_BACKOFF_CAP_MS")

    # Celery task queue configuration (defaults assume local Redis).
    celery_broker_url: str = Field(
        "redis://localhost:6379/1",
        alias="CELERY_BROKER_URL",
        description="Celery broker URL; typically a Redis instance",
    )
    celery_result_backend: str = Field(
        "redis://localhost:6379/1",
        alias="CELERY_RESULT_BACKEND",
        description="Celery result backend URL; can reuse the broker URL",
    )
    celery_task_default_queue: str = Field("aigate", alias="CELERY_TASK_DEFAULT_QUEUE")
    celery_timezone: str = Field("UTC", alias="CELERY_TIMEZONE")

    def get_llm_provider_ids(self) -> List[str]:
        """
        Return configured provider ids from LLM_PROVIDERS.
        Whitespace is stripped and empty entries are ignored.
        """
        if not self.llm_providers_raw:
            return []
        return [
            item.strip()
            for item in self.llm_providers_raw.split(",")
            if item.strip()
        ]


settings = Settings()  # Reads from environment if available
