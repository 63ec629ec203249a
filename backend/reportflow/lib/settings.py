"""
Engine settings loaded from environment variables.
Uses pydantic-settings for validation and .env file support.
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration settings."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REPORTFLOW_",
        case_sensitive=False,
        extra="ignore"
    )
    
    # Application
    app_name: str = Field(default="reportflow", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    
    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    
    # Scheduling
    scheduler_poll_interval_seconds: int = Field(
        default=60,
        ge=1,
        description="How often the driver looks for due reports and pending jobs"
    )
    execution_window_minutes: int = Field(
        default=5,
        ge=1,
        description="Look-ahead window used when building execution plans"
    )
    
    # Queues
    report_queue_name: str = Field(
        default="reports",
        description="Queue that receives one job per due scheduled report"
    )
    worker_batch_size: int = Field(
        default=10,
        ge=1,
        description="Max pending jobs pulled per queue per drain pass"
    )
    
    # Retention
    completed_job_retention_days: int = Field(
        default=7,
        ge=0,
        description="Completed jobs older than this are deleted by cleanup"
    )
    failed_job_retention_days: int = Field(
        default=30,
        ge=0,
        description="Permanently failed jobs older than this are deleted by cleanup"
    )


# Global settings instance
settings = Settings()
