"""
Retail Reporting Pipelines
Run Configuration

Environment-driven settings for warehouse paths, logging and report runs.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataLakeSettings(BaseSettings):
    """Warehouse extract and report output locations"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    warehouse_path: str = Field(default="./data/warehouse", description="Warehouse extract root path")
    reports_path: str = Field(default="./data/reports", description="Report output path")

    # File formats
    default_format: str = Field(default="parquet", description="Default file format: parquet or csv")

    @field_validator("default_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate file format value"""
        allowed = ["parquet", "csv"]
        if v.lower() not in allowed:
            raise ValueError(f"File format must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, description="Log file path")


class ReportSettings(BaseSettings):
    """Report Run Configuration"""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    anchor_offset_days: int = Field(default=7, description="Days subtracted from as-of to pick the fiscal anchor")
    float_tolerance: float = Field(default=1e-6, description="Tolerance for conservation and share checks")
    fail_on_conservation_error: bool = Field(
        default=True,
        description="Abort a report when reconciled totals do not conserve",
    )
    validate_calendar: bool = Field(default=True, description="Validate calendar integrity before each run")
    strict_calendar: bool = Field(
        default=False,
        description="Treat calendar warnings (duplicate or misplaced last-year keys) as integrity failures",
    )


class Settings(BaseSettings):
    """
    Report Run Settings

    One entry point for the warehouse location, output layout, logging and
    report run knobs. Business rule tables live in ``BusinessRules``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="retail-reporting", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = ["development", "testing", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()
