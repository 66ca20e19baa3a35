"""
Configuration Management for BizLedger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every threshold the reporting services compare against (budget alert bands,
anomaly multipliers, guarantee expiry windows) lives in AppSettings so that
a deployment can tune them without touching business logic.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per table
    accounts_sheet_name: str = Field(default="Accounts")
    categories_sheet_name: str = Field(default="Categories")
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    tenders_sheet_name: str = Field(default="Tenders")
    tender_tasks_sheet_name: str = Field(default="TenderTasks")
    employees_sheet_name: str = Field(default="Employees")
    documents_sheet_name: str = Field(default="AccountingDocuments")
    kudir_sheet_name: str = Field(default="Kudir")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (it may be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=512,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(sheets|memory)$",
        description="Where records are kept: Google Sheets or process memory"
    )
    default_currency: str = Field(
        default="RUB",
        min_length=3,
        max_length=3,
    )

    # Budget alert bands, in percent of the limit
    budget_warning_percent: int = Field(default=50, ge=1)
    budget_critical_percent: int = Field(default=80, ge=1)
    budget_exceeded_percent: int = Field(default=100, ge=1)
    budget_overspent_percent: int = Field(default=120, ge=1)

    # Spending anomaly detection
    anomaly_history_months: int = Field(
        default=6,
        ge=2,
        le=24,
        description="How many months of history the detector looks at"
    )
    anomaly_min_diff_percent: float = Field(default=30.0, ge=0)
    large_transaction_min_amount: float = Field(default=100.0, ge=0)
    unusual_category_min_amount: float = Field(default=50.0, ge=0)

    # CSV import limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    max_import_rows: int = Field(
        default=5000,
        ge=1,
        description="Maximum number of rows accepted in one CSV import"
    )

    # Validation thresholds
    max_transaction_amount: float = Field(
        default=100000000.0,
        description="Maximum reasonable transaction amount (for sanity checking)"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a transaction date can be"
    )

    # Guarantee expiry windows
    application_security_expiring_days: int = Field(default=14, ge=1)
    contract_security_expiring_days: int = Field(default=30, ge=1)

    # Dashboard list sizes
    dashboard_list_size: int = Field(default=5, ge=1, le=50)

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for each one that failed to load.
    """
    results = {}
    settings = get_settings()

    for name in ("google_sheets", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
