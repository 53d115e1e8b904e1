"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Storage backend and plan table are validated at load
time so a misconfigured process fails on startup, not on first upload.
"""

import json
from functools import lru_cache

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudvault.core.constants import DEFAULT_PLAN_LIMITS, MIB
from cloudvault.domain.enums import Plan, StorageBackendKind
from cloudvault.domain.value_objects import PlanLimits

S3_PROVIDERS = ("aws", "b2", "r2", "minio")
S3_MIN_PART_BYTES = 5 * MIB


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings are optional with defaults except those validated in
    validate_storage_and_plans (s3_bucket for the remote backend, and a
    complete plan table when PLAN_LIMITS is set).
    """

    # App
    app_name: str = "cloudvault"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database (Postgres via SQLAlchemy + asyncpg; empty = not configured)
    database_url: str = ""
    database_echo: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # Storage: "local" (filesystem) or "remote" (S3-compatible)
    storage_backend: str = "local"
    storage_root: str = "/var/cloudvault/storage"
    storage_base_url: str | None = None
    # HMAC key for local download tokens; must be shared by every worker process
    storage_download_secret: SecretStr | None = None

    # S3-compatible provider
    s3_provider: str = "aws"
    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    # None = provider default (path-style for b2, r2, minio)
    s3_force_path_style: bool | None = None
    s3_server_side_encryption: str | None = "AES256"
    # Uploads at or above the threshold use multipart transfer (parts are at least 5 MiB)
    s3_multipart_threshold_bytes: int = 64 * 1024 * 1024
    s3_multipart_chunk_bytes: int = 16 * 1024 * 1024

    # Plans: JSON object {"FREE": {"total_storage_bytes": ..., "max_upload_bytes": ...}, ...}
    plan_limits: str = ""

    # Download handles
    owner_download_ttl_seconds: int = 3600
    shared_download_ttl_seconds: int = 300
    max_download_ttl_seconds: int = 7 * 24 * 3600

    # Timeouts (independent budgets)
    upload_timeout_seconds: float = 1800.0
    quota_lookup_timeout_seconds: float = 5.0

    # Transient read retries (stat, presign)
    storage_read_retry_attempts: int = 3
    storage_read_retry_delay_ms: int = 100

    # Uploads
    upload_chunk_size: int = 1024 * 1024
    allowed_mime_types: str = "*/*"
    strict_quota_admission: bool = False

    # Ledger drift above this many bytes is logged at WARNING
    ledger_drift_alert_bytes: int = 0

    # Request / middleware
    request_id_header: str = "X-Request-ID"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("storage_backend", "s3_provider", mode="before")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_storage_and_plans(self) -> "Settings":
        """Validate storage backend, provider, TTLs, and the plan table."""
        if self.storage_backend not in StorageBackendKind.values():
            raise ValueError(
                f"Invalid storage_backend '{self.storage_backend}'. "
                "Must be one of: 'local', 'remote'"
            )
        if self.storage_backend == StorageBackendKind.REMOTE.value:
            if not self.s3_bucket:
                raise ValueError(
                    "s3_bucket is required when storage_backend is 'remote'. "
                    "Set S3_BUCKET environment variable or update .env file."
                )
            if self.s3_provider not in S3_PROVIDERS:
                raise ValueError(
                    f"Invalid s3_provider '{self.s3_provider}'. "
                    f"Must be one of: {', '.join(S3_PROVIDERS)}"
                )
            if self.s3_provider == "r2" and not self.s3_endpoint_url:
                raise ValueError("s3_endpoint_url is required for provider 'r2'.")
            if self.s3_multipart_chunk_bytes < S3_MIN_PART_BYTES:
                raise ValueError("s3_multipart_chunk_bytes must be at least 5 MiB")
        for name in ("owner_download_ttl_seconds", "shared_download_ttl_seconds"):
            ttl = getattr(self, name)
            if ttl <= 0 or ttl > self.max_download_ttl_seconds:
                raise ValueError(
                    f"{name} must be between 1 and max_download_ttl_seconds"
                )
        if self.upload_timeout_seconds <= 0 or self.quota_lookup_timeout_seconds <= 0:
            raise ValueError("Timeouts must be positive")
        if self.upload_chunk_size <= 0:
            raise ValueError("upload_chunk_size must be positive")
        self.get_plan_limits()
        return self

    def get_plan_limits(self) -> dict[Plan, PlanLimits]:
        """Return the plan table, from PLAN_LIMITS when set, else the defaults.

        Raises:
            ValueError: If PLAN_LIMITS is not valid JSON, names an unknown
                plan, omits a plan, or breaks FREE <= PRO <= BUSINESS.
        """
        raw: dict = DEFAULT_PLAN_LIMITS
        if self.plan_limits.strip():
            try:
                raw = json.loads(self.plan_limits)
            except json.JSONDecodeError as e:
                raise ValueError(f"PLAN_LIMITS is not valid JSON: {e}") from e
            if not isinstance(raw, dict):
                raise ValueError("PLAN_LIMITS must be a JSON object keyed by plan")
        table: dict[Plan, PlanLimits] = {}
        for code, limits in raw.items():
            if code.upper() not in Plan.values():
                raise ValueError(f"PLAN_LIMITS names unknown plan '{code}'")
            if not isinstance(limits, dict):
                raise ValueError(f"PLAN_LIMITS entry for '{code}' must be an object")
            table[Plan(code.upper())] = PlanLimits(
                total_storage_bytes=limits.get("total_storage_bytes"),
                max_upload_bytes=limits.get("max_upload_bytes"),
            )
        missing = [p.value for p in Plan if p not in table]
        if missing:
            raise ValueError(f"PLAN_LIMITS is missing plans: {', '.join(missing)}")
        ordered = [table[Plan.FREE], table[Plan.PRO], table[Plan.BUSINESS]]
        for lower, higher in zip(ordered, ordered[1:]):
            if (
                lower.total_storage_bytes > higher.total_storage_bytes
                or lower.max_upload_bytes > higher.max_upload_bytes
            ):
                raise ValueError("PLAN_LIMITS must be ordered FREE <= PRO <= BUSINESS")
        return table

    def get_allowed_mime_types(self) -> list[str]:
        """Return the content-type allowlist as lowercase patterns."""
        return [
            t.strip().lower() for t in self.allowed_mime_types.split(",") if t.strip()
        ]


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
