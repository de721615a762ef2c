from dataclasses import dataclass
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "citetally")
    database_url: str = _env_str("DATABASE_URL", "sqlite+aiosqlite:///./citetally.db")
    database_create_schema: bool = _env_bool("DATABASE_CREATE_SCHEMA", True)
    log_level: str = _env_str("LOG_LEVEL", "INFO")
    log_format: str = _env_str("LOG_FORMAT", "console")
    log_requests: bool = _env_bool("LOG_REQUESTS", True)
    log_uvicorn_access: bool = _env_bool("LOG_UVICORN_ACCESS", False)
    log_request_skip_paths: str = _env_str("LOG_REQUEST_SKIP_PATHS", "/healthz")
    log_redact_fields: str = os.getenv("LOG_REDACT_FIELDS", "")
    user_library_id: int = _env_int("USER_LIBRARY_ID", 1)
    orchestrator_enabled: bool = _env_bool("ORCHESTRATOR_ENABLED", True)
    lookup_timeout_seconds: float = _env_float("LOOKUP_TIMEOUT_SECONDS", 10.0)
    lookup_mailto: str = _env_str("LOOKUP_MAILTO", "")
    semanticscholar_api_key: str | None = os.getenv("SEMANTICSCHOLAR_API_KEY")
    auto_update_start_delay_seconds: float = _env_float("AUTO_UPDATE_START_DELAY_SECONDS", 3.0)
    auto_update_retry_delay_seconds: float = _env_float("AUTO_UPDATE_RETRY_DELAY_SECONDS", 5.0)
    auto_update_max_retries: int = _env_int("AUTO_UPDATE_MAX_RETRIES", 3)
    ledger_sweep_initial_delay_seconds: float = _env_float("LEDGER_SWEEP_INITIAL_DELAY_SECONDS", 5.0)
    ledger_sweep_interval_seconds: float = _env_float(
        "LEDGER_SWEEP_INTERVAL_SECONDS",
        30 * 24 * 60 * 60.0,
    )
    connectivity_check_enabled: bool = _env_bool("CONNECTIVITY_CHECK_ENABLED", True)
    connectivity_check_url: str = _env_str("CONNECTIVITY_CHECK_URL", "https://api.crossref.org/")
    connectivity_check_timeout_seconds: float = _env_float("CONNECTIVITY_CHECK_TIMEOUT_SECONDS", 3.0)


settings = Settings()
