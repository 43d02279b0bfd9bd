"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/clearbound/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "ClearBound"
    app_env: str = Field(default="development", description="Application environment")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"clearbound.components": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/clearbound.log",
        description="Path to log file (relative to project root)"
    )
    log_file_retention: int = Field(default=14, ge=1, description="Number of days to keep log files")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (api keys, tokens) - NOT RECOMMENDED"
    )

    # Tracing
    enable_tracing: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    tracing_service_name: str = Field(default="clearbound", description="Service name for tracing")
    tracing_exporter: str = Field(default="console", description="Tracing exporter: 'console' or 'otlp'")
    tracing_otlp_endpoint: Optional[str] = Field(
        default=None,
        description="OTLP endpoint URL (e.g., http://localhost:4318/v1/traces)"
    )

    # Text generator
    openai_api_key: Optional[str] = Field(default=None, description="API key for the text generator")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="Generator API base URL")
    model_default: str = Field(default="gpt-4.1-mini", description="Low-latency default model")
    model_high_risk: str = Field(default="gpt-4.1", description="Model for record-safe / high-risk stages")
    model_analysis: str = Field(default="gpt-4.1", description="Model for analysis stages")
    llm_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=120.0,
        description="Deadline for a single generator call (seconds)"
    )
    llm_retry_backoff_seconds: float = Field(
        default=0.25,
        ge=0.0,
        le=5.0,
        description="Pause before the single retry of a transient generator failure"
    )

    # Template store
    prompts_source: str = Field(default="github", description="Template source: 'github' or 'local'")
    prompts_repo: Optional[str] = Field(default=None, description="owner/name of the prompt repository")
    prompts_ref: str = Field(default="main", description="Branch, tag or commit of the prompt repository")
    prompts_local_root: str = Field(default="prompts", description="Local template directory (relative to project root)")
    template_cache_ttl_seconds: int = Field(
        default=300,
        ge=60,
        le=3600,
        description="Template cache TTL (seconds)"
    )
    template_cache_max_entries: int = Field(default=60, ge=1, description="Template cache capacity")
    template_max_bytes: int = Field(default=200_000, ge=1024, description="Maximum template size")
    template_fetch_timeout_seconds: float = Field(
        default=4.5,
        ge=0.5,
        le=30.0,
        description="Deadline for a single template fetch (seconds)"
    )

    # Input policy
    facts_min_length: int = Field(default=22, ge=1, description="Minimum length of the facts field")

    @field_validator("prompts_source", "tracing_exporter", "log_format", mode="before")
    @classmethod
    def lower_choice(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def prompts_local_path(self) -> Path:
        """Resolve local template directory relative to project root"""
        path = Path(self.prompts_local_root)
        if not path.is_absolute():
            path = _project_root / path
        return path

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        protected_namespaces=(),
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
