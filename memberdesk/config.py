"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("memberdesk.config")


class Settings(BaseSettings):
    # Tenant API
    tenant_api_url: str = "https://api.techfsn.com/api/bot"
    tenant_api_secret: str = ""
    tenant_api_secret_header: str = "fsn-hash"
    tenant_api_timeout: float = 15.0

    # LLM
    llm_provider: str = "ollama"
    ollama_url: str = "http://localhost:11434"
    ollama_model_small: str = "qwen2.5:7b"
    ollama_model_large: str = "qwen2.5:14b"
    llm_timeout: float = 60.0

    # Session store ("" keeps sessions in memory)
    session_db_path: str = "data/sessions.db"

    # Background sweep
    sweep_enabled: bool = True
    sweep_interval_seconds: int = 3600
    purge_after_hours: int = 24

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"changeme", "your-secret-here", "..."}

        # Shared secret, required on every tenant API call
        if not self.tenant_api_secret or self.tenant_api_secret in _placeholders:
            raise ValueError(
                "TENANT_API_SECRET is missing or still a placeholder. "
                "Set it in .env to reach the tenant API."
            )

        if self.llm_provider != "ollama":
            raise ValueError(f"Unsupported LLM_PROVIDER: {self.llm_provider!r}")

        # Admin API key: warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if not self.session_db_path:
            warnings.append(
                "SESSION_DB_PATH is empty. Sessions are kept in memory and lost on restart."
            )

        if not self.tenant_api_url.startswith("https://") and not self.debug:
            warnings.append("TENANT_API_URL is not https. Credentials travel unencrypted.")

        return warnings


settings = Settings()
