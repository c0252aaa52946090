from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_host: str = "127.0.0.1"
    app_port: int = 8000
    app_data_dir: str = "./data"
    log_level: str = "INFO"

    # Bearer token -> department; stands in for the session provider.
    tenant_tokens: dict[str, str] = Field(default_factory=dict)
    tenants: list[str] = Field(default_factory=list)
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    blob_chunk_size: int = 255 * 1024
    upload_queue_depth: int = 8
    max_field_size: int = 1024 * 1024

    @property
    def data_dir(self) -> Path:
        return Path(self.app_data_dir).resolve()

    @property
    def tenants_path(self) -> Path:
        return self.data_dir / "tenants"

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.tenants_path.mkdir(parents=True, exist_ok=True)

    def known_tenants(self) -> list[str]:
        return list(self.tenants)
