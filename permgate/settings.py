from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - Every field can be overridden via `PERMGATE_*` env vars.
    - `expose_permission_details` adds the caller's permission list to 403
      bodies. It discloses authorization internals; keep it off in production.
    """

    model_config = SettingsConfigDict(env_prefix="PERMGATE_", extra="ignore")

    db_url: str | None = None
    catalog_path: str | None = None
    log_level: str = "INFO"
    expose_permission_details: bool = False
    seed_demo_data: bool = True

    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "permgate.db"
        return f"sqlite:///{db_path}"

    def resolved_catalog_path(self) -> Path:
        if self.catalog_path:
            return Path(self.catalog_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "permissions.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
