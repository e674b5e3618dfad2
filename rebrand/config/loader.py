"""Load configuration from YAML and environment variables. No hardcoded secrets."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config lives next to this module
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore", populate_by_name=True)
    url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")


class PathSettings(BaseSettings):
    """Filesystem layout under the served web root. Relative paths are joined to web_root."""

    model_config = SettingsConfigDict(env_prefix="REBRAND_PATHS_", extra="ignore")
    web_root: str = "."
    icons_dir: str = "users/images/rebrand/icons"
    icons_url: str = "/users/images/rebrand/icons/"
    logo_dir: str = "users/images/rebrand"
    head_file: str = "usersc/includes/head_tags.php"

    def resolve(self, rel: str) -> Path:
        return Path(self.web_root) / rel.lstrip("/")


class UploadSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REBRAND_UPLOADS_", extra="ignore")
    max_bytes: int = 5 * 1024 * 1024
    logo_max_width: int = 600
    logo_max_height: int = 200
    logo_mimes: list[str] = Field(default_factory=lambda: ["image/png", "image/jpeg", "image/webp"])
    icon_mimes: list[str] = Field(default_factory=lambda: ["image/png"])


class SecuritySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REBRAND_SECURITY_", extra="ignore")
    admin_id: int = 1
    session_ttl_seconds: int = 86400 * 7
    csrf_enabled: bool = True


class PatchingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REBRAND_PATCHING_", extra="ignore")
    marker_begin: str = "<!-- ReBrand START -->"
    marker_end: str = "<!-- ReBrand END -->"
    head_anchor: Optional[str] = None
    menu_table: str = "menus"
    menu_column: str = "brand_html"
    menu_name_column: str = "menu_name"
    menu_encoding: str = "plain"
    site_table: str = "settings"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")
    level: str = "INFO"
    json_format: bool = False


class Config(BaseSettings):
    """Application config: YAML + env. Secrets from env only."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    redis: RedisSettings = Field(default_factory=RedisSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    patching: PatchingSettings = Field(default_factory=PatchingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        yaml_data = _load_yaml(path)
        env_prefix = os.getenv("REBRAND_ENV_PREFIX", "")
        if env_prefix:
            yaml_data = _deep_merge(yaml_data, _load_yaml(Path(f"config/{env_prefix}.yaml")))
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            yaml_data.setdefault("redis", {})["url"] = redis_url
        web_root = os.getenv("REBRAND_WEB_ROOT")
        if web_root:
            yaml_data.setdefault("paths", {})["web_root"] = web_root
        admin_id = os.getenv("REBRAND_ADMIN_ID")
        if admin_id:
            yaml_data.setdefault("security", {})["admin_id"] = int(admin_id)
        return cls(**yaml_data)


def get_config(config_path: str | Path | None = None) -> Config:
    return Config.load(config_path)
