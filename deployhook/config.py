"""
Configuration management for deployhook.

Precedence: env vars > .env file > deployhook.yaml > defaults

Config file: <data_dir>/deployhook.yaml (optional)
Routing tables: <data_dir>/hooks, <data_dir>/links, <data_dir>/deploys
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "deployhook.yaml"

# Known config keys accepted from deployhook.yaml
CONFIG_KEYS = {
    "data_dir", "hooks_file", "links_file", "deploys_file",
    "host", "hook_port", "control_host", "control_port",
    "deploy_command", "deploy_timeout", "max_output_bytes",
    "serialize_deploys", "deploy_on_start", "log_webhook_url",
    "log_level",
}

# Legacy environment names still honoured for the two ports
_ENV_ALIASES = {
    "hook_port": ("github_hook_port",),
    "control_port": ("local_control_port",),
}


def _resolve_data_dir() -> Path:
    """Resolve data dir from env or default, before Settings init."""
    raw = os.environ.get("DATA_DIR", "")
    if raw:
        return Path(raw).expanduser().resolve()
    return Path("./data").resolve()


def _load_yaml_config(data_dir: Path) -> dict[str, Any]:
    """Load deployhook.yaml from the data directory."""
    config_file = data_dir / CONFIG_FILENAME
    if not config_file.exists():
        return {}
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"{CONFIG_FILENAME} is not a dict, ignoring: {config_file}")
            return {}
        unknown = set(data) - CONFIG_KEYS
        if unknown:
            logger.warning(f"Ignoring unknown keys in {config_file}: {sorted(unknown)}")
        return {k: v for k, v in data.items() if k in CONFIG_KEYS}
    except Exception as e:
        logger.warning(f"Error loading {CONFIG_FILENAME}: {e}")
        return {}


def save_yaml_config(data_dir: Path, data: dict[str, Any]) -> Path:
    """Write config values to <data_dir>/deployhook.yaml."""
    config_file = data_dir / CONFIG_FILENAME
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return config_file


class Settings(BaseSettings):
    """Service configuration. Precedence: env vars > .env > deployhook.yaml > defaults."""

    # Routing tables
    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory holding the hooks, links and deploys tables",
    )
    hooks_file: str = Field(default="hooks", description="Hooks table filename")
    links_file: str = Field(default="links", description="Links table filename")
    deploys_file: str = Field(default="deploys", description="Deploys table filename")

    # Public hook server
    host: str = Field(default="0.0.0.0", description="Hook server bind address")
    hook_port: int = Field(
        default=8000,
        validation_alias=AliasChoices("hook_port", "github_hook_port"),
        description="Hook server port (GITHUB_HOOK_PORT)",
    )

    # Administrative control server
    control_host: str = Field(
        default="127.0.0.1",
        description="Control server bind address; keep it on a trusted network",
    )
    control_port: int = Field(
        default=8001,
        validation_alias=AliasChoices("control_port", "local_control_port"),
        description="Control server port (LOCAL_CONTROL_PORT)",
    )

    # Deploys
    deploy_command: str = Field(
        default="dokku git:sync --build",
        description="Deploy tool command; app and repository are appended as arguments",
    )
    deploy_timeout: float = Field(
        default=1800.0,
        ge=0,
        description="Seconds before a deploy process is killed (0 disables)",
    )
    max_output_bytes: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Maximum bytes buffered per output stream of a deploy",
    )
    serialize_deploys: bool = Field(
        default=False,
        description="Queue concurrent deploys of the same app instead of running them together",
    )
    deploy_on_start: bool = Field(
        default=True,
        description="Deploy every configured app once at startup",
    )

    # Logging
    log_webhook_url: Optional[str] = Field(
        default=None,
        description="Optional chat webhook that receives deploy notifications",
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    model_config = {
        "env_prefix": "",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _inject_yaml_config(cls, data: Any) -> Any:
        """Inject deployhook.yaml values as fallbacks below env vars and .env."""
        if not isinstance(data, dict):
            data = {}

        data_dir = data.get("data_dir")
        data_dir = Path(data_dir).expanduser() if data_dir else _resolve_data_dir()

        yaml_config = _load_yaml_config(data_dir)

        # Inject YAML values only where not already set (env/explicit take priority)
        for key, value in yaml_config.items():
            names = (key, *_ENV_ALIASES.get(key, ()))
            if any(data.get(name) is not None for name in names):
                continue
            if any(os.environ.get(name.upper()) or os.environ.get(name) for name in names):
                continue
            data[key] = value

        return data

    @property
    def deploy_argv(self) -> list[str]:
        """Split the deploy command into an argument vector."""
        return shlex.split(self.deploy_command)

    @property
    def table_paths(self) -> dict[str, Path]:
        """Paths of the three routing tables, keyed by table name."""
        return {
            "hooks": self.data_dir / self.hooks_file,
            "links": self.data_dir / self.links_file,
            "deploys": self.data_dir / self.deploys_file,
        }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, building them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
