"""Configuration loader."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .models import ConfigModel

CONFIG_ENV_VAR = "OPINIONMAP_CONFIG"


def default_config_path() -> Path:
    """Resolve the config path from the environment or the user config dir."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".config" / "opinionmap" / "config.yaml"


class Config:
    """Configuration manager."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initialize config manager."""
        if config_path is None:
            config_path = default_config_path()
        self.config_path = config_path
        self._config: Optional[ConfigModel] = None

    @classmethod
    def from_model(cls, model: ConfigModel) -> "Config":
        """Wrap an already-built config (tests, embedding in other apps)."""
        config = cls(Path(os.devnull))
        config._config = model
        return config

    @property
    def config(self) -> ConfigModel:
        """Get loaded config."""
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration dict."""
        db_config = self.config.postgres.model_dump()

        if db_config.get("password_env"):
            password = os.environ.get(db_config["password_env"])
            if password:
                db_config["password"] = password

        return db_config

    def get_llm_config(self) -> Dict[str, Any]:
        """Get LLM configuration dict."""
        return _resolve_api_key(self.config.llm.model_dump())

    def get_embedding_config(self) -> Dict[str, Any]:
        """Get embedding configuration dict."""
        return _resolve_api_key(self.config.embedding.model_dump())


def _resolve_api_key(section: Dict[str, Any]) -> Dict[str, Any]:
    if section.get("api_key_env") and not section.get("api_key"):
        api_key = os.environ.get(section["api_key_env"])
        if api_key:
            section["api_key"] = api_key
    return section


def load_config(config_path: Path) -> ConfigModel:
    """Load configuration from YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}

        return ConfigModel(**config_data)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def save_config(config: ConfigModel, config_path: Path) -> None:
    """Save configuration to YAML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)
