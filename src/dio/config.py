"""
Configuration for the dio client.

Loaded once from ~/.dio/config.yaml (or $DIO_CONFIG), overlaid with
environment variables, then passed explicitly to everything that
needs it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from . import DEFAULT_CLOUD, DIO_CONFIG

logger = logging.getLogger("dio.config")

ENV_OVERRIDES = {
    "DIO_CLOUD": "cloud",
    "DIO_USER": "user",
    "DIO_AUTHOR": "author",
    "DIO_EMAIL": "email",
}


class DioConfig(BaseModel):
    """Connection, identity and local layout settings."""

    cloud: str = DEFAULT_CLOUD
    user: str = ""
    author: str = ""
    email: str = ""
    cert_file: Optional[Path] = None
    ca_file: Optional[Path] = None
    verify_tls: bool = True
    timeout_seconds: float = 30.0
    work_dir: Path = Path(".")


def load_config(path: Optional[Path] = None, environ: Optional[dict[str, str]] = None) -> DioConfig:
    """Load configuration from YAML, then apply environment overrides.

    A missing file yields defaults. A malformed file is logged and
    ignored.

    Args:
        path: Config file location. Defaults to $DIO_CONFIG or ~/.dio/config.yaml.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        DioConfig: The merged configuration.
    """
    config_file = Path(path or DIO_CONFIG).expanduser()
    env = os.environ if environ is None else environ

    data: dict = {}
    if config_file.exists():
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            if isinstance(loaded, dict):
                data = loaded
            else:
                logger.warning("Ignoring config %s: top level is not a mapping", config_file)
        except yaml.YAMLError as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)

    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[key] = value

    try:
        return DioConfig(**data)
    except ValueError as exc:
        logger.warning("Invalid config values in %s: %s", config_file, exc)
        return DioConfig(**{k: data[k] for k in ENV_OVERRIDES.values() if k in data})


def save_config(config: DioConfig, path: Optional[Path] = None) -> Path:
    """Persist configuration as YAML.

    Args:
        config: Configuration to write.
        path: Destination. Defaults to $DIO_CONFIG or ~/.dio/config.yaml.

    Returns:
        Path: The file written.
    """
    config_file = Path(path or DIO_CONFIG).expanduser()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
