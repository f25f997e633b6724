"""
Service configuration.

Persisted at: <DATA_DIR>/webdm.json
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "WEBDM_DATA_DIR"
CONFIG_FILE_NAME = "webdm.json"

# Resolve repository root (project root, not the Python package root)
_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


class WebdmConfig(BaseModel):
    """
    Top-level configuration for the webdm service.

    Directory settings may be relative; they are resolved against the data
    directory.
    """

    store_url: str = Field(
        default="https://search.apps.ubuntu.com/api/v1",
        description="Base URL of the remote store API used for search and details.",
    )
    apps_dir: str = Field(
        default="apps",
        description="Directory holding installed packages as <name>[.<origin>]/current/meta/package.yaml.",
    )
    icons_dir: str = Field(
        default="icons",
        description="Directory where installed package icons are published for the web UI.",
    )
    downloads_dir: str = Field(
        default="downloads",
        description="Scratch directory for package downloads before they are handed to the installer.",
    )
    install_command: List[str] = Field(
        default_factory=lambda: ["snappy", "install", "--allow-unauthenticated"],
        description="External command that installs a downloaded package file (the file path is appended).",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        ge=1,
        description="Timeout for store requests and downloads.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level.",
    )

    def resolve_dir(self, value: str, data_dir: Path) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = data_dir / path
        return path


def get_data_dir() -> Path:
    """
    Determine the data directory path.

    Priority:
    1. Environment variable WEBDM_DATA_DIR
    2. '<project root>/data'
    """
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def load_config(data_dir: Path) -> WebdmConfig:
    """
    Load webdm.json, merging with defaults for any missing fields,
    and write it back so any new fields are persisted.
    """
    path = data_dir / CONFIG_FILE_NAME
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            config = WebdmConfig(**raw)
        except Exception as e:
            # If parsing fails, fall back to defaults and overwrite file.
            logger.warning(f"Invalid configuration in {path}, using defaults: {e}")
            config = WebdmConfig()
    else:
        config = WebdmConfig()

    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    return config
