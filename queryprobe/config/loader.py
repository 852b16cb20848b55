"""Config loading and initialization."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import yaml

from queryprobe.config.interpolation import interpolate
from queryprobe.config.schema import AppConfig, parse_config


DEFAULT_CONFIG_PATH = Path(__file__).with_name("defaults.yml")


def _missing_env(name: str, token: str) -> ValueError:
    return ValueError(f"missing required environment variable '{name}' referenced by '{token}'")


def load_config(path: Path) -> AppConfig:
    """Read a YAML config, filling `${ENV}` and `${ENV:-default}` tokens from the environment."""
    if not path.exists():
        raise FileNotFoundError(f"config file does not exist: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"config document must be a mapping: {path}")
    return parse_config(interpolate(raw, os.environ.get, _missing_env))


def initialize_config(path: Path, force: bool = False) -> Path:
    if path.exists() and not force:
        raise FileExistsError(f"config already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(DEFAULT_CONFIG_PATH, path)
    return path
