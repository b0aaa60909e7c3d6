# Copyright (c) Syntropy Systems
"""Configuration management for lmevals."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

from lmevals.models.api import MAX_TRIALS
from lmevals.models.run import ModelSpec


@dataclass
class LmevalsConfig:
    """Configuration for lmevals."""

    # Base URL of the run server
    server_url: str = "http://127.0.0.1:8080"

    # Timeout for non-streaming requests (seconds)
    request_timeout: float = 30.0

    # Timeout for opening a connection (seconds)
    connect_timeout: float = 10.0

    # Longest gap between bytes on a run stream before giving up (seconds).
    # None waits forever.
    idle_timeout: float | None = 300.0

    # Trials per model when not given on the command line
    default_trials: int = 3

    # Default model selection
    models: list[str] = field(default_factory=list)

    # Model identifier -> display icon
    icons: dict[str, str] = field(default_factory=dict)

    def model_specs(self, identifiers: list[str] | None = None) -> list[ModelSpec]:
        """Build the model selection, attaching configured icons."""
        chosen = identifiers if identifiers else self.models
        return [ModelSpec(identifier=m, icon=self.icons.get(m, "")) for m in chosen]


def find_lmevals_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .lmevals directory by walking up from start_path.

    Returns None if no .lmevals directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        lmevals_dir = current / ".lmevals"
        if lmevals_dir.is_dir():
            return lmevals_dir
        current = current.parent

    # Check root
    lmevals_dir = current / ".lmevals"
    if lmevals_dir.is_dir():
        return lmevals_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global lmevals config directory (~/.lmevals)."""
    return Path.home() / ".lmevals"


def _as_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def load_config(lmevals_dir: Path | None = None) -> LmevalsConfig:
    """Load configuration from .lmevals/config.yaml or defaults.

    Looks for config in:
    1. Provided lmevals_dir
    2. Nearest .lmevals directory walking up
    3. ~/.lmevals/config.yaml
    4. Defaults
    """
    config = LmevalsConfig()

    # Find config file
    config_path = None

    if lmevals_dir is not None:
        config_path = lmevals_dir / "config.yaml"
    else:
        found_dir = find_lmevals_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    server_url = data.get("server_url")
    if isinstance(server_url, str) and server_url:
        config.server_url = server_url
    request_timeout = _as_float(data.get("request_timeout"))
    if request_timeout is not None:
        config.request_timeout = request_timeout
    connect_timeout = _as_float(data.get("connect_timeout"))
    if connect_timeout is not None:
        config.connect_timeout = connect_timeout
    if "idle_timeout" in data:
        # An explicit null disables the idle timeout
        config.idle_timeout = _as_float(data["idle_timeout"])
    default_trials = data.get("default_trials")
    if isinstance(default_trials, int) and not isinstance(default_trials, bool):
        config.default_trials = min(max(default_trials, 1), MAX_TRIALS)

    models = data.get("models")
    if isinstance(models, list):
        config.models = [str(m) for m in cast("list[object]", models)]
    icons = data.get("icons")
    if isinstance(icons, dict):
        config.icons = {
            str(k): str(v) for k, v in cast("dict[object, object]", icons).items()
        }

    return config
