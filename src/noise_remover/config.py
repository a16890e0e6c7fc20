"""Persisted user defaults (last options and directories)."""

import os
import json
import logging
from pathlib import Path
from typing import Optional

from .denoiser import ProcessingOptions

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NOISE_REMOVER_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".noise_remover_config.json"


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def load_config(path: Optional[Path] = None) -> dict:
    """Load persisted config; a missing or unreadable file yields an empty dict."""
    path = path or config_path()
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(config, dict):
        logger.warning("Ignoring config %s: expected a JSON object", path)
        return {}
    return config


def save_config(config: dict, path: Optional[Path] = None) -> Path:
    """Persist config to disk."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    return path


def stored_option_values(config: dict) -> dict:
    """Raw stored option values; anything other than a JSON object is ignored."""
    options = config.get("options", {})
    if not isinstance(options, dict):
        logger.warning("Ignoring stored options: expected a JSON object, got %s", type(options).__name__)
        return {}
    return options


def options_from_config(config: dict) -> ProcessingOptions:
    """Stored options, falling back to defaults for anything missing."""
    return ProcessingOptions.from_dict(stored_option_values(config))


def remember_options(config: dict, options: ProcessingOptions, output_dir: Optional[Path] = None) -> dict:
    """Return ``config`` updated with ``options`` and the last output directory."""
    updated = dict(config)
    updated["options"] = options.to_dict()
    if output_dir is not None:
        updated["last_output_dir"] = str(output_dir)
    return updated
