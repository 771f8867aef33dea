from __future__ import annotations

import logging
import os
import sys
from typing import Any

import yaml
from dotenv import load_dotenv

from .validator import validate_config, ConfigValidationError


DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "CONFIG_PATH"

# config key -> environment variable used when the key is missing or empty
ENV_FALLBACKS = {
    "bot_token": "DISCORD_TOKEN",
    "client_id": "DISCORD_CLIENT_ID",
    "guild_id": "DISCORD_GUILD_ID",
}

DEFAULTS: dict[str, Any] = {
    "projects": [],
    "technologies": [],
    "selection_timeout": 60,
    "documents_dir": "data/projects",
    "seed_sample_requests": False,
    "fallback_models": [],
    "providers": {},
    "models": {},
}


def get_config_path() -> str:
    """
    Resolve the config path, preferring an explicit environment override.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path
    return DEFAULT_CONFIG_FILE


def _load_raw_config(path: str | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    try:
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logging.error("Config file not found: %s", cfg_path)
        sys.exit(1)
    except yaml.YAMLError as e:
        logging.error("YAML parsing error in %s: %s", cfg_path, e)
        sys.exit(1)

    if not isinstance(data, dict):
        logging.error("Config root must be a mapping, got %s", type(data).__name__)
        sys.exit(1)

    return data


def apply_defaults(cfg: dict[str, Any]) -> dict[str, Any]:
    """
    Fill in defaults and environment fallbacks (.env is honoured).
    """
    load_dotenv()
    for key, value in DEFAULTS.items():
        cfg.setdefault(key, value)
    for key, env_var in ENV_FALLBACKS.items():
        if not cfg.get(key) and os.environ.get(env_var):
            cfg[key] = os.environ[env_var]

    queue = cfg.setdefault("queue", {}) or {}
    if isinstance(queue, dict):
        queue.setdefault("chunk_limit", 1800)
        queue.setdefault("webhook_name", "Queue Monitor")
        cfg["queue"] = queue

    perms = cfg.setdefault("permissions", {}) or {}
    if isinstance(perms, dict):
        for section in ("users", "roles"):
            if not perms.get(section):
                perms[section] = {}
            if isinstance(perms[section], dict):
                perms[section].setdefault("admin_ids", [])
        cfg["permissions"] = perms

    openai_cfg = (cfg.get("providers") or {}).get("openai")
    if isinstance(openai_cfg, dict) and not openai_cfg.get("api_key") and os.environ.get("OPENAI_API_KEY"):
        openai_cfg["api_key"] = os.environ["OPENAI_API_KEY"]
    return cfg


def get_config(path: str | None = None) -> dict[str, Any]:
    """
    Public helper for loading configuration.

    - Respects CONFIG_PATH if set.
    - Fills defaults and DISCORD_* / OPENAI_API_KEY fallbacks from the environment.
    - Performs YAML validation; exits with error code 1 if it fails.
    """
    cfg_path = path or get_config_path()
    cfg = apply_defaults(_load_raw_config(cfg_path))

    try:
        validate_config(cfg, cfg_path)
    except ConfigValidationError:
        sys.exit(1)

    return cfg
