"""
YAML configuration validator for config.yaml.

Validates structure, required fields, and common misconfigurations.
"""

from __future__ import annotations

import logging
from typing import Any


logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _check_string_list(cfg: dict[str, Any], key: str, errors: list[str]) -> None:
    if key not in cfg:
        return
    values = cfg[key]
    if not isinstance(values, list):
        errors.append(f"'{key}' must be a list, got {type(values).__name__}")
        return
    for i, value in enumerate(values):
        if not isinstance(value, str) or not value.strip():
            errors.append(f"'{key}[{i}]' must be a non-empty string")


def _check_id_list(path: str, ids: Any, errors: list[str]) -> None:
    if not isinstance(ids, list):
        errors.append(f"'{path}' must be a list, got {type(ids).__name__}")
        return
    for i, value in enumerate(ids):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"'{path}[{i}]' must be an integer Discord id, got {type(value).__name__}")


def _check_model_name(path: str, name: Any, cfg: dict[str, Any], errors: list[str]) -> None:
    if not isinstance(name, str) or "/" not in name:
        errors.append(f"'{path}' must look like 'provider/model', got {name!r}")
        return
    provider = name.split("/", 1)[0]
    if provider not in (cfg.get("providers") or {}):
        errors.append(f"'{path}' uses provider '{provider}' which is not defined under 'providers'")


def validate_config(cfg: dict[str, Any], config_path: str = "config.yaml") -> None:
    """
    Comprehensive validation of config.yaml structure and content.

    Raises ConfigValidationError if validation fails.
    Logs detailed error messages before raising.

    Args:
        cfg: The loaded config dictionary (defaults already applied)
        config_path: Path to config file (for error messages)

    Raises:
        ConfigValidationError: If validation fails
    """
    errors: list[str] = []
    warnings: list[str] = []

    # ── Check root structure ────────────────────────────────────────────────
    if not isinstance(cfg, dict):
        errors.append(f"Config root must be a mapping, got {type(cfg).__name__}")
        cfg = {}

    # ── Discord credentials ─────────────────────────────────────────────────
    if not cfg.get("bot_token"):
        errors.append("Missing 'bot_token' (or DISCORD_TOKEN in the environment)")
    for key in ("client_id", "guild_id"):
        value = cfg.get(key)
        if value in (None, ""):
            continue
        try:
            int(value)
        except (TypeError, ValueError):
            errors.append(f"'{key}' must be a numeric Discord id, got {value!r}")

    # ── Projects and technologies ──────────────────────────────────────────
    _check_string_list(cfg, "projects", errors)
    _check_string_list(cfg, "technologies", errors)
    if not cfg.get("projects"):
        warnings.append("'projects' is empty: nobody will be able to use /request-items")
    if not cfg.get("technologies"):
        warnings.append("'technologies' is empty: nobody will be able to use /request-items")

    timeout = cfg.get("selection_timeout", 60)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append(f"'selection_timeout' must be a positive number of seconds, got {timeout!r}")

    # ── Queue section ──────────────────────────────────────────────────────
    queue = cfg.get("queue", {})
    if not isinstance(queue, dict):
        errors.append(f"'queue' must be a mapping, got {type(queue).__name__}")
    else:
        limit = queue.get("chunk_limit", 1800)
        if isinstance(limit, bool) or not isinstance(limit, int) or not 100 <= limit <= 2000:
            errors.append(f"'queue.chunk_limit' must be an integer between 100 and 2000, got {limit!r}")
        if "webhook_name" in queue and not isinstance(queue["webhook_name"], str):
            errors.append("'queue.webhook_name' must be a string")

    # ── Permissions section ────────────────────────────────────────────────
    perms = cfg.get("permissions", {})
    if not isinstance(perms, dict):
        errors.append(f"'permissions' must be a mapping, got {type(perms).__name__}")
    else:
        for perm_type in ("users", "roles"):
            if perm_type not in perms:
                continue
            perm_config = perms[perm_type]
            if not isinstance(perm_config, dict):
                errors.append(
                    f"'permissions.{perm_type}' must be a mapping, "
                    f"got {type(perm_config).__name__}"
                )
            elif "admin_ids" in perm_config:
                _check_id_list(f"permissions.{perm_type}.admin_ids", perm_config["admin_ids"], errors)

    # ── Providers / models (only needed for /ask) ──────────────────────────
    providers = cfg.get("providers", {})
    if not isinstance(providers, dict):
        errors.append(f"'providers' must be a mapping, got {type(providers).__name__}")
    else:
        for provider_name, provider_config in providers.items():
            if not isinstance(provider_config, dict):
                errors.append(
                    f"Provider '{provider_name}' config must be a mapping, "
                    f"got {type(provider_config).__name__}"
                )
            elif "base_url" not in provider_config:
                errors.append(f"Provider '{provider_name}' missing required 'base_url'")

    models = cfg.get("models", {})
    if not isinstance(models, dict):
        errors.append(f"'models' must be a mapping, got {type(models).__name__}")
    else:
        for model_name, model_config in models.items():
            _check_model_name(f"models.{model_name}", model_name, cfg, errors)
            if model_config is not None and not isinstance(model_config, dict):
                errors.append(
                    f"Model '{model_name}' config must be a mapping, "
                    f"got {type(model_config).__name__}"
                )

    if cfg.get("model"):
        _check_model_name("model", cfg["model"], cfg, errors)
    elif isinstance(models, dict) and not models:
        warnings.append("No LLM model configured: /ask will answer with a fallback message")

    if cfg.get("embedding_model"):
        _check_model_name("embedding_model", cfg["embedding_model"], cfg, errors)

    fallback = cfg.get("fallback_models", [])
    if not isinstance(fallback, list):
        errors.append(
            f"'fallback_models' must be a list, got {type(fallback).__name__}. "
            f"Use: fallback_models:\n  - \"provider/model\""
        )
    else:
        for i, model_name in enumerate(fallback):
            _check_model_name(f"fallback_models[{i}]", model_name, cfg, errors)

    # ── Log warnings ────────────────────────────────────────────────────────
    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    # ── Log errors and exit if any ──────────────────────────────────────────
    if errors:
        logger.error("=" * 70)
        logger.error("CONFIG VALIDATION FAILED (%s)", config_path)
        logger.error("=" * 70)
        for i, error in enumerate(errors, 1):
            logger.error("[%d] %s", i, error)
        logger.error("=" * 70)
        logger.error("Please fix the errors above and restart the bot.")
        logger.error("=" * 70)
        raise ConfigValidationError(f"Config validation failed with {len(errors)} error(s)")
