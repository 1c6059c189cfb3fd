from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .settings import Settings
from .validator import validate_config, ConfigValidationError


DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "CONFIG_PATH"

# Environment variable -> config key. Environment wins over the YAML file.
ENV_KEYS = {
    "DISCORD_BOT_TOKEN": "bot_token",
    "OWNER_DISCORD_ID": "owner_id",
    "ADMIN_IDS": "admin_ids",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_BASE_URL": "openai_base_url",
    "EMBEDDING_API_KEY": "embedding_api_key",
    "CHAT_MODEL": "chat_model",
    "PRO_CHAT_MODEL": "pro_chat_model",
    "EMBEDDING_MODEL": "embedding_model",
    "QDRANT_URL": "qdrant_url",
    "QDRANT_API_KEY": "qdrant_api_key",
    "KB_COLLECTION": "kb_collection",
    "KB_VECTOR_SIZE": "kb_vector_size",
    "KB_DISTANCE": "kb_distance",
    "KB_MIN_SCORE": "kb_min_score",
    "KB_CHUNK_SIZE": "kb_chunk_size",
    "KB_CHUNK_OVERLAP": "kb_chunk_overlap",
    "EMBED_BATCH_SIZE": "embed_batch_size",
    "MAX_ADD_CHARS": "max_add_chars",
    "KB_TIMEOUT_MS": "kb_timeout_ms",
    "LLM_TIMEOUT_MS": "llm_timeout_ms",
    "GLOBAL_PER_DAY": "global_per_day",
    "USER_PER_DAY": "user_per_day",
    "ELEVATED_PER_DAY": "elevated_per_day",
    "ALLOWED_PRO_ROLES": "allowed_pro_roles",
    "BYPASS_ROLE": "bypass_role",
    "KB_EDITOR_ROLES": "kb_editor_roles",
    "REPORTS_CHANNEL_ID": "reports_channel_id",
    "STATUS_WEBSITE_URL": "status_website_url",
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
    if not Path(cfg_path).is_file():
        logging.info("Config file %s not found, using environment only", cfg_path)
        return {}
    try:
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logging.error("YAML parsing error in %s: %s", cfg_path, e)
        sys.exit(1)

    if not isinstance(data, dict):
        logging.error("Config root must be a mapping, got %s", type(data).__name__)
        sys.exit(1)

    return data


def merge_env(cfg: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Overlay non-empty environment variables onto the file config."""
    environ = os.environ if environ is None else environ
    merged = dict(cfg)
    for env_name, key in ENV_KEYS.items():
        value = environ.get(env_name)
        if value not in (None, ""):
            merged[key] = value
    return merged


def get_config(path: str | None = None, require_token: bool = False) -> Settings:
    """
    Public helper for loading configuration.

    - Loads .env into the process environment.
    - Respects CONFIG_PATH if set; the YAML file itself is optional.
    - Environment variables override file keys.
    - Exits with error code 1 if validation fails.
    """
    load_dotenv()
    cfg_path = path or get_config_path()
    cfg = merge_env(_load_raw_config(cfg_path))

    try:
        validate_config(cfg, cfg_path, require_token=require_token)
    except ConfigValidationError:
        sys.exit(1)

    return Settings.from_config(cfg)
