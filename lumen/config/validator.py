"""
Configuration validator for the merged config.yaml + environment mapping.

Validates types, ranges, and common misconfigurations.
"""

from __future__ import annotations

import logging
from typing import Any


logger = logging.getLogger(__name__)

INT_KEYS = (
    "kb_vector_size",
    "kb_chunk_size",
    "kb_chunk_overlap",
    "embed_batch_size",
    "kb_top_k",
    "kb_top_k_elevated",
    "max_add_chars",
    "kb_timeout_ms",
    "llm_timeout_ms",
    "max_answer_chars",
    "max_tokens",
    "global_per_day",
    "user_per_day",
    "elevated_per_day",
)
POSITIVE_INT_KEYS = tuple(k for k in INT_KEYS if k != "kb_chunk_overlap")
ID_KEYS = ("owner_id", "reports_channel_id")
VALID_DISTANCES = {"Cosine", "Dot", "Euclid", "Manhattan"}
# Discord interaction tokens expire after 15 minutes.
INTERACTION_EXPIRY_MS = 15 * 60 * 1000


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_config(
    cfg: dict[str, Any],
    config_path: str = "config.yaml",
    require_token: bool = False,
) -> None:
    """
    Validate the merged configuration mapping.

    Raises ConfigValidationError if validation fails.
    Logs detailed error messages before raising.

    Args:
        cfg: The merged config dictionary
        config_path: Path to config file (for error messages)
        require_token: Whether a Discord bot token must be present

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = []
    warnings = []

    # ── Check root structure ────────────────────────────────────────────────
    if not isinstance(cfg, dict):
        errors.append(f"Config root must be a mapping, got {type(cfg).__name__}")
        cfg = {}

    if require_token and not cfg.get("bot_token"):
        errors.append("Missing Discord bot token (DISCORD_BOT_TOKEN or 'bot_token')")

    # ── Numeric settings ────────────────────────────────────────────────────
    for key in INT_KEYS:
        if cfg.get(key) is None:
            continue
        value = _as_int(cfg[key])
        if value is None:
            errors.append(f"'{key}' must be an integer, got {cfg[key]!r}")
        elif key in POSITIVE_INT_KEYS and value < 1:
            errors.append(f"'{key}' must be >= 1, got {value}")
        elif value < 0:
            errors.append(f"'{key}' must be >= 0, got {value}")

    for key in ID_KEYS:
        if cfg.get(key) not in (None, "") and _as_int(cfg[key]) is None:
            errors.append(f"'{key}' must be a numeric Discord ID, got {cfg[key]!r}")

    if "admin_ids" in cfg and cfg["admin_ids"] is not None:
        ids = cfg["admin_ids"]
        items = ids.split(",") if isinstance(ids, str) else ids
        if not isinstance(items, list):
            errors.append(f"'admin_ids' must be a list, got {type(ids).__name__}")
        else:
            for i, item in enumerate(items):
                if str(item).strip() and _as_int(str(item).strip()) is None:
                    errors.append(f"'admin_ids[{i}]' must be a numeric Discord ID, got {item!r}")

    for key in ("kb_min_score", "temperature"):
        if cfg.get(key) is not None and _as_float(cfg[key]) is None:
            errors.append(f"'{key}' must be a number, got {cfg[key]!r}")

    min_score = _as_float(cfg.get("kb_min_score"))
    if min_score is not None and not -1.0 <= min_score <= 1.0:
        warnings.append(f"'kb_min_score' {min_score} is outside the cosine range [-1, 1]")

    # ── Chunking ────────────────────────────────────────────────────────────
    size = _as_int(cfg.get("kb_chunk_size"))
    overlap = _as_int(cfg.get("kb_chunk_overlap"))
    if size is not None and overlap is not None and size >= 1 and overlap >= size:
        warnings.append(
            f"'kb_chunk_overlap' ({overlap}) >= 'kb_chunk_size' ({size}); "
            f"overlap will be clamped to {size - 1}"
        )

    # ── Vector store ────────────────────────────────────────────────────────
    distance = cfg.get("kb_distance")
    if distance is not None and distance not in VALID_DISTANCES:
        errors.append(
            f"'kb_distance' must be one of {', '.join(sorted(VALID_DISTANCES))}, got {distance!r}"
        )

    # ── Timeouts vs. interaction expiry ─────────────────────────────────────
    for key in ("kb_timeout_ms", "llm_timeout_ms"):
        value = _as_int(cfg.get(key))
        if value is not None and value >= INTERACTION_EXPIRY_MS:
            errors.append(
                f"'{key}' ({value}) must be shorter than the Discord interaction "
                f"expiry window ({INTERACTION_EXPIRY_MS} ms)"
            )

    # ── Optional collaborators ──────────────────────────────────────────────
    if not cfg.get("openai_api_key"):
        warnings.append("OPENAI_API_KEY not set; AI answers are disabled")
    if not cfg.get("qdrant_url"):
        warnings.append("QDRANT_URL not set; knowledge base features are disabled")

    # ── Role lists ──────────────────────────────────────────────────────────
    for key in ("allowed_pro_roles", "kb_editor_roles"):
        if key in cfg and cfg[key] is not None and not isinstance(cfg[key], (str, list)):
            errors.append(f"'{key}' must be a list or comma-separated string, got {type(cfg[key]).__name__}")

    # ── Log warnings ────────────────────────────────────────────────────────
    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    # ── Log errors and raise if any ─────────────────────────────────────────
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
