from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _csv(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(s.strip() for s in value.split(",") if s.strip())
    return tuple(str(s).strip() for s in value if str(s).strip())


def _opt_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


@dataclass(frozen=True)
class Settings:
    """
    Resolved runtime configuration.

    Every credential is optional; a missing one disables only the feature
    that depends on it.
    """

    bot_token: str = ""
    owner_id: int | None = None
    admin_ids: tuple[int, ...] = ()

    openai_api_key: str = ""
    openai_base_url: str = ""
    embedding_api_key: str = ""
    chat_model: str = "gpt-4o-mini"
    pro_chat_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    temperature: float = 0.4
    max_tokens: int = 600

    qdrant_url: str = ""
    qdrant_api_key: str = ""
    kb_collection: str = "sg_kb"
    kb_vector_size: int = 1536
    kb_distance: str = "Cosine"
    kb_min_score: float = 0.18
    kb_chunk_size: int = 900
    kb_chunk_overlap: int = 100
    embed_batch_size: int = 32
    kb_top_k: int = 5
    kb_top_k_elevated: int = 8
    max_add_chars: int = 20_000

    kb_timeout_ms: int = 25_000
    llm_timeout_ms: int = 35_000
    max_answer_chars: int = 1900

    global_per_day: int = 50
    user_per_day: int = 5
    elevated_per_day: int = 20

    allowed_pro_roles: tuple[str, ...] = ("Helper", "Admin", "Moderator", "Owner")
    bypass_role: str = "Helper"
    kb_editor_roles: tuple[str, ...] = ("Admin", "Moderator", "Owner")

    reports_channel_id: int | None = None
    status_website_url: str = ""
    status_message: str = "Ask me with /ask"

    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def kb_timeout(self) -> float:
        return self.kb_timeout_ms / 1000

    @property
    def llm_timeout(self) -> float:
        return self.llm_timeout_ms / 1000

    @property
    def effective_embedding_key(self) -> str:
        return self.embedding_api_key or self.openai_api_key

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "Settings":
        """Build settings from a validated raw config mapping."""
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        values: dict[str, Any] = {}
        for key, value in cfg.items():
            if key not in known or value is None:
                continue
            default = cls.__dataclass_fields__[key].default
            if key in ("owner_id", "reports_channel_id"):
                values[key] = _opt_int(value)
            elif key == "admin_ids":
                values[key] = tuple(int(v) for v in _csv(value))
            elif isinstance(default, tuple):
                values[key] = _csv(value)
            elif isinstance(default, bool):
                values[key] = bool(value)
            elif isinstance(default, int):
                values[key] = int(value)
            elif isinstance(default, float):
                values[key] = float(value)
            else:
                values[key] = str(value)
        values["extra"] = {k: v for k, v in cfg.items() if k not in known}
        return cls(**values)
