from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml


PERSONAS_DIR = Path(__file__).parent / "personas"
DEFAULT_PERSONA = "lumen"
SUPPORTED_LANGUAGES = ("en", "pl")

KB_GUIDANCE = {
    "en": "Use the knowledge base context if it is relevant. If you are unsure, say that you are unsure.",
    "pl": "Korzystaj z kontekstu bazy wiedzy, jeśli jest przydatny. Jeśli nie masz pewności, powiedz o tym.",
}

_POLISH_CHARS = re.compile(r"[ąćęłńóśźż]", re.IGNORECASE)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()


def _read_yaml_prompt(path: Path) -> str:
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if isinstance(data, dict):
        # Allow either `prompt` or `system_prompt` as the key.
        prompt = data.get("prompt") or data.get("system_prompt")
        if isinstance(prompt, str):
            return prompt.strip()
    raise ValueError(f"Persona YAML at {path} must contain a 'prompt' or 'system_prompt' string")


def load_persona(name: str) -> str:
    """
    Load a persona by name.

    Looks for, in order:
    - <name>.md
    - <name>.txt
    - <name>.yaml / <name>.yml
    """
    base = PERSONAS_DIR
    candidates = [
        base / f"{name}.md",
        base / f"{name}.txt",
        base / f"{name}.yaml",
        base / f"{name}.yml",
    ]

    for path in candidates:
        if path.is_file():
            if path.suffix in {".md", ".txt"}:
                return _read_text(path)
            return _read_yaml_prompt(path)

    raise FileNotFoundError(f"Persona '{name}' not found in {PERSONAS_DIR}")


def try_load_persona(name: str | None) -> str | None:
    """
    Best-effort persona loader that logs a warning instead of raising.
    """
    if not name:
        return None
    try:
        return load_persona(name)
    except Exception as e:
        logging.warning("Failed to load persona '%s': %s", name, e)
        return None


def persona_name(language: str = "en", elevated: bool = False, base: str = DEFAULT_PERSONA) -> str:
    name = f"{base}-pro" if elevated else base
    if language != "en":
        name = f"{name}-{language}"
    return name


def build_system_instruction(language: str = "en", elevated: bool = False) -> str:
    """
    Persona text for the language/tier, followed by the knowledge base guidance.

    Falls back to the English persona of the same tier, then to the base persona.
    """
    language = language if language in SUPPORTED_LANGUAGES else "en"
    prompt = (
        try_load_persona(persona_name(language, elevated))
        or try_load_persona(persona_name("en", elevated))
        or try_load_persona(DEFAULT_PERSONA)
        or "You are Lumen, a helpful Discord assistant."
    )
    return f"{prompt}\n{KB_GUIDANCE[language]}"


def detect_language(text: str, preferred: str | None = None) -> str:
    """An explicit preference wins; otherwise Polish diacritics mean 'pl'."""
    if preferred in SUPPORTED_LANGUAGES:
        return preferred
    return "pl" if _POLISH_CHARS.search(text or "") else "en"
