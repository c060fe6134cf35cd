from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_DEFAULT_DIMENSIONS = ["region", "age_group"]
_DEFAULT_CATEGORIES = ["Moral", "Fashion", "Family", "Workplace", "Trivial", "Political"]
_DEFAULT_JURY = {
    "selection_seed": "jurynow",
    "voting_window_minutes": 60,
    "reasoning_character_limit": 500,
}
_DEFAULT_AUTH = {
    "access_token_expire_minutes": 30,
    "issuer": "jurynow",
}


def load_config() -> Dict[str, Any]:
    """Load the application config from YAML, returning an empty mapping on error."""
    try:
        with _CONFIG_PATH.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                return data
            logging.warning(
                "Config file %s is not a mapping; using defaults.", _CONFIG_PATH
            )
            return {}
    except FileNotFoundError:
        logging.warning(
            "Configuration file %s not found; using defaults.", _CONFIG_PATH
        )
        return {}
    except Exception as exc:  # noqa: BLE001
        logging.error("Failed to load configuration from %s: %s", _CONFIG_PATH, exc)
        return {}


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate > 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_str_list(value: Any, fallback: List[str]) -> List[str]:
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, list):
        return list(fallback)
    cleaned: List[str] = []
    for entry in value:
        text = str(entry).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned or list(fallback)


def _env_override(name: str) -> Any:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def get_database_url(default: str) -> str:
    """
    Return the database URL.

    Priority:
    1) JURYNOW_DATABASE_URL env var
    2) config.yaml database_url
    3) the supplied default
    """
    env_value = _env_override("JURYNOW_DATABASE_URL")
    if env_value:
        return env_value
    config = load_config()
    url = config.get("database_url")
    return str(url) if url else default


def get_jury_settings() -> Dict[str, Any]:
    """Return jury selection and voting settings sourced from config with safe defaults."""
    config = load_config()
    section = config.get("jury") or {}
    defaults = dict(_DEFAULT_JURY)

    seed = _env_override("JURYNOW_SELECTION_SEED")
    if seed is None:
        seed = section.get("selection_seed")
    seed = str(seed).strip() if seed is not None else ""

    window = _env_override("JURYNOW_VOTING_WINDOW_MINUTES")
    if window is None:
        window = section.get("voting_window_minutes")

    return {
        "selection_seed": seed or defaults["selection_seed"],
        "dimensions": _coerce_str_list(section.get("dimensions"), _DEFAULT_DIMENSIONS),
        "categories": _coerce_str_list(section.get("categories"), _DEFAULT_CATEGORIES),
        "voting_window_minutes": _coerce_positive_int(
            window, defaults["voting_window_minutes"]
        ),
        "reasoning_character_limit": _coerce_positive_int(
            section.get("reasoning_character_limit"),
            defaults["reasoning_character_limit"],
        ),
    }


def get_auth_settings() -> Dict[str, Any]:
    """Return token settings with env/config overrides."""
    config = load_config()
    section = config.get("auth") or {}
    defaults = dict(_DEFAULT_AUTH)

    minutes = _env_override("JURYNOW_ACCESS_TOKEN_EXPIRE_MINUTES")
    if minutes is None:
        minutes = section.get("access_token_expire_minutes")
    issuer = _env_override("JURYNOW_JWT_ISSUER") or section.get("issuer")

    return {
        "access_token_expire_minutes": _coerce_positive_int(
            minutes, defaults["access_token_expire_minutes"]
        ),
        "issuer": str(issuer).strip() if issuer else defaults["issuer"],
    }


def get_sqlite_settings(defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Return SQLite pragma and write-retry settings merged over the given defaults."""
    config = load_config()
    section = config.get("sqlite") or {}
    return {
        "journal_mode": str(section.get("journal_mode") or defaults["journal_mode"]),
        "synchronous": str(section.get("synchronous") or defaults["synchronous"]),
        "busy_timeout_ms": _coerce_positive_int(
            section.get("busy_timeout_ms"), defaults["busy_timeout_ms"]
        ),
        "write_retries": _coerce_positive_int(
            section.get("write_retries"), defaults["write_retries"]
        ),
        "retry_backoff_ms": _coerce_positive_int(
            section.get("retry_backoff_ms"), defaults["retry_backoff_ms"]
        ),
    }


def get_pool_settings(defaults: Dict[str, int]) -> Dict[str, int]:
    """Return connection pool sizing merged over the given defaults."""
    config = load_config()
    section = config.get("database_pool") or {}
    return {
        key: _coerce_positive_int(section.get(key), fallback)
        for key, fallback in defaults.items()
    }
