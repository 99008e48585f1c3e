from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_INTRO_PHRASE = "신한투자증권서인원입니다"


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_nonempty_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass(frozen=True)
class ServiceConfig:
    SALESDESK_HOST: str
    SALESDESK_PORT: int
    SALESDESK_LOG_DIR: str
    SALESDESK_LOG_FILE: str
    SALESDESK_MESSAGE_LOG_PREFIX: str
    SALESDESK_SESSION_LOG_PREFIX: str
    SALESDESK_CORRECTION_LOG_PREFIX: str
    SALESDESK_MAX_API_LIMIT: int
    SALESDESK_INTRO_PHRASE: str
    SALESDESK_LOG_LEVEL: str

    def log_dir_path(self) -> Path:
        return Path(self.SALESDESK_LOG_DIR).expanduser().resolve()

    def fixed_log_file_path(self) -> Path | None:
        if not self.SALESDESK_LOG_FILE:
            return None
        return Path(self.SALESDESK_LOG_FILE).expanduser().resolve()


def load_config() -> ServiceConfig:
    return ServiceConfig(
        SALESDESK_HOST=_getenv_str("SALESDESK_HOST", "0.0.0.0"),
        SALESDESK_PORT=_getenv_int("SALESDESK_PORT", 8080),
        SALESDESK_LOG_DIR=_getenv_nonempty_str(
            "SALESDESK_LOG_DIR", str(Path.cwd() / "logs")
        ),
        SALESDESK_LOG_FILE=_getenv_str("SALESDESK_LOG_FILE", "").strip(),
        SALESDESK_MESSAGE_LOG_PREFIX=_getenv_nonempty_str(
            "SALESDESK_MESSAGE_LOG_PREFIX", "stt-messages"
        ),
        SALESDESK_SESSION_LOG_PREFIX=_getenv_nonempty_str(
            "SALESDESK_SESSION_LOG_PREFIX", "stt-sessions"
        ),
        SALESDESK_CORRECTION_LOG_PREFIX=_getenv_nonempty_str(
            "SALESDESK_CORRECTION_LOG_PREFIX", "stt-corrections"
        ),
        SALESDESK_MAX_API_LIMIT=max(1, _getenv_int("SALESDESK_MAX_API_LIMIT", 500)),
        SALESDESK_INTRO_PHRASE=_getenv_nonempty_str(
            "SALESDESK_INTRO_PHRASE", DEFAULT_INTRO_PHRASE
        ),
        SALESDESK_LOG_LEVEL=_getenv_str("SALESDESK_LOG_LEVEL", "INFO"),
    )
