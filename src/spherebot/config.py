"""Runtime settings loaded from environment variables.

Values are read when :func:`load_settings` is called, so tests can
``monkeypatch.setenv`` before building a bot. Malformed numbers fall back to
their defaults instead of failing start-up.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_WORKSPACE = "all"
DEFAULT_TEXT_CEILING = 2950
DEFAULT_CODE_CEILING = 2800
DEFAULT_MIN_SUBSTANTIVE_LENGTH = 100
DEFAULT_DUPLICATE_EVENT_TTL = 600
DEFAULT_WORKSPACE_LOCAL_TTL = 300
DEFAULT_WORKSPACE_SHARED_TTL = 3600

DUPLICATE_EVENT_PREFIX = "slack_event_id:"
WORKSPACE_LIST_CACHE_KEY = "anythingllm_workspaces"
WORKSPACE_OVERRIDE_PREFIX = "#"
DELETE_LAST_MESSAGE_COMMAND = "#delete_last_message"

PROMPT_SUFFIX = (
    "\n\nIMPORTANT: Please do not include context references "
    '(like "CONTEXT 0", "CONTEXT 1", etc.) in your response. '
    "Provide a clean, professional answer without these annotations."
)


def _env_str(name: str, default: str | None = None) -> str | None:
    raw = (os.getenv(name) or "").strip()
    return raw or default


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float, *, minimum: float = 1.0) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        return default


def default_db_url() -> str:
    return "sqlite:///" + str(Path.home() / ".spherebot" / "spherebot.db")


@dataclass(frozen=True)
class Settings:
    slack_bot_token: str | None
    slack_app_token: str | None
    bot_user_id: str | None
    llm_base_url: str | None
    llm_api_key: str | None
    redis_url: str | None
    db_url: str
    default_workspace: str
    text_ceiling: int
    code_ceiling: int
    min_substantive_length: int
    duplicate_event_ttl: int
    workspace_local_ttl: int
    workspace_shared_ttl: int
    workers: int
    list_timeout_seconds: float
    create_thread_timeout_seconds: float
    chat_timeout_seconds: float
    slack_timeout_seconds: int

    _REQUIRED = (
        ("SLACK_BOT_TOKEN", "slack_bot_token"),
        ("SLACK_APP_TOKEN", "slack_app_token"),
        ("SLACK_BOT_USER_ID", "bot_user_id"),
        ("LLM_API_BASE_URL", "llm_base_url"),
        ("LLM_API_KEY", "llm_api_key"),
    )

    def missing(self) -> list[str]:
        """Names of required environment variables that are unset."""

        return [env for env, attr in self._REQUIRED if not getattr(self, attr)]


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""

    local_ttl = _env_int("WORKSPACE_LOCAL_CACHE_TTL", DEFAULT_WORKSPACE_LOCAL_TTL, minimum=1)
    shared_ttl = _env_int("WORKSPACE_LIST_CACHE_TTL", DEFAULT_WORKSPACE_SHARED_TTL, minimum=1)
    # The shared tier must outlive the process-local one.
    shared_ttl = max(shared_ttl, local_ttl + 1)

    db_url = _env_str("SPHEREBOT_DB_PATH") or _env_str("DATABASE_URL") or default_db_url()
    if "://" not in db_url:
        db_url = "sqlite:///" + str(Path(db_url).expanduser())

    return Settings(
        slack_bot_token=_env_str("SLACK_BOT_TOKEN"),
        slack_app_token=_env_str("SLACK_APP_TOKEN"),
        bot_user_id=_env_str("SLACK_BOT_USER_ID"),
        llm_base_url=(_env_str("LLM_API_BASE_URL") or "").rstrip("/") or None,
        llm_api_key=_env_str("LLM_API_KEY"),
        redis_url=_env_str("REDIS_URL"),
        db_url=db_url,
        default_workspace=_env_str("SPHEREBOT_DEFAULT_WORKSPACE", DEFAULT_WORKSPACE) or DEFAULT_WORKSPACE,
        text_ceiling=_env_int("MAX_SLACK_BLOCK_TEXT_LENGTH", DEFAULT_TEXT_CEILING, minimum=1),
        code_ceiling=_env_int("MAX_SLACK_BLOCK_CODE_LENGTH", DEFAULT_CODE_CEILING, minimum=1),
        min_substantive_length=_env_int(
            "MIN_SUBSTANTIVE_RESPONSE_LENGTH", DEFAULT_MIN_SUBSTANTIVE_LENGTH
        ),
        duplicate_event_ttl=_env_int("DUPLICATE_EVENT_TTL", DEFAULT_DUPLICATE_EVENT_TTL, minimum=1),
        workspace_local_ttl=local_ttl,
        workspace_shared_ttl=shared_ttl,
        workers=_env_int("SPHEREBOT_WORKERS", 4, minimum=1),
        list_timeout_seconds=_env_float("LLM_LIST_TIMEOUT_SECONDS", 10.0),
        create_thread_timeout_seconds=_env_float("LLM_CREATE_THREAD_TIMEOUT_SECONDS", 15.0),
        chat_timeout_seconds=_env_float("LLM_CHAT_TIMEOUT_SECONDS", 90.0),
        slack_timeout_seconds=_env_int("SLACK_TIMEOUT_SECONDS", 30, minimum=1),
    )
