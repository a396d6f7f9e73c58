"""Global configuration for the Discord Claude relay."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: str = "", env: Mapping[str, str] | None = None) -> str:
    """Read an env var, treating blank values as unset."""
    value = (env if env is not None else os.environ).get(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    return _env(key, "true" if default else "false").lower() in ("1", "true", "yes", "on")


# Discord
DISCORD_TOKEN = _env("DISCORD_BOT_TOKEN")
BOT_NAME = _env("BOT_NAME", "Claude")

# Claude - SDK key or Claude Code CLI OAuth token
ANTHROPIC_API_KEY = _env("ANTHROPIC_API_KEY")
CLAUDE_CODE_OAUTH_TOKEN = _env("CLAUDE_CODE_OAUTH_TOKEN")
CLAUDE_MODEL = _env("CLAUDE_MODEL", "claude-sonnet-4-5-20250929")
CLAUDE_MAX_TOKENS = 8192
CLAUDE_CLI_PATH = _env("CLAUDE_CLI_PATH", "claude")

# "api" (Anthropic SDK) or "cli" (claude -p). Blank picks from the credential.
COMPLETION_BACKEND = _env("COMPLETION_BACKEND").lower()

# Managed git checkout
GIT_REPOSITORY_URL = _env("GIT_REPOSITORY_URL")
GITHUB_TOKEN = _env("GITHUB_TOKEN")
REPO_PATH = Path(_env("REPO_PATH", "./repo"))

# Conversation
MAX_THREAD_HISTORY = _env_int("MAX_THREAD_HISTORY", 50)

# Logging
LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = _env_bool("LOG_TO_FILE", True)
LOG_DIR = Path(_env("LOG_DIR", "./logs"))
LOG_BACKUP_COUNT = _env_int("LOG_BACKUP_COUNT", 7)


REQUIRED_KEYS = ("DISCORD_BOT_TOKEN", "GIT_REPOSITORY_URL")
CREDENTIAL_KEYS = ("ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN")


@dataclass(frozen=True)
class ConfigError:
    """A single configuration problem found at startup."""

    key: str
    reason: str  # "missing" | "invalid_format"


def validate_config(env: Mapping[str, str] | None = None) -> list[ConfigError]:
    """Check required settings before anything connects.

    Args:
        env: Mapping to validate (defaults to os.environ)

    Returns:
        List of problems, empty when the configuration is usable
    """
    env = os.environ if env is None else env
    errors = [ConfigError(key, "missing") for key in REQUIRED_KEYS if not _env(key, env=env)]

    if not any(_env(key, env=env) for key in CREDENTIAL_KEYS):
        errors.append(ConfigError(" or ".join(CREDENTIAL_KEYS), "missing"))

    history = _env("MAX_THREAD_HISTORY", env=env)
    if history and (not history.isdigit() or int(history) < 1):
        errors.append(ConfigError("MAX_THREAD_HISTORY", "invalid_format"))

    backend = _env("COMPLETION_BACKEND", env=env).lower()
    if backend and backend not in ("api", "cli"):
        errors.append(ConfigError("COMPLETION_BACKEND", "invalid_format"))
    elif backend == "api" and not _env("ANTHROPIC_API_KEY", env=env):
        errors.append(ConfigError("ANTHROPIC_API_KEY", "missing"))

    return errors


def format_config_errors(errors: list[ConfigError]) -> str:
    """Render validation errors for the startup log."""
    lines = ["Configuration validation failed:"]
    for error in errors:
        if error.reason == "missing":
            lines.append(f"  - {error.key}: not set")
        else:
            lines.append(f"  - {error.key}: invalid format")
    lines.append("")
    lines.append("Check your .env file (see .env.example).")
    return "\n".join(lines)


def resolve_backend() -> str:
    """Completion transport to use: explicit setting, else whichever credential exists."""
    if COMPLETION_BACKEND in ("api", "cli"):
        return COMPLETION_BACKEND
    return "api" if ANTHROPIC_API_KEY else "cli"
