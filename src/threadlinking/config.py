import os
from pathlib import Path


class ConfigError(Exception):
    pass


DEFAULT_LOCK_TIMEOUT = 5.0
PENDING_EXPIRY_DAYS = 30

INDEX_FILENAME = "thread_index.json"
PENDING_FILENAME = "pending.json"
SEMANTIC_INDEX_DIRNAME = "semantic-index"


def get_base_dir() -> Path:
    raw = os.environ.get("THREADLINKING_HOME")
    if not raw:
        return Path.home() / ".threadlinking"
    return Path(raw).expanduser().resolve()


def get_index_path() -> Path:
    return get_base_dir() / INDEX_FILENAME


def get_pending_path() -> Path:
    return get_base_dir() / PENDING_FILENAME


def get_semantic_index_dir() -> Path:
    return get_base_dir() / SEMANTIC_INDEX_DIRNAME


def _positive_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def get_lock_timeout() -> float:
    """Seconds to wait for another writer before giving up with LockTimeout."""
    return _positive_float("THREADLINKING_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_log_level() -> str | None:
    raw = os.environ.get("THREADLINKING_LOG_LEVEL", "").strip().upper()
    if not raw:
        return None
    if raw not in _LOG_LEVELS:
        raise ConfigError(f"THREADLINKING_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {raw!r}")
    return raw
