"""Input validation and small string helpers shared by the CLI and the MCP tools."""
from __future__ import annotations

import os
import re
from datetime import timezone
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from threadlinking.errors import ValidationError
from threadlinking.models import parse_timestamp

MAX_SUMMARY_LENGTH = 500
MAX_TAG_LENGTH = 100
MAX_SNIPPET_LENGTH = 2000
MAX_FILE_PATH_LENGTH = 1000
MAX_URL_LENGTH = 1000
MAX_QUERY_LENGTH = 100

# control characters other than tab, newline and carriage return
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_INVALID_TAG_RE = re.compile(r"[<>\"'&\x00-\x1f\x7f]")


def sanitize_string(text: str, max_length: int | None = None) -> str:
    """Strip control characters (keeping tabs and newlines), truncate, then trim."""
    sanitized = _CONTROL_RE.sub("", text)
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
    return sanitized.strip()


def validate_tag(tag: str) -> str:
    """Return the canonical form of a thread tag or raise ValidationError.

    Idempotent: validate_tag(validate_tag(t)) == validate_tag(t).
    """
    if not tag or not tag.strip():
        raise ValidationError("Tag cannot be empty")
    if len(tag) > MAX_TAG_LENGTH:
        raise ValidationError(f"Tag too long (max {MAX_TAG_LENGTH} characters)")
    if _INVALID_TAG_RE.search(tag):
        raise ValidationError("Tag contains invalid characters")
    return tag.strip()


def validate_url(url: str) -> str:
    """Return a normalised http(s) URL, or "" for empty input."""
    if not url or not url.strip():
        return ""
    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(f"URL too long (max {MAX_URL_LENGTH} characters)")
    try:
        parts = urlsplit(url)
    except ValueError:
        raise ValidationError("Invalid URL format")
    if not parts.scheme or not parts.netloc:
        raise ValidationError("Invalid URL format")
    if parts.scheme.lower() not in ("http", "https"):
        raise ValidationError("URL scheme must be http or https")
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, parts.fragment))


def resolve_path(file_path: str) -> str:
    """Expand ~ and return the absolute, normalised form of *file_path*."""
    if not file_path or not file_path.strip():
        raise ValidationError("File path cannot be empty")
    if len(file_path) > MAX_FILE_PATH_LENGTH:
        raise ValidationError(f"File path too long (max {MAX_FILE_PATH_LENGTH} characters)")
    if "\x00" in file_path:
        raise ValidationError("File path contains invalid characters")
    return os.path.abspath(Path(file_path).expanduser())


def parse_tags(tags: str | list[str] | None) -> list[str]:
    """Split comma-separated tags, lowercase them, drop blanks and duplicates."""
    if not tags:
        return []
    raw = tags.split(",") if isinstance(tags, str) else tags
    out: list[str] = []
    for t in raw:
        t = sanitize_string(t).lower()
        if t and t not in out:
            out.append(t)
    return out


def detect_source() -> str:
    """Guess which assistant produced a snippet from the environment."""
    if os.environ.get("CLAUDE_CODE") or os.environ.get("ANTHROPIC_API_KEY"):
        return "claude-code"
    if os.environ.get("OPENAI_API_KEY"):
        return "chatgpt"
    return "manual"


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_date(iso_string: str) -> str:
    """Render a stored timestamp as 'YYYY-MM-DD HH:MM' (UTC)."""
    moment = parse_timestamp(iso_string)
    if moment is None:
        return iso_string
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")
