"""Thread, Snippet and PendingFile records and their JSON codec."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with microseconds and a trailing Z."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC. None if unparseable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class Snippet:
    content: str
    source: str
    timestamp: str
    url: str = ""
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Snippet":
        return cls(
            content=str(raw.get("content") or ""),
            source=str(raw.get("source") or ""),
            timestamp=str(raw.get("timestamp") or ""),
            url=str(raw.get("url") or ""),
            tags=[str(t) for t in raw.get("tags") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": self.content, "source": self.source}
        if self.url:
            out["url"] = self.url
        out["timestamp"] = self.timestamp
        if self.tags:
            out["tags"] = list(self.tags)
        return out


@dataclass
class Thread:
    summary: str
    date_created: str
    snippets: list[Snippet] = field(default_factory=list)
    linked_files: list[str] = field(default_factory=list)
    chat_url: str = ""
    date_modified: str = ""
    auto_generated: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Thread":
        snippets = [Snippet.from_dict(s) for s in raw.get("snippets") or [] if isinstance(s, dict)]
        files: list[str] = []
        for f in raw.get("linked_files") or []:
            if isinstance(f, str) and f not in files:
                files.append(f)
        return cls(
            summary=str(raw.get("summary") or ""),
            date_created=str(raw.get("date_created") or ""),
            snippets=snippets,
            linked_files=files,
            chat_url=str(raw.get("chat_url") or ""),
            date_modified=str(raw.get("date_modified") or ""),
            auto_generated=bool(raw.get("auto_generated", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "summary": self.summary,
            "snippets": [s.to_dict() for s in self.snippets],
            "linked_files": list(self.linked_files),
            "chat_url": self.chat_url,
            "date_created": self.date_created,
        }
        if self.date_modified:
            out["date_modified"] = self.date_modified
        if self.auto_generated:
            out["auto_generated"] = True
        return out

    @property
    def last_activity(self) -> str:
        return self.date_modified or self.date_created

    def is_orphan(self) -> bool:
        return not self.summary and not self.snippets and not self.linked_files

    def touch(self, now: datetime) -> None:
        """Set date_modified to *now*, kept strictly after the previous activity."""
        previous = parse_timestamp(self.last_activity)
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        self.date_modified = format_timestamp(now)


ThreadIndex = dict[str, Thread]


def decode_index(raw: dict[str, Any]) -> ThreadIndex:
    index: ThreadIndex = {}
    for tag, entry in raw.items():
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed thread entry %r in thread index", tag)
            continue
        index[tag] = Thread.from_dict(entry)
    return index


def encode_index(index: ThreadIndex) -> dict[str, Any]:
    return {tag: thread.to_dict() for tag, thread in index.items()}


@dataclass
class PendingFile:
    path: str
    first_seen: str
    last_modified: str
    count: int = 1

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PendingFile":
        try:
            count = int(raw.get("count", 1))
        except (TypeError, ValueError):
            count = 1
        return cls(
            path=str(raw.get("path") or ""),
            first_seen=str(raw.get("first_seen") or ""),
            last_modified=str(raw.get("last_modified") or ""),
            count=count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "first_seen": self.first_seen,
            "last_modified": self.last_modified,
            "count": self.count,
        }
