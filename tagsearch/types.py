"""
Data types for tagged items and tag search.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


MAX_TAG_VALUE_LENGTH = 256
MAX_GROUP_NAME_LENGTH = 128

# Hex colors: #RGB, #RRGGBB, #RRGGBBAA
_COLOR_RE = re.compile(r'^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$')

# Path separators accepted when splitting off the final segment
_SEPARATOR_RE = re.compile(r'[\\/]')


def utc_now() -> int:
    """Current UTC time as unix seconds."""
    return int(datetime.now(timezone.utc).timestamp())


def format_timestamp(ts: Optional[int]) -> str:
    """Render unix seconds as YYYY-MM-DD (UTC). Empty string for None."""
    if ts is None:
        return ""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def normalize_tag_value(value: str) -> str:
    """Validate and trim a tag value."""
    trimmed = value.strip() if value else ""
    if not trimmed:
        raise ValueError("Tag value cannot be empty")
    if len(trimmed) > MAX_TAG_VALUE_LENGTH:
        raise ValueError(f"Tag value too long (max {MAX_TAG_VALUE_LENGTH}): {trimmed[:32]!r}...")
    return trimmed


def normalize_group_name(name: str) -> str:
    """Validate and trim a tag group name."""
    trimmed = name.strip() if name else ""
    if not trimmed:
        raise ValueError("Tag group name cannot be empty")
    if len(trimmed) > MAX_GROUP_NAME_LENGTH:
        raise ValueError(f"Tag group name too long (max {MAX_GROUP_NAME_LENGTH})")
    return trimmed


def validate_color(color: Optional[str]) -> Optional[str]:
    """Validate a hex display color. None means no color."""
    if color is None:
        return None
    trimmed = color.strip()
    if not trimmed.startswith("#"):
        raise ValueError(f"Color must start with '#': {color!r}")
    if not _COLOR_RE.match(trimmed):
        raise ValueError(
            f"Invalid color {color!r}: expected #RGB, #RRGGBB or #RRGGBBAA"
        )
    return trimmed


def final_segment(path: str) -> str:
    """Last component of a path, accepting both / and \\ as separators."""
    stripped = path.rstrip("/\\")
    if not stripped:
        return path
    return _SEPARATOR_RE.split(stripped)[-1]


class Combinator(str, Enum):
    """How multiple selected tags relate to an item's tag set."""
    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, value: "str | Combinator") -> "Combinator":
        if isinstance(value, Combinator):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Invalid combinator: {value!r} (expected AND or OR)") from None


@dataclass(frozen=True)
class TagGroup:
    """A named, colored group owning zero or more tags."""
    id: int
    name: str
    color: Optional[str] = None
    display_order: int = 0


@dataclass(frozen=True)
class Tag:
    """A tag value within a group. Values are unique per group, case-insensitively."""
    id: int
    group_id: int
    value: str


@dataclass(frozen=True)
class Item:
    """
    A tagged file or directory.

    Items are created lazily on first tagging. Soft-deleted items keep
    their row (and tags) but are invisible to search.
    """
    id: int
    path: str
    is_directory: bool = False
    size: Optional[int] = None
    modified_time: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[int] = None

    @property
    def name(self) -> str:
        """Final path segment (the filename)."""
        return final_segment(self.path)

    @property
    def extension(self) -> str:
        """Lowercased extension including the dot, or empty string."""
        name = self.name
        dot = name.rfind(".")
        if dot <= 0:
            return ""
        return name[dot:].lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "is_directory": self.is_directory,
            "size": self.size,
            "modified_time": self.modified_time,
        }


@dataclass(frozen=True)
class SearchCriteria:
    """
    Simple-mode search: a tag-id selection, a combinator and an optional
    filename substring.

    Tag ids are deduplicated and sorted so that equal selections compare
    equal (history dedup relies on this). Blank name substrings become None.
    """
    tag_ids: tuple[int, ...] = ()
    mode: Combinator = Combinator.AND
    name_substring: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "tag_ids", tuple(sorted(set(self.tag_ids))))
        object.__setattr__(self, "mode", Combinator.parse(self.mode))
        name = self.name_substring.strip() if self.name_substring else ""
        object.__setattr__(self, "name_substring", name or None)

    @property
    def is_empty(self) -> bool:
        return not self.tag_ids and self.name_substring is None

    def to_predicate(self, tag_values: dict[int, str]):
        """Compile to a Predicate tree, or None for an empty selection."""
        from .filter_builder import build_criteria_predicate
        return build_criteria_predicate(self, tag_values)

    def to_dict(self) -> dict:
        return {
            "tag_ids": list(self.tag_ids),
            "mode": self.mode.value,
            "name_substring": self.name_substring,
        }


@dataclass(frozen=True)
class SearchHistoryEntry:
    """
    A persisted prior search, for replay only.

    Exactly one of criteria / query is set.
    """
    id: int
    last_used_at: int
    criteria: Optional[SearchCriteria] = None
    query: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "last_used_at": self.last_used_at,
            "criteria": self.criteria.to_dict() if self.criteria else None,
            "query": self.query,
        }


@dataclass
class SearchOutcome:
    """Result of one applied search invocation."""
    sequence: int
    items: list[Item] = field(default_factory=list)
    source: str = ""
