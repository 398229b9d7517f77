"""
Data models for the creator feed.

Item is the unit flowing from the fetcher, through the cache, into the
merged feed. The Upstream* models mirror the JSON returned by the
video-list API and are only used for decoding.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SourceID = str

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: Any) -> timedelta | None:
    """
    Parse a duration from config input.

    Accepts a timedelta, a number of seconds, or a string such as
    "90s", "30m", "2h", "1d" or combinations like "1h30m". Empty values
    return None.

    Raises:
        ValueError: If the string cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip().lower()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return timedelta(seconds=float(text))

    pos = 0
    total = timedelta(0)
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return total


class Item(BaseModel):
    """One video in the feed. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    thumbnail_url: str = ""
    author: str = ""
    author_url: str = ""
    published_at: datetime
    source_id: SourceID = Field(..., description="Source the item was fetched for")

    @field_validator("published_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SourceConfig(BaseModel):
    """A tracked source and its optional cache lifetime override."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uid: SourceID = Field(..., min_length=1)
    update_every: timedelta | None = Field(
        default=None,
        alias="update-every",
        description="Per-source TTL; None or zero means use the feed default",
    )

    @field_validator("uid", mode="before")
    @classmethod
    def strip_uid(cls, v: Any) -> str:
        return str(v).strip()

    @field_validator("update_every", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> timedelta | None:
        return parse_duration(v)

    @classmethod
    def parse(cls, value: str) -> "SourceConfig":
        """Parse "uid" or "uid:ttl" (e.g. "946974:30m")."""
        uid, _, ttl = value.partition(":")
        return cls(uid=uid, update_every=ttl or None)


class ErrorKind(str, Enum):
    """Aggregate error classification of one aggregation pass."""

    NONE = "none"
    PARTIAL = "partial"
    TOTAL = "total"


@dataclass
class FetchOutcome:
    """Result of fetching one source: a batch of items or a classified failure."""

    source_id: SourceID
    items: list[Item] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchResult:
    """
    Outcome of one fetch over a set of sources.

    Outcomes are in request order. `error` is a PartialContentError when
    some sources failed, None when all succeeded.
    """

    outcomes: list[FetchOutcome]
    items: list[Item]
    failed: int = 0
    error: Exception | None = None

    def items_by_source(self) -> dict[SourceID, list[Item]]:
        """Batches of the successful sources, keyed by SourceID."""
        return {o.source_id: o.items for o in self.outcomes if o.ok}


@dataclass
class AggregateResult:
    """Merged, sorted and truncated feed plus its error classification."""

    items: list[Item]
    error_kind: ErrorKind = ErrorKind.NONE
    failed_count: int = 0
    error: Exception | None = None
    refreshed: list[SourceID] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error_kind == ErrorKind.NONE


# Upstream wire format


class UpstreamVideo(BaseModel):
    """One record in data.list.vlist."""

    model_config = ConfigDict(extra="ignore")

    title: str
    author: str = ""
    aid: int = 0
    bvid: str
    pic: str = ""
    created: int


class UpstreamVideoList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vlist: list[UpstreamVideo] = Field(default_factory=list)

    @field_validator("vlist", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        """A creator without videos is reported as `"vlist": null`."""
        return [] if v is None else v


class UpstreamData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    list: UpstreamVideoList = Field(default_factory=UpstreamVideoList)

    @field_validator("list", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class VideoListResponse(BaseModel):
    """Envelope of the video-list API. A non-zero code is a failure even on HTTP 200."""

    model_config = ConfigDict(extra="ignore")

    code: int
    message: str = ""
    data: UpstreamData | None = None

    @property
    def videos(self) -> list[UpstreamVideo]:
        if self.data is None:
            return []
        return self.data.list.vlist
