"""Configuration for the creator feed."""

from datetime import timedelta
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from src.feed.schemas import SourceConfig, parse_duration

DEFAULT_LIMIT = 25
DEFAULT_COLLAPSE_AFTER = 7
DEFAULT_COLLAPSE_AFTER_ROWS = 4


class FeedMode(str, Enum):
    """
    Operating mode of the aggregator.

    DEVELOPMENT refreshes every source on every pass (zero TTL) and
    turns on verbose logging.
    """

    NORMAL = "normal"
    DEVELOPMENT = "development"


class FeedConfig(BaseSettings):
    """Settings for the tracked sources, caching and fetch behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="FEED_",
        case_sensitive=False,
        extra="ignore",
    )

    title: str = "Bilibili"
    sources: Annotated[list[SourceConfig], NoDecode] = Field(
        default_factory=list,
        description='Tracked sources; env form is "uid[:ttl],uid[:ttl]"',
    )
    update_every: timedelta | None = Field(
        default=None,
        description="Default cache lifetime per source (None = 2h fallback)",
    )
    limit: int = Field(default=DEFAULT_LIMIT, description="Maximum items in the merged feed")
    mode: FeedMode = FeedMode.NORMAL

    # Display, consumed by the renderer
    style: Literal["default", "grid-cards", "vertical-list"] = "default"
    collapse_after: int = DEFAULT_COLLAPSE_AFTER
    collapse_after_rows: int = DEFAULT_COLLAPSE_AFTER_ROWS

    # Upstream API
    api_base_url: str = "https://api.bilibili.com"
    page_size: int = Field(default=30, ge=1, le=50)
    request_interval_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum spacing between consecutive upstream requests",
    )
    workers: int = Field(default=2, ge=1, le=16)
    fetch_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Deadline for one whole fetch job (None = no deadline)",
    )

    @field_validator("sources", mode="before")
    @classmethod
    def parse_sources(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [SourceConfig.parse(part.strip()) for part in v.split(",") if part.strip()]
        return v

    @field_validator("update_every", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> timedelta | None:
        return parse_duration(v)

    @field_validator("limit")
    @classmethod
    def default_limit(cls, v: int) -> int:
        return DEFAULT_LIMIT if v <= 0 else v

    @field_validator("collapse_after")
    @classmethod
    def default_collapse_after(cls, v: int) -> int:
        return DEFAULT_COLLAPSE_AFTER if v == 0 or v < -1 else v

    @field_validator("collapse_after_rows")
    @classmethod
    def default_collapse_after_rows(cls, v: int) -> int:
        return DEFAULT_COLLAPSE_AFTER_ROWS if v == 0 or v < -1 else v

    @property
    def is_development(self) -> bool:
        return self.mode == FeedMode.DEVELOPMENT

    @property
    def source_ids(self) -> list[str]:
        return [s.uid for s in self.sources]
