"""Data models for mdblog."""

from datetime import date as date_type
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MORE_MARKER = "<!--more-->"

FrontMatterFormat = Literal["yaml", "toml"]


class PostMetadata(BaseModel):
    """Metadata extracted from post front-matter."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    date: datetime | date_type | None = None
    draft: bool = False
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    author: str | None = None
    description: str | None = None
    more_link: str | None = None
    url: str | None = None

    @field_validator("tags", "categories", mode="before")
    @classmethod
    def _empty_list(cls, value):
        # "tags:" with no value loads as None
        return [] if value is None else value


class Post(BaseModel):
    """Represents a blog post."""

    slug: str
    body: str
    metadata: PostMetadata = Field(default_factory=PostMetadata)
    path: Path | None = None
    format: FrontMatterFormat = "yaml"

    @property
    def title(self) -> str:
        """Return title from metadata or derive from slug."""
        return self.metadata.title or self.slug.replace("-", " ")

    @property
    def summary(self) -> str | None:
        """Body text before the more marker, or None without one."""
        head, sep, _ = self.body.partition(MORE_MARKER)
        if not sep:
            return None
        return head.strip()

    @property
    def word_count(self) -> int:
        """Approximate word count of post body."""
        return len(self.body.split())

    @property
    def sort_date(self) -> datetime:
        """Publication date as a comparable timestamp; undated posts sort last."""
        value = self.metadata.date
        if value is None:
            return datetime.min
        if not isinstance(value, datetime):
            value = datetime(value.year, value.month, value.day)
        if value.tzinfo is not None:
            # Compare in UTC without tzinfo so naive and aware dates mix
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
