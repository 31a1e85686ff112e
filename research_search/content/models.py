"""Pydantic models for research articles."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ArticleStatus = Literal["DRAFT", "PUBLISHED", "ARCHIVED"]


class ArticleFrontmatter(BaseModel):
    """YAML frontmatter metadata for an article file.

    Every field is optional on disk; missing values are filled in by
    the parser from the file path, the body or the file's mtime.

    Example frontmatter:
        ---
        id: art-001
        title: Climate Policy in Kenya
        slug: climate-policy-in-kenya
        summary: How county budgets shape adaptation.
        tags: ["climate", "policy"]
        authors:
          - Amina Otieno
        division: Environmental Policy
        status: PUBLISHED
        published_at: 2025-03-01T09:00:00+00:00
        ---
    """

    id: str | None = None
    title: str | None = None
    slug: str | None = None
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    division: str = ""
    status: ArticleStatus = "DRAFT"
    published_at: datetime | None = None
    created: datetime | None = None
    modified: datetime | None = None


class Article(BaseModel):
    """A fully resolved article, as handed back to callers for rendering.

    Attributes:
        id: Stable identifier
        slug: URL slug for linking
        title: Article title
        summary: Short abstract
        content: Full markdown body
        tags: Tags, already deserialised
        authors: Author names in byline order
        division: Research division (taxonomy label)
        status: Publication status
        published_at: Publication timestamp (None when unpublished)
        created: Creation timestamp (if available)
        modified: Last modification timestamp
        read_time: Estimated reading time in minutes
        path: Relative path of the source file
    """

    id: str = Field(..., description="Stable identifier")
    slug: str = Field(..., description="URL slug")
    title: str = Field(..., description="Article title")
    summary: str = Field(default="", description="Short abstract")
    content: str = Field(default="", description="Markdown body")
    tags: list[str] = Field(default_factory=list, description="Article tags")
    authors: list[str] = Field(default_factory=list, description="Author names")
    division: str = Field(default="", description="Research division")
    status: ArticleStatus = Field(default="DRAFT", description="Publication status")
    published_at: datetime | None = Field(default=None, description="Publication timestamp")
    created: datetime | None = Field(default=None, description="Creation timestamp")
    modified: datetime | None = Field(default=None, description="Modification timestamp")
    read_time: int = Field(default=1, ge=1, description="Reading time in minutes")
    path: str = Field(default="", description="Relative source path")
