"""Content source adapter for the search index.

This module turns markdown article files into the records the search
core consumes. It owns every deserialisation concern (frontmatter,
JSON-encoded tag lists, missing metadata) so the core only ever sees
structured values.

The core talks to any object satisfying the ContentSource protocol;
LibraryContentSource is the file-backed implementation.
"""

import json
import math
from datetime import UTC, date, datetime
from pathlib import PurePosixPath
from typing import Any, Protocol, runtime_checkable

import frontmatter
from pydantic import ValidationError

from research_search.content.models import Article, ArticleFrontmatter
from research_search.dependencies import ContentError, ContentLibrary, logger
from research_search.search.models import SearchableRecord

WORDS_PER_MINUTE = 200
DATE_KEYS = ("published_at", "created", "modified")
TEXT_KEYS = ("id", "title", "slug", "summary", "division")


@runtime_checkable
class ContentSource(Protocol):
    """Read contract the search core needs from the persistence layer.

    Uses structural subtyping - no inheritance required.
    """

    async def fetch_publishable_content(self) -> list[SearchableRecord]:
        """Return every record visible now (published, not future-dated)."""
        ...

    async def has_content_changed_since(self, timestamp: datetime) -> bool:
        """Report whether any publishable record changed after timestamp."""
        ...

    async def resolve_full_record(self, record_id: str) -> Article | None:
        """Return the full article for an id, or None if it no longer exists."""
        ...


# =============================================================================
# Helper Functions
# =============================================================================


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Make datetime timezone-aware (UTC).

    Examples:
        >>> ensure_utc(None) is None
        True
        >>> ensure_utc(datetime(2025, 1, 1)).tzinfo is not None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def as_datetime(value: Any) -> Any:
    """Promote bare YAML dates to midnight UTC datetimes; pass others through."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    return value


def parse_string_list(value: Any) -> list[str]:
    """Deserialise a stored list of strings.

    Accepts a real list, a JSON-encoded list (as written by the CMS),
    or a single bare string. Anything undecodable yields an empty list.

    Examples:
        >>> parse_string_list('["climate", "policy"]')
        ['climate', 'policy']
        >>> parse_string_list(["a", " b "])
        ['a', 'b']
        >>> parse_string_list("solo")
        ['solo']
        >>> parse_string_list("[broken")
        []
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                return []
        else:
            return [text]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def extract_title(body: str, path: str) -> str:
    """Extract the first H1 heading, falling back to the file stem.

    Examples:
        >>> extract_title("# Energy Storage\\nText", "a/energy.md")
        'Energy Storage'
        >>> extract_title("No heading", "a/energy-storage.md")
        'energy-storage'
    """
    for line in body.split("\n"):
        line = line.strip()
        if line.startswith("# "):
            return line[2:].strip()
    return PurePosixPath(path).stem


def estimate_read_time(body: str) -> int:
    """Estimate reading time in whole minutes (never below one)."""
    return max(1, math.ceil(len(body.split()) / WORDS_PER_MINUTE))


def parse_article(content: str, path: str, modified: datetime | None = None) -> Article:
    """Parse an article file into an Article.

    Args:
        content: Raw file content with YAML frontmatter
        path: Relative path of the file (used for fallbacks)
        modified: File mtime, used when frontmatter has no 'modified'

    Returns:
        Fully populated Article

    Raises:
        ValueError: If the frontmatter cannot be parsed or validated
    """
    try:
        post = frontmatter.loads(content)
    except Exception as e:
        raise ValueError(f"Unreadable frontmatter in {path}: {e}") from e

    metadata = dict(post.metadata)
    for key in DATE_KEYS:
        metadata[key] = as_datetime(metadata.get(key))
    for key in TEXT_KEYS:
        if metadata.get(key) is not None:
            metadata[key] = str(metadata[key])
    metadata["tags"] = parse_string_list(metadata.get("tags"))
    metadata["authors"] = parse_string_list(metadata.get("authors"))
    if isinstance(metadata.get("status"), str):
        metadata["status"] = metadata["status"].upper()

    try:
        fm = ArticleFrontmatter.model_validate(metadata)
    except ValidationError as e:
        raise ValueError(f"Invalid frontmatter in {path}: {e}") from e

    body = post.content
    slug = fm.slug or PurePosixPath(path).stem
    return Article(
        id=str(fm.id or slug),
        slug=slug,
        title=fm.title or extract_title(body, path),
        summary=fm.summary,
        content=body,
        tags=fm.tags,
        authors=fm.authors,
        division=fm.division,
        status=fm.status,
        published_at=ensure_utc(fm.published_at),
        created=ensure_utc(fm.created),
        modified=ensure_utc(fm.modified) or ensure_utc(modified),
        read_time=estimate_read_time(body),
        path=path,
    )


def is_publishable(article: Article, now: datetime) -> bool:
    """Check an article is published and its publish time has passed."""
    return (
        article.status == "PUBLISHED"
        and article.published_at is not None
        and article.published_at <= now
    )


def to_searchable(article: Article) -> SearchableRecord:
    """Project an Article onto the denormalised search record."""
    return SearchableRecord(
        id=article.id,
        title=article.title,
        body=article.content,
        summary=article.summary,
        tags=tuple(article.tags),
        author_names=tuple(article.authors),
        category_name=article.division,
        published_at=article.published_at,
        slug=article.slug,
    )


# =============================================================================
# File-backed Source
# =============================================================================


class LibraryContentSource:
    """ContentSource over a ContentLibrary of markdown articles."""

    def __init__(self, library: ContentLibrary) -> None:
        self.library = library
        self._paths_by_id: dict[str, str] = {}
        self._published_ids: set[str] = set()

    async def _load_all(self) -> list[Article]:
        """Parse every article file, skipping ones that fail to parse.

        Raises:
            ContentError: If the library itself cannot be listed
        """
        articles: list[Article] = []
        paths_by_id: dict[str, str] = {}

        for file_path in await self.library.list_files():
            try:
                content = await self.library.read_file(file_path)
                modified = await self.library.modified_at(file_path)
                article = parse_article(content, file_path, modified)
            except (ContentError, ValueError, OSError) as e:
                logger.warning(
                    "article_parse_failed",
                    extra={"path": file_path, "error": str(e)},
                )
                continue

            if article.id in paths_by_id:
                logger.warning(
                    "duplicate_article_id",
                    extra={"id": article.id, "path": file_path, "kept": paths_by_id[article.id]},
                )
                continue
            paths_by_id[article.id] = file_path
            articles.append(article)

        self._paths_by_id = paths_by_id
        return articles

    async def fetch_publishable_content(self) -> list[SearchableRecord]:
        """Return search records for every article visible now."""
        now = datetime.now(UTC)
        articles = [a for a in await self._load_all() if is_publishable(a, now)]
        self._published_ids = {a.id for a in articles}
        return [to_searchable(a) for a in articles]

    async def has_content_changed_since(self, timestamp: datetime) -> bool:
        """Check for published articles edited or released after timestamp.

        A scheduled article whose publish time passed since the last
        build counts as a change, since it must now enter the index.
        An article from the last fetch that was deleted, unpublished or
        rescheduled also counts, since it must now leave the index.
        """
        since = ensure_utc(timestamp)
        now = datetime.now(UTC)
        indexed = set(self._published_ids)
        articles = await self._load_all()
        if indexed - {a.id for a in articles}:
            return True
        for article in articles:
            if article.id in indexed and not is_publishable(article, now):
                return True
            if article.status != "PUBLISHED":
                continue
            if article.modified and article.modified > since:
                return True
            if article.published_at and since < article.published_at <= now:
                return True
        return False

    async def resolve_full_record(self, record_id: str) -> Article | None:
        """Resolve an id to its current Article.

        Returns None if the article is gone or is no longer publishable.
        """
        path = self._paths_by_id.get(record_id)
        if path is None:
            await self._load_all()
            path = self._paths_by_id.get(record_id)
            if path is None:
                return None

        try:
            content = await self.library.read_file(path)
            modified = await self.library.modified_at(path)
        except ContentError:
            return None

        article = parse_article(content, path, modified)
        if article.id != record_id or not is_publishable(article, datetime.now(UTC)):
            return None
        return article
