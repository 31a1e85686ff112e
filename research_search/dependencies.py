"""Shared dependencies: ContentLibrary, error taxonomy and structured logger."""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from research_search.config import get_settings

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_LOG_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS:
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    settings = get_settings()
    logger = logging.getLogger("research_search")
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = setup_logging()


class SearchError(Exception):
    """Base exception for search operations."""


class SourceUnavailable(SearchError):
    """Raised when the content source cannot be read during an index build."""


class RecordResolutionFailed(SearchError):
    """Raised when a matched record cannot be resolved to its full article."""


class ContentError(SearchError):
    """Base exception for content library operations."""


class ContentNotFoundError(ContentError):
    """Raised when a file is not found in the content library."""


class ContentSecurityError(ContentError):
    """Raised when a security violation is detected."""


@dataclass
class ContentLibrary:
    """Client for the directory of published research articles."""

    content_path: Path

    def _validate_path(self, relative_path: str) -> Path:
        """Validate and resolve a path within the library.

        Args:
            relative_path: Relative path within the library

        Returns:
            Resolved absolute path

        Raises:
            ContentSecurityError: If path traversal is detected
        """
        full_path = (self.content_path / relative_path).resolve()
        if not full_path.is_relative_to(self.content_path.resolve()):
            raise ContentSecurityError(f"Path traversal detected: {relative_path}")
        return full_path

    async def read_file(self, path: str) -> str:
        """Read an article file.

        Args:
            path: Relative path to file

        Returns:
            File content as string

        Raises:
            ContentNotFoundError: If file does not exist
        """
        full_path = self._validate_path(path)
        if not full_path.exists():
            raise ContentNotFoundError(f"File not found: {path}")
        return full_path.read_text(encoding="utf-8")

    async def modified_at(self, path: str) -> datetime:
        """Return the file's last modification time (UTC).

        Raises:
            ContentNotFoundError: If file does not exist
        """
        full_path = self._validate_path(path)
        if not full_path.exists():
            raise ContentNotFoundError(f"File not found: {path}")
        return datetime.fromtimestamp(full_path.stat().st_mtime, tz=UTC)

    async def list_files(self, folder: str = "", pattern: str = "*.md") -> list[str]:
        """List files in the library matching a pattern.

        Args:
            folder: Folder to search in (empty for root)
            pattern: Glob pattern for files

        Returns:
            List of relative file paths

        Raises:
            ContentError: If the library directory does not exist
        """
        base = self._validate_path(folder) if folder else self.content_path
        if not base.is_dir():
            raise ContentError(f"Content directory not found: {base}")
        return sorted(
            str(f.relative_to(self.content_path)) for f in base.rglob(pattern) if f.is_file()
        )
