"""Static chapter documents and book manifests.

Chapter and supplementary files are author-controlled HTML stored as
``<book_slug>/<slug>.html``; they are rendered as-is without sanitizing.
"""
from typing import Any, Dict, List, Optional, Protocol, Tuple
from dataclasses import dataclass, field
from pathlib import Path
import asyncio
import json
import logging
import re

import requests

from .errors import ContentLoadFailed, ContentNotFound, ContentUnavailable

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

TYPE_LABELS = {
    "bibliography": "References",
    "appendix": "Appendix",
    "glossary": "Glossary",
    "index": "Index",
    "other": "Supplementary",
}


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and bool(_SLUG_RE.match(slug)) and ".." not in slug


@dataclass
class ChapterEntry:
    slug: str
    title: str
    number: int
    status: str = "ready"  # ready | draft | coming_soon

    @property
    def readable(self) -> bool:
        return self.status != "coming_soon"


@dataclass
class SupplementaryResource:
    slug: str
    title: str
    type: str = "other"

    @property
    def label(self) -> str:
        return TYPE_LABELS.get(self.type, "Supplementary")


@dataclass
class Manifest:
    version: int
    book: Dict[str, Any] = field(default_factory=dict)
    chapters: List[ChapterEntry] = field(default_factory=list)
    supplementary: List[SupplementaryResource] = field(default_factory=list)

    def find_chapter(self, slug: str) -> Optional[ChapterEntry]:
        return next((c for c in self.chapters if c.slug == slug), None)

    def find_supplementary(self, slug: str) -> Optional[SupplementaryResource]:
        return next((s for s in self.supplementary if s.slug == slug), None)

    def readable_chapters(self) -> List[ChapterEntry]:
        return [c for c in self.chapters if c.readable]

    def neighbours(self, slug: str) -> Tuple[Optional[ChapterEntry], Optional[ChapterEntry]]:
        """Previous and next chapters around ``slug``, hiding ones not yet readable."""
        ordered = sorted(self.chapters, key=lambda c: c.number)
        index = next((i for i, c in enumerate(ordered) if c.slug == slug), -1)
        if index < 0:
            return None, None
        prev_chapter = ordered[index - 1] if index > 0 else None
        next_chapter = ordered[index + 1] if index < len(ordered) - 1 else None
        if prev_chapter is not None and not prev_chapter.readable:
            prev_chapter = None
        if next_chapter is not None and not next_chapter.readable:
            next_chapter = None
        return prev_chapter, next_chapter


def _chapter(raw: Dict[str, Any]) -> ChapterEntry:
    return ChapterEntry(
        slug=str(raw["slug"]),
        title=str(raw.get("title", raw["slug"])),
        number=int(raw.get("number", 0)),
        status=str(raw.get("status", "ready")),
    )


def _supplementary(raw: Dict[str, Any]) -> SupplementaryResource:
    return SupplementaryResource(
        slug=str(raw["slug"]),
        title=str(raw.get("title", raw["slug"])),
        type=str(raw.get("type", "other")),
    )


def parse_manifest(raw: Any) -> Manifest:
    """Parse a manifest in either on-disk format.

    v1 is a bare list of chapters (or an object with ``chapters``); v2 adds
    ``book`` metadata and ``supplementary`` resources.
    """
    if isinstance(raw, list):
        return Manifest(version=1, chapters=[_chapter(c) for c in raw])
    if not isinstance(raw, dict):
        raise ValueError("Manifest must be a list or an object")
    chapters = [_chapter(c) for c in raw.get("chapters") or []]
    book = raw.get("book") or {}
    if raw.get("version") == 2:
        supplementary = [_supplementary(s) for s in raw.get("supplementary") or []]
        return Manifest(version=2, book=book, chapters=chapters, supplementary=supplementary)
    return Manifest(version=1, book=book, chapters=chapters)


class DocumentSource(Protocol):
    async def fetch(self, book_slug: str, content_slug: str) -> str:
        """Return the document markup or raise ContentUnavailable."""
        ...


class DirectorySource:
    """Documents on local disk, laid out as ``root/<book>/<slug>.html``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, book_slug: str, content_slug: str) -> Path:
        if not (is_valid_slug(book_slug) and is_valid_slug(content_slug)):
            raise ContentNotFound(f"Invalid document slug: {book_slug}/{content_slug}")
        return self.root / book_slug / f"{content_slug}.html"

    def read(self, book_slug: str, content_slug: str) -> str:
        path = self.path_for(book_slug, content_slug)
        if not path.is_file():
            raise ContentNotFound(f"No document at {path}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ContentLoadFailed(f"Could not read {path}: {exc}") from exc

    async def fetch(self, book_slug: str, content_slug: str) -> str:
        return await asyncio.to_thread(self.read, book_slug, content_slug)

    def load_manifest(self, book_slug: str) -> Optional[Manifest]:
        if not is_valid_slug(book_slug):
            return None
        path = self.root / book_slug / "manifest.json"
        try:
            return parse_manifest(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(f"Could not load manifest for {book_slug}: {exc}")
            return None


class HttpSource:
    """Documents served over HTTP at ``<base_url>/books/<book>/<slug>.html``."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def read(self, book_slug: str, content_slug: str) -> str:
        if not (is_valid_slug(book_slug) and is_valid_slug(content_slug)):
            raise ContentNotFound(f"Invalid document slug: {book_slug}/{content_slug}")
        url = f"{self.base_url}/books/{book_slug}/{content_slug}.html"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ContentLoadFailed(f"Request to {url} failed: {exc}") from exc
        if response.status_code == 404:
            raise ContentNotFound(f"No document at {url}")
        if not response.ok:
            raise ContentLoadFailed(f"{url} returned HTTP {response.status_code}")
        return response.text

    async def fetch(self, book_slug: str, content_slug: str) -> str:
        return await asyncio.to_thread(self.read, book_slug, content_slug)


@dataclass
class LoadResult:
    book_slug: str
    content_slug: str
    html: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ContentLoader:
    """Fetches one document and reports success or a terminal error message."""

    def __init__(self, source: DocumentSource):
        self.source = source

    async def load(self, book_slug: str, content_slug: str) -> LoadResult:
        try:
            html = await self.source.fetch(book_slug, content_slug)
        except ContentUnavailable as exc:
            logger.warning(f"Content {book_slug}/{content_slug} unavailable: {exc}")
            return LoadResult(book_slug, content_slug, error=exc.message)
        except Exception as exc:
            logger.error(f"Unexpected error loading {book_slug}/{content_slug}: {exc}")
            return LoadResult(book_slug, content_slug, error=ContentLoadFailed.message)
        return LoadResult(book_slug, content_slug, html=html)
