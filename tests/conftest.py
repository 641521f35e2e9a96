import sys
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

import pytest

# Add backend directory to path
backend_dir = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

from database import Base, create_db_engine, create_session_factory  # noqa: E402
from models import schema  # noqa: E402
from reader.comments import Selection  # noqa: E402
from reader.errors import PersistenceError  # noqa: E402
from reader.store import SqlStore  # noqa: E402

BOOK_SLUG = "the-book"

CHAPTER_HTML = (
    '<h1 id="title">Chapter One</h1>'
    "<p>It was a bright cold day in April.</p>"
    '<p id="fox">Then the quick fox jumped over the lazy dog.</p>'
    "<ul><li><p>A nested list paragraph.</p></li></ul>"
)


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeViewport:
    def __init__(self, width: int = 1280, height: int = 800, doc_height: float = 4800):
        self.width = width
        self.height = height
        self.user_agent = "pytest-browser/1.0"
        self.doc_height = doc_height
        self.scrolled_to: List[float] = []
        self.selection: Optional[Selection] = None

    def document_height(self) -> float:
        return self.doc_height

    def scroll_to(self, offset: float) -> None:
        self.scrolled_to.append(offset)

    def get_selection(self) -> Optional[Selection]:
        return self.selection

    def offset_for(self, pct: float) -> float:
        return (self.doc_height - self.height) * pct / 100


class RecordingStore:
    """Wraps a store, records each call, and fails the named operations."""

    def __init__(self, inner, fail=()):
        self.inner = inner
        self.fail = set(fail)
        self.calls: List[str] = []

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def __getattr__(self, name):
        target = getattr(self.inner, name)

        async def call(*args, **kwargs):
            self.calls.append(name)
            if name in self.fail:
                raise PersistenceError(f"{name} unavailable (offline)")
            return await target(*args, **kwargs)

        return call


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def viewport() -> FakeViewport:
    return FakeViewport()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session_factory) -> SqlStore:
    return SqlStore(session_factory)


@pytest.fixture
def library(session_factory):
    db = session_factory()
    alice = schema.User(email="alice@example.com", display_name="Alice")
    bob = schema.User(email="bob@example.com", display_name="Bob")
    admin = schema.User(email="editor@example.com", is_admin=True)
    outsider = schema.User(email="mallory@example.com")
    book = schema.Book(slug=BOOK_SLUG, title="The Book")
    db.add_all([alice, bob, admin, outsider, book])
    db.flush()
    db.add_all(
        [
            schema.Chapter(book_id=book.id, slug="chapter-1", number=1, title="Beginnings", status="ready"),
            schema.Chapter(book_id=book.id, slug="chapter-2", number=2, title="Middles", status="draft"),
            schema.Chapter(book_id=book.id, slug="chapter-3", number=3, title="Endings", status="coming_soon"),
            schema.BookAccess(book_id=book.id, user_id=alice.id),
            schema.BookAccess(book_id=book.id, user_id=bob.id),
            schema.BookAccess(book_id=book.id, user_id=admin.id, role="admin"),
        ]
    )
    db.commit()
    ids = SimpleNamespace(
        book_id=book.id,
        book_slug=BOOK_SLUG,
        alice=alice.id,
        bob=bob.id,
        admin=admin.id,
        outsider=outsider.id,
    )
    db.close()
    return ids


@pytest.fixture
def books_dir(tmp_path) -> Path:
    root = tmp_path / "books"
    book = root / BOOK_SLUG
    book.mkdir(parents=True)
    (book / "chapter-1.html").write_text(CHAPTER_HTML, encoding="utf-8")
    (book / "glossary.html").write_text("<dl><dt>Fox</dt><dd>A quick animal.</dd></dl>", encoding="utf-8")
    return root
