from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from typing import List, Optional
from contextlib import asynccontextmanager
from sqlalchemy.orm import Session
import logging

# Import our models and database
import crud
from analytics import collect_analytics
from config import BOOKS_DIR, IS_SERVERLESS
from database import Base, engine, get_db
from identity import get_current_user_id
from models import schema  # noqa: F401  (registers tables on Base)
from models.reading import (
    BookOverview,
    Comment,
    CommentCreate,
    CommentResolve,
    CommentWrite,
    ProgressUpsert,
    ProgressWrite,
    ReadingProgress,
    ReadingSession,
    SessionClose,
    SessionOpen,
    SessionOpenWrite,
)
from reader.content import DirectorySource
from reader.errors import ContentLoadFailed, ContentNotFound

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

documents = DirectorySource(BOOKS_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events"""
    # Create database tables (skip in serverless - filesystem is read-only)
    if not IS_SERVERLESS:
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logger.warning(f"Could not create database tables: {e}")
    logger.info(f"Serving chapter documents from {BOOKS_DIR}")

    yield  # Server is running


# Initialize FastAPI app with optional lifespan
if IS_SERVERLESS:
    # In serverless, lifespan events may not work reliably
    app = FastAPI(
        title="Marginalia Book Review",
        lifespan=None,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
else:
    app = FastAPI(title="Marginalia Book Review", lifespan=lifespan)

# Enable CORS for frontend connection
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_book_access(db: Session, user_id: str, book_id: str):
    """Readers only see books they were invited to; anything else looks missing."""
    if not crud.has_book_access(db, user_id, book_id):
        raise HTTPException(status_code=404, detail="Book not found")


# -------------------- Documents --------------------

@app.get("/books/{book_slug}/{content_slug}.html", response_class=HTMLResponse)
async def get_document(book_slug: str, content_slug: str):
    """Serve a static chapter or supplementary document"""
    try:
        html = await documents.fetch(book_slug, content_slug)
    except ContentNotFound:
        raise HTTPException(status_code=404, detail="Content not found")
    except ContentLoadFailed as e:
        logger.error(f"Document {book_slug}/{content_slug} failed to load: {e}")
        raise HTTPException(status_code=500, detail="Failed to load content")
    return HTMLResponse(html)


@app.get("/api/books/{book_slug}", response_model=BookOverview)
def get_book_overview(
    book_slug: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Chapter list with the caller's progress; the host mounts chapter views from this"""
    book = crud.get_book_by_slug(db, book_slug)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    require_book_access(db, user_id, book.id)
    return crud.get_book_overview(db, book, user_id)


@app.get("/api/books/{book_slug}/manifest")
def get_manifest(
    book_slug: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    book = crud.get_book_by_slug(db, book_slug)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    require_book_access(db, user_id, book.id)
    manifest = documents.load_manifest(book_slug)
    if manifest is None:
        raise HTTPException(status_code=404, detail="Manifest not found")
    return manifest


# -------------------- Progress --------------------

@app.get("/api/progress/{book_id}/{chapter_slug}", response_model=Optional[ReadingProgress])
def get_progress(
    book_id: str,
    chapter_slug: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_book_access(db, user_id, book_id)
    return crud.get_progress(db, book_id, chapter_slug, user_id)


@app.put("/api/progress", response_model=ReadingProgress)
def upsert_progress(
    body: ProgressUpsert,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Upsert the caller's progress for one chapter"""
    require_book_access(db, user_id, body.book_id)
    return crud.upsert_progress(db, ProgressWrite(**body.model_dump(), user_id=user_id))


# -------------------- Sessions --------------------

@app.post("/api/sessions", response_model=ReadingSession)
def open_session(
    body: SessionOpen,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_book_access(db, user_id, body.book_id)
    return crud.create_session(db, SessionOpenWrite(**body.model_dump(), user_id=user_id))


@app.patch("/api/sessions/{session_id}", response_model=ReadingSession)
def close_session(
    session_id: str,
    body: SessionClose,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return crud.close_session(db, session_id, user_id, body.ended_at, body.max_scroll_pct)
    except crud.RowNotFound:
        raise HTTPException(status_code=404, detail="Reading session not found")


# -------------------- Comments --------------------

@app.get("/api/comments", response_model=List[Comment])
def list_comments(
    book_id: str,
    chapter_slug: Optional[str] = None,
    resolved: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_book_access(db, user_id, book_id)
    return crud.list_comments(db, book_id, chapter_slug, resolved)


@app.post("/api/comments", response_model=Comment)
def create_comment(
    body: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_book_access(db, user_id, body.book_id)
    try:
        return crud.create_comment(db, CommentWrite(**body.model_dump(), user_id=user_id))
    except crud.RowNotFound:
        raise HTTPException(status_code=404, detail="Parent comment not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.patch("/api/comments/{comment_id}", response_model=Comment)
def resolve_comment(
    comment_id: str,
    body: CommentResolve,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Mark a comment resolved or unresolved; any reader of the book may do this"""
    try:
        comment = crud.get_comment(db, comment_id)
    except crud.RowNotFound:
        raise HTTPException(status_code=404, detail="Comment not found")
    require_book_access(db, user_id, comment.book_id)
    return crud.set_comment_resolved(db, comment_id, body.is_resolved)


# -------------------- Analytics --------------------

@app.get("/api/admin/analytics/{book_id}")
def get_analytics(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not crud.is_admin(db, user_id):
        raise HTTPException(status_code=403, detail="Admins only")
    if crud.get_book(db, book_id) is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return collect_analytics(db, book_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
