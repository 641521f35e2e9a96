from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import logging
import os

from config import IS_SERVERLESS

logger = logging.getLogger(__name__)

Base = declarative_base()


def resolve_database_url() -> str:
    """Pick the database URL from the environment.

    Priority: Vercel Postgres > Local Postgres > SQLite (in-memory for serverless) > SQLite (file-based for local)
    """
    postgres_url = os.getenv("POSTGRES_URL")  # Vercel Postgres connection string
    database_url = os.getenv("DATABASE_URL")  # Generic database URL (can be Postgres or SQLite)

    if postgres_url:
        url = postgres_url
    elif database_url and database_url.startswith("postgres"):
        url = database_url
    elif IS_SERVERLESS:
        return "sqlite://"
    else:
        return database_url or "sqlite:///./marginalia.db"

    # SQLAlchemy prefers postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def create_db_engine(url: str):
    if url.startswith("postgresql"):
        logger.info("✅ Using PostgreSQL database")
        return create_engine(
            url,
            echo=False,
            pool_pre_ping=True,  # Verify connections before using them
            pool_recycle=300,  # Recycle connections after 5 minutes
        )

    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # All connections must share the same in-memory database
        logger.info("⚠️  Using in-memory SQLite (data will not persist)")
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=False)

    logger.info("✅ Using SQLite database (local development)")
    return create_engine(url, connect_args=connect_args)


def create_session_factory(bind):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


SQLALCHEMY_DATABASE_URL = resolve_database_url()
engine = create_db_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = create_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
