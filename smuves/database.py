"""SMUVES — Snapshot Store Engine & Sessions.

One engine per process. SQLite backs local runs, serverless deploys and
tests; PostgreSQL backs everything else.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from smuves.config import settings
from smuves.core.logging import get_logger

logger = get_logger("database")

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _mask_url(url: str) -> str:
    """Hide the password in a DB URL before it reaches the logs."""
    scheme, sep, rest = url.partition("://")
    credentials, at, host = rest.rpartition("@")
    if not at or ":" not in credentials:
        return url
    user = credentials.split(":", 1)[0]
    return f"{scheme}{sep}{user}:****@{host}"


def build_engine(url: str) -> Engine:
    """Engine for ``url``, tuned per backend.

    In-memory SQLite shares one connection across threads, otherwise every
    session would see its own empty database.
    """
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in IN_MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
        logger.info(f"📦 Snapshot store: SQLite ({url})")
    else:
        kwargs = {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_recycle": 300,
        }
        logger.info(f"🐘 Snapshot store: PostgreSQL ({_mask_url(url)})")
    return create_engine(url, echo=False, **kwargs)


def create_tables(target: Engine) -> None:
    # table classes register themselves on import
    import smuves.models.snapshot_models  # noqa: F401

    SQLModel.metadata.create_all(target)


engine = build_engine(settings.effective_database_url)


def test_connection() -> bool:
    """Run SELECT 1 against the snapshot store."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Snapshot store reachable")
        return True
    except Exception as e:
        logger.error(f"❌ Snapshot store unreachable: {e}")
        return False


def init_db() -> None:
    logger.info("🔨 Creating snapshot tables...")
    create_tables(engine)
    logger.info("✅ Snapshot tables ready")


def get_session():
    """FastAPI dependency yielding a session on the shared engine."""
    with Session(engine) as session:
        yield session
