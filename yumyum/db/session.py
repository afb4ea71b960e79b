from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine, SQLModel

from yumyum.core.config import get_settings

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory databases live on a single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))


def create_db_and_tables():
    """Create database tables."""
    # Register table models on the metadata
    from yumyum.models import metric  # noqa: F401

    SQLModel.metadata.create_all(engine)
