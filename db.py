from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from config import settings
from store import EntityStore


def build_engine(url: str, echo: bool = False):
    """Create an engine; SQLite URLs share a single connection across threads."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo)


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


def create_db_and_tables() -> None:
    """Create all tables in the database if they don't exist."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]


def get_store(session: SessionDep) -> EntityStore:
    return EntityStore(session)


StoreDep = Annotated[EntityStore, Depends(get_store)]
