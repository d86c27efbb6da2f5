from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from errbook.core.config import get_settings
from errbook.infra.db.base import Base

DEFAULT_DATABASE_PATH = Path(__file__).resolve().parents[3] / "errbook.db"


def resolve_database_url(raw_url: str | None) -> str:
    """Default to ``backend/errbook.db``; make relative SQLite paths absolute."""
    if not raw_url:
        return f"sqlite:///{DEFAULT_DATABASE_PATH}"

    url = make_url(raw_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return raw_url
    return url.set(database=str(Path(url.database).resolve())).render_as_string(hide_password=False)


def build_engine(database_url: str | None) -> Engine:
    url = resolve_database_url(database_url)
    if not url.startswith("sqlite"):
        return create_engine(url)

    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args={"check_same_thread": False})


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return build_engine(get_settings().database_url)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine | None = None) -> None:
    # Models must be imported so their tables are registered on the metadata.
    from errbook.infra.db import models as _models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
