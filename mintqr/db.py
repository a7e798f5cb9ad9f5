# mintqr/db.py
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

DEFAULT_DATABASE_URL = "sqlite:///./data.sqlite"


def _normalize_db_url(url: str) -> str:
    # Heroku/Railway style postgres:// is not accepted by SQLAlchemy
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(database_url: str = "") -> Engine:
    url = _normalize_db_url(database_url or DEFAULT_DATABASE_URL)

    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    return create_engine(url, echo=False, **kwargs)


def init_db(engine: Engine) -> None:
    # only creates missing tables, never drops data
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
