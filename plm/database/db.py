import threading
from contextlib import contextmanager, nullcontext
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from plm.images.database.models import Base


def _engine_for_url(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        # One shared connection, otherwise every thread sees its own empty database
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


class Database:
    """Engine plus session factory for one backing store."""

    def __init__(self, url: str | None = None, engine: Engine | None = None):
        if engine is None and url is None:
            raise ValueError("either url or engine is required")
        self.engine = engine if engine is not None else _engine_for_url(url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        # A single pooled connection carries one transaction at a time
        self._session_lock = threading.RLock() if isinstance(self.engine.pool, StaticPool) else None

    @contextmanager
    def create_session(self) -> Iterator[Session]:
        guard = self._session_lock if self._session_lock is not None else nullcontext()
        with guard, self._session_factory() as session:
            yield session

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
