import tempfile
from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from plm.config import DbSettings, ImageServiceConfig
from plm.database.db import Database
from plm.images.database.models import Base
from plm.images.database.store import DocumentStore
from plm.images.services import ImageService


@pytest.fixture
def db_engine():
    """In-memory SQLite engine for fast unit tests."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(db_engine):
    """Session fixture for tests that need direct DB access."""
    with Session(db_engine) as sess:
        yield sess


@pytest.fixture
def temp_dir():
    """Temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir: Path) -> ImageServiceConfig:
    return ImageServiceConfig(
        db=DbSettings(
            host="localhost",
            port=5984,
            name="plm-test",
            url=f"sqlite:///{temp_dir / 'plm-test.db'}",
        ),
        gen_checksums=True,
        max_update_attempts=5,
        query_workers=4,
    )


@pytest.fixture
def database(config: ImageServiceConfig):
    """File-backed database so worker threads share the same data."""
    db = Database(config.db.url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def store(database: Database) -> DocumentStore:
    return DocumentStore(database)


@pytest.fixture
def image_service(config: ImageServiceConfig, store: DocumentStore) -> ImageService:
    return ImageService(config, store)


@pytest.fixture
def make_image(temp_dir: Path):
    """Write a small solid-colour image and return its path."""
    def _make(
        name: str = "clooney.png",
        width: int = 48,
        height: int = 60,
        fmt: str = "PNG",
        color: tuple[int, int, int] = (200, 30, 30),
    ) -> Path:
        path = temp_dir / name
        Image.new("RGB", (width, height), color).save(path, format=fmt)
        return path

    return _make
