"""
Shared fixtures: a throwaway SQLite database and content root per test.
"""
from datetime import datetime
from typing import Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy import select

from artshelf.database import create_engine_for, create_session_factory, init_db
from artshelf.models import Artist, Artwork, Image


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def content_root(tmp_path):
    root = tmp_path / "content"
    root.mkdir()
    return root


@pytest.fixture
def make_artwork(session_factory, content_root):
    """Create an artwork, its image rows and (optionally) its files on disk."""

    async def _make(
        external_id: Optional[str] = "a1",
        user_id: Optional[str] = "u1",
        artist_name: str = "Alice",
        files: Sequence[str] = ("a1_p0.jpg",),
        source_dir: str = "old",
        title: str = "",
        description: Optional[str] = None,
        source_date: Optional[datetime] = None,
        size: int = 100,
        write_files: bool = True,
        artwork_id: Optional[int] = None,
    ) -> int:
        async with session_factory() as db:
            artist = None
            if user_id is not None:
                result = await db.execute(select(Artist).where(Artist.user_id == user_id))
                artist = result.scalar_one_or_none()
                if artist is None:
                    artist = Artist(user_id=user_id, name=artist_name)
                    db.add(artist)

            artwork = Artwork(
                title=title,
                description=description,
                external_id=external_id,
                source_date=source_date,
                artist=artist
            )
            if artwork_id is not None:
                artwork.id = artwork_id
            db.add(artwork)

            source_abs = content_root / source_dir if source_dir else content_root
            for index, name in enumerate(files):
                rel = f"/{source_dir}/{name}" if source_dir else f"/{name}"
                artwork.images.append(Image(path=rel, size=size, sort_order=index))
                if write_files:
                    source_abs.mkdir(parents=True, exist_ok=True)
                    (source_abs / name).write_bytes(b"x" * size)

            await db.commit()
            return artwork.id

    return _make


@pytest.fixture
def image_paths(session_factory):
    """Current image paths of an artwork, in display order."""

    async def _paths(artwork_id: int) -> list[str]:
        async with session_factory() as db:
            result = await db.execute(
                select(Image.path)
                .where(Image.artwork_id == artwork_id)
                .order_by(Image.sort_order)
            )
            return [row[0] for row in result.all()]

    return _paths
