import asyncio
import os
import shutil
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

_TMP_DIR = Path(tempfile.mkdtemp(prefix="film-photo-api-tests-"))

# app 모듈 import 전에 설정
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR / 'test.db'}")
os.environ.setdefault("STORAGE_ROOT", str(_TMP_DIR / "uploads"))
os.environ.setdefault("LOG_DIR", "")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ORPHAN_SWEEP_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, async_session_maker, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.blob_store import BlobStore, get_blob_store  # noqa: E402
from app.services.idempotency import InMemoryIdempotencyStore, get_idempotency_store  # noqa: E402
from app.services.image_versions import DerivedImagePipeline  # noqa: E402
from tests.helpers import create_user, make_jpeg, register_and_login  # noqa: E402


async def _reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def _reset_storage() -> None:
    root = get_blob_store().root
    shutil.rmtree(root, ignore_errors=True)
    root.mkdir(parents=True, exist_ok=True)


@pytest.fixture(scope="session", autouse=True)
def remove_test_dir():
    yield
    shutil.rmtree(_TMP_DIR, ignore_errors=True)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def storage_root(tmp_path) -> Path:
    root = tmp_path / "store"
    root.mkdir()
    return root


@pytest.fixture
def blob_store(storage_root) -> BlobStore:
    return BlobStore(root=str(storage_root), io_timeout=5.0)


@pytest.fixture
def pipeline(blob_store) -> DerivedImagePipeline:
    return DerivedImagePipeline(blob_store, timeout=10.0)


@pytest_asyncio.fixture
async def db_session():
    """Fresh schema per test; yields an AsyncSession on the test database."""
    await _reset_schema()
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(db_session) -> User:
    return await create_user(db_session, "alice")


@pytest.fixture
def idempotency_store() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore(ttl_seconds=30)


@pytest.fixture
def client(idempotency_store):
    """TestClient on a clean database and storage root, lifespan included."""
    asyncio.run(_reset_schema())
    _reset_storage()
    app.dependency_overrides[get_idempotency_store] = lambda: idempotency_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client) -> dict:
    return register_and_login(client, "alice")
