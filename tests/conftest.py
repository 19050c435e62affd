"""
Pytest configuration and fixtures.
"""
import os
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-lms")
os.environ.setdefault("ADMIN_COMMISSION_PERCENT", "10")

from app.auth.session import SessionContext, create_access_token  # noqa: E402
from app.config import init_config  # noqa: E402
from app.dependencies import get_db, get_receipt_storage  # noqa: E402
from app.enrollments.database import create_enrollment  # noqa: E402
from app.main import app  # noqa: E402

init_config()


class InMemoryReceiptStorage:
    """Receipt storage double that keeps images in a dict."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.metadata: dict[str, dict] = {}
        self.save_calls = 0

    async def save(self, filename: str, data: bytes, metadata: Optional[dict] = None) -> str:
        self.save_calls += 1
        file_id = f"file-{self.save_calls}"
        self.files[file_id] = data
        self.metadata[file_id] = {"filename": filename, **(metadata or {})}
        return file_id

    async def load(self, file_id: str) -> bytes:
        if file_id not in self.files:
            raise OSError(f"missing file {file_id}")
        return self.files[file_id]

    async def delete(self, file_id: str) -> None:
        self.files.pop(file_id, None)


@pytest.fixture
def db() -> Any:
    """Fresh in-memory Mongo database per test."""
    client = AsyncMongoMockClient()
    return client["lms_test"]


@pytest_asyncio.fixture
async def seeded_db(db: Any) -> Any:
    """Database with one student, one teacher and two courses."""
    await db.users.insert_many([
        {"user_id": "STU_1", "full_name": "Asha Verma", "email": "asha@example.com", "role": "student"},
        {"user_id": "STU_2", "full_name": "Ravi Kumar", "email": "ravi@example.com", "role": "student"},
    ])
    await db.courses.insert_many([
        {"course_id": "CRS_PY", "title": "Python Foundations", "price": 1999.0, "instructor_id": "TCH_1"},
        {"course_id": "CRS_FREE", "title": "Orientation", "price": 0, "instructor_id": "TCH_1"},
    ])
    return db


@pytest.fixture
def storage() -> InMemoryReceiptStorage:
    return InMemoryReceiptStorage()


@pytest.fixture
def admin_session() -> SessionContext:
    return SessionContext({"sub": "ADM_1", "role": "admin", "email": "admin@example.com"})


@pytest_asyncio.fixture
async def enrollment(seeded_db: Any) -> Any:
    """A PENDING enrollment of STU_1 in the paid course."""
    return await create_enrollment(seeded_db, "STU_1", "CRS_PY")


@pytest.fixture
def admin_token() -> str:
    return create_access_token("ADM_1", "admin", email="admin@example.com")


@pytest.fixture
def teacher_token() -> str:
    return create_access_token("TCH_1", "teacher", email="teacher@example.com")


@pytest.fixture
def student_token() -> str:
    return create_access_token("STU_1", "student", email="asha@example.com")


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(seeded_db: Any, storage: InMemoryReceiptStorage) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client against the app with the in-memory database and storage."""
    async def override_db():
        return seeded_db

    async def override_storage():
        return storage

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_receipt_storage] = override_storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

