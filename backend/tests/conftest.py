"""Pytest fixtures shared by the unit and integration suites.

Provides reusable test fixtures for:
- Database session on in-memory SQLite (tables created per test)
- Test users for every role, with one mentor assigned to one student
- Authorization headers carrying real JWTs
- An in-memory object storage and a change feed that records what it publishes
- A TestClient with the storage, feed and database dependencies overridden

Usage:
    def test_list_documents(client, student, auth_headers):
        response = client.get("/api/v1/documents", headers=auth_headers(student))
        assert response.status_code == 200
"""

import hashlib
import sys
import os
from io import BytesIO
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper-secret-key-32-chars-long")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("RATE_LIMIT_DISABLED", "true")
os.environ.setdefault("MINIO_ROOT_USER", "minioadmin")
os.environ.setdefault("MINIO_ROOT_PASSWORD", "minioadmin")
os.environ.setdefault("MINIO_ENDPOINT", "localhost:9000")
os.environ.setdefault("MINIO_BUCKET", "test-bucket")
os.environ.setdefault("LOG_JSON", "false")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from typing import BinaryIO, Callable, Dict, Generator, List, Optional
from uuid import UUID

from database import SessionLocal, engine, get_db as database_get_db
from dependencies import get_change_feed, get_storage_adapter
from domain.documents.ports.object_storage_port import ObjectStoragePort, StoredFile
from infrastructure.storage.s3_storage_adapter import build_storage_key
from models.base import Base
from models.assignment import Assignment
from models.category import Category
from models.user import User
from auth.password import hash_password
from auth.jwt import create_access_token
from realtime.change_feed import ChangeFeed
from realtime.events import ChangeEvent

TEST_PASSWORD = "testpass123"


class InMemoryStorage(ObjectStoragePort):
    """ObjectStoragePort keeping files in a dict."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    async def store_file(self, file: BinaryIO, owner_id: UUID, filename: str, mime_type: str) -> StoredFile:
        content = file.read()
        if not content:
            raise ValueError("Cannot store empty file")
        sha256 = hashlib.sha256(content).hexdigest()
        key = build_storage_key(owner_id, sha256, filename)
        self.objects[key] = content
        return StoredFile(storage_key=key, sha256=sha256, size_bytes=len(content), mime_type=mime_type)

    async def retrieve_file(self, storage_key: str) -> BinaryIO:
        if storage_key not in self.objects:
            raise FileNotFoundError(storage_key)
        return BytesIO(self.objects[storage_key])

    async def delete_file(self, storage_key: str) -> bool:
        return self.objects.pop(storage_key, None) is not None

    async def file_exists(self, storage_key: str) -> bool:
        return storage_key in self.objects

    async def generate_presigned_url(
        self, storage_key: str, expires_in_seconds: int = 3600, download_name: Optional[str] = None
    ) -> str:
        if storage_key not in self.objects:
            raise FileNotFoundError(storage_key)
        url = f"https://storage.test/{storage_key}?expires={expires_in_seconds}"
        return f"{url}&name={download_name}" if download_name else url


class RecordingChangeFeed(ChangeFeed):
    """ChangeFeed that also remembers every published event."""

    def __init__(self, queue_size: int = 1000):
        super().__init__(queue_size)
        self.published: List[ChangeEvent] = []

    def publish(self, event, document_id, student_id, record=None) -> ChangeEvent:
        change = super().publish(event, document_id=document_id, student_id=student_id, record=record)
        self.published.append(change)
        return change


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _make_user(db: Session, email: str, full_name: str, role: str) -> User:
    user = User(
        email=email,
        full_name=full_name,
        role=role,
        password_hash=hash_password(TEST_PASSWORD),
        status="ACTIVE"
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db_session: Session) -> User:
    return _make_user(db_session, "admin@test.edu", "Admin User", "admin")


@pytest.fixture
def student(db_session: Session) -> User:
    return _make_user(db_session, "asha@test.edu", "Asha Rao", "student")


@pytest.fixture
def other_student(db_session: Session) -> User:
    return _make_user(db_session, "ben@test.edu", "Ben Okafor", "student")


@pytest.fixture
def mentor(db_session: Session, student: User) -> User:
    """Mentor assigned to ``student`` (not to ``other_student``)."""
    user = _make_user(db_session, "mentor@test.edu", "Meera Iyer", "mentor")
    db_session.add(Assignment(mentor_id=user.id, student_id=student.id))
    db_session.commit()
    return user


@pytest.fixture
def unassigned_mentor(db_session: Session) -> User:
    return _make_user(db_session, "loner@test.edu", "Luca Rossi", "mentor")


@pytest.fixture
def category(db_session: Session) -> Category:
    category = Category(name="Project Report", description="Academic project reports")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    """Build an Authorization header for a user."""
    def build(user: User) -> Dict[str, str]:
        token = create_access_token(user_id=user.id, role=user.role, email=user.email)
        return {"Authorization": f"Bearer {token}"}
    return build


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def change_feed() -> RecordingChangeFeed:
    return RecordingChangeFeed()


@pytest.fixture(scope="function")
def client(db_session: Session, storage: InMemoryStorage, change_feed: RecordingChangeFeed):
    """Create an unauthenticated test client.

    Pass headers=auth_headers(user) per request to authenticate.
    """
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[get_storage_adapter] = lambda: storage
    app.dependency_overrides[get_change_feed] = lambda: change_feed

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def upload(client: TestClient, auth_headers):
    """Upload a file as a student; returns the response."""
    def do_upload(
        user: User,
        filename: str = "report.pdf",
        content: bytes = b"%PDF-1.4\ntest content\n",
        mime_type: str = "application/pdf",
        category_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ):
        data = {}
        if category_id:
            data["category_id"] = str(category_id)
        if description is not None:
            data["description"] = description
        return client.post(
            "/api/v1/documents",
            files={"file": (filename, content, mime_type)},
            data=data,
            headers=auth_headers(user),
        )
    return do_upload


@pytest.fixture
def make_record():
    """Factory for hydrated DocumentRecord values (no database involved)."""
    from datetime import datetime, timezone
    from uuid import uuid4
    from documents.schemas import CategoryRef, DocumentRecord, SubmitterRef

    owner = SubmitterRef(id=uuid4(), full_name="Asha Rao", email="asha@test.edu")

    def build(
        file_name: str = "report.pdf",
        status: str = "pending",
        created: str = "2024-01-01T10:00:00",
        category: Optional[str] = "Project Report",
        id: Optional[UUID] = None,
        updated: Optional[str] = None,
        **fields,
    ) -> DocumentRecord:
        created_at = datetime.fromisoformat(created).replace(tzinfo=timezone.utc)
        updated_at = (
            datetime.fromisoformat(updated).replace(tzinfo=timezone.utc) if updated else created_at
        )
        category_ref = CategoryRef(id=uuid4(), name=category) if category else None
        return DocumentRecord(
            id=id or uuid4(),
            student_id=owner.id,
            category_id=category_ref.id if category_ref else None,
            file_name=file_name,
            file_path=f"{owner.id}/1700000000000_deadbeef.pdf",
            mime_type="application/pdf",
            size_bytes=1024,
            status=status,
            created_at=created_at,
            updated_at=updated_at,
            category=category_ref,
            submitter=owner,
            **fields,
        )

    return build
