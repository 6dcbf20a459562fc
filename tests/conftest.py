"""
Pytest configuration for the story submission tests.

- fast (default): pure unit tests
- medium: API TestClient tests; MongoDB is replaced by mongomock, uploads go
  to tmp_path and email delivery is recorded in memory

Run with: pytest -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from auth import create_access_token, hash_password
from database import ADMINS, SUBMISSIONS, create_document, ensure_indexes, get_db
from main import app
from notifications import get_email_service
from schemas import Consent, Content, PersonalInfo, Submission
from storage import UploadStorage, get_upload_storage


def pytest_collection_modifyitems(config, items):
    """Unmarked tests belong to the fast tier."""
    for item in items:
        if list(item.iter_markers(name="medium")) or list(item.iter_markers(name="fast")):
            continue
        item.add_marker(pytest.mark.fast)


class RecordingEmailService:
    """Stands in for EmailService; optionally fails every send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def _record(self, kind, to, submission_id):
        if self.fail:
            raise ConnectionRefusedError("SMTP server unavailable")
        self.sent.append({"type": kind, "to": to, "submissionId": submission_id})

    def send_confirmation(self, submission, submission_id):
        self._record("confirmation", submission["personalInfo"]["email"], submission_id)

    def send_status_update(self, submission, status):
        self._record(status, submission["personalInfo"]["email"], str(submission["_id"]))


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mongo_db():
    """Fresh in-memory database with production indexes."""
    db = mongomock.MongoClient().stories_test
    ensure_indexes(db)
    return db


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(mongo_db, email_service, upload_dir):
    """Create a test client with overridden dependencies."""
    app.dependency_overrides[get_db] = lambda: mongo_db
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_upload_storage] = lambda: UploadStorage(upload_dir)

    yield TestClient(app)

    # Clean up overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def make_admin(mongo_db):
    def _make_admin(username="reviewer", password="s3cret-pass", is_active=True):
        admin_id = create_document(mongo_db, ADMINS, {
            "username": username,
            "email": f"{username}@example.org",
            "password": hash_password(password),
            "role": "admin",
            "isActive": is_active,
        })
        return mongo_db[ADMINS].find_one({"username": username}) | {"id": admin_id}
    return _make_admin


@pytest.fixture
def admin(make_admin):
    return make_admin()


def bearer(admin_doc, expires_delta=None):
    token = create_access_token(
        {"sub": str(admin_doc["_id"]), "username": admin_doc["username"]},
        expires_delta=expires_delta,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token_for():
    return bearer


@pytest.fixture
def auth_headers(admin):
    return bearer(admin)


@pytest.fixture
def make_submission(mongo_db):
    """Insert a submission document and return its id."""
    base_time = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make_submission(
        first_name="Ada",
        last_name="Lovelace",
        email=None,
        zip_code="12345",
        status="pending",
        text_story="My story",
        audio_filename="",
    ):
        counter["n"] += 1
        content = Content(text_story=text_story)
        if audio_filename:
            content.audio_recording.filename = audio_filename
            content.audio_recording.has_recording = True
            content.audio_recording.duration = 42
            content.audio_recording.size = 2048
        submission = Submission(
            submitted_at=base_time + timedelta(minutes=counter["n"]),
            personal_info=PersonalInfo(
                first_name=first_name,
                last_name=last_name,
                email=email or f"{first_name.lower()}{counter['n']}@example.com",
                zip_code=zip_code,
            ),
            content=content,
            consent=Consent(agreed=True),
            status=status,
        )
        return create_document(mongo_db, SUBMISSIONS, submission)

    return _make_submission
