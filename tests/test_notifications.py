"""
Email notification tests: templates, delivery modes and the notifications log.

Run with: pytest tests/test_notifications.py -v
"""

import smtplib
from datetime import datetime, timezone

import mongomock
import pytest

from database import NOTIFICATIONS
from notifications import EmailService, confirmation_email, run_safely, status_email, submission_type


def submission_doc(**content):
    return {
        "_id": "65f0c0ffee0000000000abcd",
        "submittedAt": datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc),
        "personalInfo": {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "zipCode": "12345"},
        "content": {"textStory": "", "audioRecording": {"hasRecording": False}, "uploadedFiles": [], **content},
        "procResponses": {"question1": "much_improved", "question2": ""},
        "consent": {"agreed": True, "continuedEngagement": False},
    }


class FakeSMTP:
    """Minimal smtplib.SMTP replacement that records what it was asked to do."""

    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def send_message(self, message):
        self.messages.append(message)


@pytest.fixture
def db():
    return mongomock.MongoClient().notifications_test


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestTemplates:
    def test_submission_type(self):
        doc = submission_doc(
            textStory="Words",
            audioRecording={"hasRecording": True},
            uploadedFiles=[{"filename": "a.png"}, {"filename": "b.png"}],
        )
        assert submission_type(doc) == "Audio Recording, File Upload (2 files), Text Story"
        assert submission_type(submission_doc()) == "Unknown"

    def test_confirmation_email(self):
        subject, body = confirmation_email(submission_doc(textStory="Words"), "abc123")
        assert subject == "Thank you for your submission - CORSEP Audio Form"
        assert body.startswith("Dear Ada Lovelace,")
        assert "- Submission ID: abc123" in body
        assert "- Submitted at: 2025-03-01 12:30 UTC" in body
        assert "- PROC Question 1: much_improved" in body
        assert "PROC Question 2" not in body

    def test_approved_email(self):
        subject, body = status_email("abc123", "approved")
        assert subject == "Submission Approved - CORSEP Audio Form"
        assert "has been approved" in body
        assert "Congratulations" in body

    def test_rejected_email(self):
        subject, body = status_email("abc123", "rejected")
        assert subject == "Submission Update - CORSEP Audio Form"
        assert "has been rejected" in body


class TestEmailService:
    def test_logs_without_smtp_host(self, db, fake_smtp):
        service = EmailService(db)

        record = service.send_confirmation(submission_doc(textStory="Words"), "abc123")

        assert record["status"] == "logged"
        assert fake_smtp.instances == []
        stored = db[NOTIFICATIONS].find_one({"submissionId": "abc123"})
        assert stored["type"] == "confirmation"
        assert stored["to"] == "ada@example.com"
        assert stored["status"] == "logged"

    def test_sends_over_smtp(self, db, fake_smtp):
        service = EmailService(db, smtp_host="mail.test", smtp_user="bot", smtp_pass="pw", sender="stories@test")

        record = service.send_status_update(submission_doc(), "approved")

        assert record["status"] == "sent"
        smtp = fake_smtp.instances[0]
        assert (smtp.host, smtp.port) == ("mail.test", 587)
        assert smtp.calls == ["starttls", ("login", "bot")]
        message = smtp.messages[0]
        assert message["To"] == "ada@example.com"
        assert message["From"] == "stories@test"
        assert message["Subject"] == "Submission Approved - CORSEP Audio Form"
        assert db[NOTIFICATIONS].find_one({"type": "approved"})["submissionId"] == "65f0c0ffee0000000000abcd"

    def test_failure_is_recorded_and_raised(self, db, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        service = EmailService(db, smtp_host="mail.test")

        with pytest.raises(ConnectionRefusedError):
            service.send_confirmation(submission_doc(textStory="Words"), "abc123")

        stored = db[NOTIFICATIONS].find_one({"submissionId": "abc123"})
        assert stored["status"] == "failed"
        assert "connection refused" in stored["error"]


def test_run_safely_swallows_errors(caplog):
    def explode(*args):
        raise RuntimeError("smtp down")

    run_safely(explode, "x")

    assert "Email notification failed" in caplog.text


def test_run_safely_passes_arguments():
    seen = []
    run_safely(lambda *args: seen.extend(args), "a", "b")
    assert seen == ["a", "b"]
