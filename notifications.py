"""
Email notifications

Messages go out over SMTP when SMTP_HOST is configured and are only logged
otherwise. Every attempt is recorded in the "notifications" collection.
Callers schedule these through FastAPI background tasks so delivery never
holds up or fails a request.
"""

import logging
import smtplib
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Callable, Optional

from pymongo.database import Database

import config
from database import NOTIFICATIONS, db

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nThe CORSEP Team"


def submission_type(submission: dict) -> str:
    content = submission.get("content", {})
    types = []
    if content.get("audioRecording", {}).get("hasRecording"):
        types.append("Audio Recording")
    files = content.get("uploadedFiles") or []
    if files:
        types.append(f"File Upload ({len(files)} files)")
    if (content.get("textStory") or "").strip():
        types.append("Text Story")
    return ", ".join(types) or "Unknown"


def confirmation_email(submission: dict, submission_id: str):
    info = submission["personalInfo"]
    consent = submission.get("consent", {})
    proc = submission.get("procResponses", {})
    lines = [
        f"Dear {info['firstName']} {info['lastName']},",
        "",
        "Thank you for submitting your story through our audio form. "
        "We have received your submission and will review it shortly.",
        "",
        "Submission Details:",
        f"- Submission ID: {submission_id}",
        f"- Name: {info['firstName']} {info['lastName']}",
        f"- Email: {info['email']}",
        f"- Zip Code: {info['zipCode']}",
        f"- Submission Type: {submission_type(submission)}",
        f"- Submitted at: {submission['submittedAt']:%Y-%m-%d %H:%M UTC}",
        f"- Consent Agreed: {'Yes' if consent.get('agreed') else 'No'}",
        f"- Continued Engagement: {'Yes' if consent.get('continuedEngagement') else 'No'}",
    ]
    if proc.get("question1"):
        lines.append(f"- PROC Question 1: {proc['question1']}")
    if proc.get("question2"):
        lines.append(f"- PROC Question 2: {proc['question2']}")
    lines += [
        "",
        "Our team will review your submission and get back to you within 2-3 business days.",
        "",
        SIGNATURE,
    ]
    return "Thank you for your submission - CORSEP Audio Form", "\n".join(lines)


def status_email(submission_id: str, status: str):
    if status == "approved":
        subject = "Submission Approved - CORSEP Audio Form"
        message = (
            "Congratulations! Your story has been approved and may be featured "
            "in our upcoming project. You may be contacted for additional information."
        )
    else:
        subject = "Submission Update - CORSEP Audio Form"
        message = (
            "While we cannot use your story for this project, "
            "we appreciate your participation."
        )
    body = "\n".join([
        "Dear Participant,",
        "",
        f"Your submission (ID: {submission_id}) has been {status}.",
        "",
        message,
        "",
        "Thank you for your participation in the CORSEP project.",
        "",
        SIGNATURE,
    ])
    return subject, body


class EmailService:
    def __init__(
        self,
        database: Database,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_pass: str = "",
        starttls: bool = True,
        sender: str = "",
    ):
        self.database = database
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.starttls = starttls
        self.sender = sender

    def _smtp_send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=8) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.smtp_user and self.smtp_pass:
                smtp.login(self.smtp_user, self.smtp_pass)
            smtp.send_message(message)

    def send(self, kind: str, to: str, subject: str, body: str, submission_id: Optional[str] = None) -> dict:
        record = {
            "emailId": f"email_{uuid.uuid4().hex[:12]}",
            "type": kind,
            "to": to,
            "subject": subject,
            "submissionId": submission_id,
            "createdAt": datetime.now(timezone.utc),
        }

        if not self.smtp_host:
            logger.info("Email (%s) to %s not delivered, SMTP_HOST unset: %s", kind, to, subject)
            record["status"] = "logged"
            self.database[NOTIFICATIONS].insert_one(record)
            return record

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        try:
            self._smtp_send(message)
        except (smtplib.SMTPException, OSError) as exc:
            record["status"] = "failed"
            record["error"] = str(exc)
            self.database[NOTIFICATIONS].insert_one(record)
            raise

        logger.info("Email (%s) sent to %s", kind, to)
        record["status"] = "sent"
        self.database[NOTIFICATIONS].insert_one(record)
        return record

    def send_confirmation(self, submission: dict, submission_id: str) -> dict:
        subject, body = confirmation_email(submission, submission_id)
        return self.send("confirmation", submission["personalInfo"]["email"], subject, body, submission_id)

    def send_status_update(self, submission: dict, status: str) -> dict:
        submission_id = str(submission.get("_id") or submission.get("id"))
        subject, body = status_email(submission_id, status)
        return self.send(status, submission["personalInfo"]["email"], subject, body, submission_id)


def run_safely(func: Callable, *args) -> None:
    """Background-task wrapper: email failures are logged, never raised."""
    try:
        func(*args)
    except Exception:
        logger.exception("Email notification failed (%s)", getattr(func, "__name__", func))


_email_service = EmailService(
    db,
    smtp_host=config.SMTP_HOST,
    smtp_port=config.SMTP_PORT,
    smtp_user=config.SMTP_USER,
    smtp_pass=config.SMTP_PASS,
    starttls=config.SMTP_STARTTLS,
    sender=config.EMAIL_FROM,
)


def get_email_service() -> EmailService:
    return _email_service
