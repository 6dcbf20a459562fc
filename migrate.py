#!/usr/bin/env python3
"""One-time copy of legacy submissions.json into MongoDB.

Entries whose email or submission timestamp already exist are skipped, so a
second run adds nothing. Every migrated submission starts as pending.

Usage:
    python migrate.py [--file data/submissions.json]
"""

import argparse
import json
import logging
import shutil
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import BASE_DIR
from database import SUBMISSIONS, create_document, get_db
from schemas import (
    AudioRecording,
    Consent,
    Content,
    PersonalInfo,
    ProcResponses,
    Submission,
    Tracking,
    UploadedFile,
)

logger = logging.getLogger("stories.migrate")

DEFAULT_DATA_FILE = BASE_DIR / "data" / "submissions.json"


@dataclass
class MigrationReport:
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    backup_file: Optional[Path] = None


def parse_date(value: Any, default: Optional[datetime] = None) -> Optional[datetime]:
    if not value:
        return default
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def convert_legacy(entry: Dict[str, Any]) -> Submission:
    """Map a legacy JSON record onto the current schema, filling defaults."""
    submitted_at = parse_date(entry.get("submittedAt"), datetime.now(timezone.utc))
    info = entry.get("personalInfo") or {}
    content = entry.get("content") or {}
    audio = content.get("audioRecording") or {}
    proc = entry.get("procResponses") or {}
    consent = entry.get("consent") or {}
    tracking = entry.get("tracking") or {}

    uploaded_files = [
        UploadedFile(
            filename=f.get("filename", ""),
            original_name=f.get("originalName", f.get("filename", "")),
            mimetype=f.get("mimetype", ""),
            size=f.get("size", 0),
            uploaded_at=parse_date(f.get("uploadedAt"), submitted_at),
        )
        for f in content.get("uploadedFiles") or []
    ]

    return Submission(
        submitted_at=submitted_at,
        personal_info=PersonalInfo(
            first_name=info["firstName"],
            last_name=info["lastName"],
            email=info["email"],
            zip_code=info["zipCode"],
        ),
        content=Content(
            text_story=content.get("textStory") or "",
            audio_recording=AudioRecording(
                filename=audio.get("filename") or "",
                filepath=audio.get("filepath") or "",
                duration=audio.get("duration") or 0,
                format=audio.get("format") or "",
                recorded_at=parse_date(audio.get("recordedAt"), submitted_at),
                has_recording=bool(audio.get("hasRecording")),
                size=audio.get("size") or 0,
            ),
            uploaded_files=uploaded_files,
        ),
        proc_responses=ProcResponses(
            question1=proc.get("question1") or "",
            question2=proc.get("question2") or "",
        ),
        consent=Consent(
            agreed=bool(consent.get("agreed")),
            agreed_at=parse_date(consent.get("agreedAt"), submitted_at),
            continued_engagement=bool(consent.get("continuedEngagement")),
        ),
        tracking=Tracking(
            user_agent=tracking.get("userAgent") or "",
            ip_address=tracking.get("ipAddress") or "",
            session_id=tracking.get("sessionId") or "",
        ),
        status="pending",
    )


def already_migrated(db: Database, submission: Submission) -> bool:
    return db[SUBMISSIONS].find_one({
        "$or": [
            {"personalInfo.email": submission.personal_info.email},
            {"submittedAt": submission.submitted_at},
        ]
    }) is not None


def migrate_submissions(db: Database, data_file: Path) -> MigrationReport:
    report = MigrationReport()
    data_file = Path(data_file)

    if not data_file.exists():
        logger.info("No submissions file found at %s. Nothing to migrate.", data_file)
        return report

    entries = json.loads(data_file.read_text(encoding="utf-8"))
    report.total = len(entries)
    logger.info("Found %d submissions in %s", report.total, data_file.name)
    if not entries:
        logger.info("No submissions to migrate.")
        return report

    existing = db[SUBMISSIONS].count_documents({})
    if existing:
        logger.warning("%d submissions already exist; only new ones will be added", existing)

    for entry in entries:
        email = (entry.get("personalInfo") or {}).get("email")
        try:
            submission = convert_legacy(entry)
            if already_migrated(db, submission):
                logger.info("Skipping existing submission: %s", email)
                report.skipped += 1
                continue
            create_document(db, SUBMISSIONS, submission)
        except (KeyError, ValueError, ValidationError, PyMongoError):
            logger.exception("Error migrating submission for %s", email)
            report.failed += 1
            continue
        report.migrated += 1
        logger.info(
            "Migrated: %s %s",
            submission.personal_info.first_name,
            submission.personal_info.last_name,
        )

    backup = data_file.with_name(f"submissions-backup-{int(time.time() * 1000)}.json")
    shutil.copyfile(data_file, backup)
    report.backup_file = backup

    logger.info(
        "Migration completed: %d in file, %d migrated, %d skipped, %d failed, %d now in MongoDB",
        report.total,
        report.migrated,
        report.skipped,
        report.failed,
        db[SUBMISSIONS].count_documents({}),
    )
    logger.info("Original JSON file backed up to %s", backup.name)
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Migrate legacy JSON submissions into MongoDB")
    parser.add_argument("--file", type=Path, default=DEFAULT_DATA_FILE, help="Path to submissions.json")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        migrate_submissions(get_db(), args.file)
    except (OSError, json.JSONDecodeError, PyMongoError):
        logger.exception("Migration failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
