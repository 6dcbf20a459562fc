"""
Public story intake

Helpers for POST /api/submit-form: multipart parsing with size ceilings,
field normalization, upload and audio persistence, document assembly.
"""

import base64
import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, Request, UploadFile
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.types import Message, Receive

import config
from schemas import (
    AudioRecording,
    AudioRecordingPayload,
    Consent,
    Content,
    FormValue,
    IntakeForm,
    PersonalInfo,
    ProcResponses,
    Submission,
    Tracking,
    UploadedFile,
)
from storage import UploadStorage
from validation import FileCandidate, sanitize_input

logger = logging.getLogger(__name__)


async def read_multipart(request: Request):
    """Parse the body, returning text fields and non-empty file parts.

    Raises 413 when the body or any file breaks the size ceilings.
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > config.MAX_REQUEST_SIZE:
        raise HTTPException(status_code=413, detail="Request body too large")

    # Chunked bodies carry no Content-Length, so the ceiling is also enforced on the stream
    limited = Request(request.scope, limit_body(request.receive, config.MAX_REQUEST_SIZE))
    form = await limited.form(max_part_size=config.MAX_FIELD_SIZE)

    fields: Dict[str, FormValue] = {}
    files: List[UploadFile] = []
    for key in form.keys():
        values = form.getlist(key)
        texts = [v for v in values if isinstance(v, str)]
        files.extend(v for v in values if isinstance(v, StarletteUploadFile) and v.filename)
        if texts:
            fields[key] = texts if len(texts) > 1 else texts[0]

    files = [f for f in files if (f.size or 0) > 0]
    try:
        check_upload_limits(files)
    except HTTPException:
        await form.close()
        raise
    return form, fields, files


def limit_body(receive: Receive, limit: int) -> Receive:
    """Wrap an ASGI receive callable so reading past ``limit`` bytes raises 413."""
    received = 0

    async def receive_limited() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > limit:
                raise HTTPException(status_code=413, detail="Request body too large")
        return message

    return receive_limited


def check_upload_limits(files: List[UploadFile]) -> None:
    total = 0
    for upload in files:
        size = upload.size or 0
        if size > config.MAX_FILE_SIZE:
            raise HTTPException(status_code=413, detail=f"{upload.filename}: File size exceeds 50MB limit")
        total += size
    if total > config.MAX_TOTAL_FILE_SIZE:
        raise HTTPException(status_code=413, detail="Total file size exceeds 100MB limit")


def normalize_fields(fields: Dict[str, FormValue]) -> IntakeForm:
    return IntakeForm.model_validate(fields)


def parse_audio_payload(raw: Optional[str]) -> Optional[AudioRecordingPayload]:
    """Parse and decode the recorder JSON.

    Malformed JSON, an empty blob or invalid base64 all mean "no audio", so
    they never satisfy the content rule on their own.
    """
    if not raw:
        return None
    try:
        payload = AudioRecordingPayload.model_validate(json.loads(raw))
        payload.audio = base64.b64decode(payload.blob_data, validate=True)
    except (ValueError, ValidationError) as exc:
        logger.warning("Ignoring malformed audio recording payload: %s", exc)
        return None
    return payload if payload.audio else None


def file_candidates(files: List[UploadFile]) -> List[FileCandidate]:
    return [FileCandidate(f.filename, f.content_type or "", f.size or 0) for f in files]


def validation_input(form: IntakeForm, audio: Optional[AudioRecordingPayload], files: List[UploadFile]) -> dict:
    data = form.model_dump(by_alias=True)
    data["audioRecording"] = {"blobData": audio.blob_data} if audio else None
    data["uploadedFiles"] = file_candidates(files)
    return data


def store_uploaded_files(storage: UploadStorage, files: List[UploadFile]) -> List[UploadedFile]:
    stored = []
    for upload in files:
        filename, size = storage.save_stream(upload.file, upload.filename)
        stored.append(UploadedFile(
            filename=filename,
            original_name=upload.filename,
            mimetype=upload.content_type or "application/octet-stream",
            size=size,
        ))
    return stored


def store_audio_recording(storage: UploadStorage, payload: Optional[AudioRecordingPayload]) -> AudioRecording:
    """Persist the recorder's decoded audio.

    Write failures degrade to an empty recording; the submission still goes in.
    """
    now = datetime.now(timezone.utc)
    empty = AudioRecording(format="wav", recorded_at=now)
    if payload is None:
        return empty

    fmt = re.sub(r"[^a-z0-9]", "", (payload.format or "").lower()) or "webm"
    try:
        filename, filepath = storage.save_bytes(payload.audio, f".{fmt}")
    except OSError:
        logger.exception("Error saving audio recording")
        return empty

    logger.info("Audio recording saved: %s", filename)
    return AudioRecording(
        filename=filename,
        filepath=str(filepath),
        duration=payload.duration or 0,
        format=fmt,
        recorded_at=now,
        has_recording=True,
        size=len(payload.audio),
    )


def client_tracking(request: Request, form: IntakeForm) -> Tracking:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip_address = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip_address and request.client:
        ip_address = request.client.host
    return Tracking(
        user_agent=request.headers.get("user-agent", ""),
        ip_address=ip_address,
        session_id=request.headers.get("x-session-id") or form.session_id,
    )


def build_submission(
    form: IntakeForm,
    audio: AudioRecording,
    uploaded: List[UploadedFile],
    tracking: Tracking,
) -> Submission:
    return Submission(
        personal_info=PersonalInfo(
            first_name=sanitize_input(form.first_name),
            last_name=sanitize_input(form.last_name),
            email=form.email.strip(),
            zip_code=form.zip_code.strip(),
        ),
        content=Content(
            text_story=form.text_story,
            audio_recording=audio,
            uploaded_files=uploaded,
        ),
        proc_responses=ProcResponses(
            question1=sanitize_input(form.proc_question1),
            question2=sanitize_input(form.proc_question2),
        ),
        consent=Consent(
            agreed=form.consent_agreed,
            continued_engagement=form.continued_engagement,
        ),
        tracking=tracking,
        status="pending",
    )


def submission_event(submission: Submission, submission_id: str) -> Tuple[str, dict]:
    content = submission.content
    return "submission_completed", {
        "submissionId": submission_id,
        "hasAudio": content.audio_recording.has_recording,
        "hasFiles": bool(content.uploaded_files),
        "hasText": bool(content.text_story.strip()),
        "fileCount": len(content.uploaded_files),
    }
