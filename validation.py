"""
Form validation

Pure checks shared by the intake endpoint. The browser runs the same rules
from static/js/validate-form.js for on-blur feedback.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from config import MAX_FILE_SIZE, MAX_TOTAL_FILE_SIZE

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_CODE_RE = re.compile(r"^\d{5}(-\d{4})?$")

ZIP_CODE_MESSAGE = "Please enter a valid zip code (e.g., 12345 or 12345-6789)"

ALLOWED_FILE_TYPES = {
    "audio/wav": "WAV Audio",
    "audio/mp3": "MP3 Audio",
    "audio/mpeg": "MP3 Audio",
    "audio/ogg": "OGG Audio",
    "video/mp4": "MP4 Video",
    "video/avi": "AVI Video",
    "video/mov": "MOV Video",
    "video/quicktime": "MOV Video",
    "image/jpeg": "JPEG Image",
    "image/jpg": "JPG Image",
    "image/png": "PNG Image",
    "image/gif": "GIF Image",
    "image/webp": "WebP Image",
}


@dataclass
class ValidationResult:
    is_valid: bool
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class FieldResult:
    is_valid: bool
    error: Optional[str] = None


@dataclass
class FileValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class FileCandidate:
    """Name, MIME type and byte size of one file offered for upload."""
    name: str
    type: str
    size: int


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _has_audio(audio: Any) -> bool:
    if not audio:
        return False
    if isinstance(audio, Mapping):
        return bool(audio.get("blob") or audio.get("blobData"))
    return True


def _is_checked(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "on", "1", "yes"}
    return bool(value)


def validate_form(form_data: Mapping[str, Any]) -> ValidationResult:
    errors = {}

    if _blank(form_data.get("firstName")):
        errors["firstName"] = "First name is required"

    if _blank(form_data.get("lastName")):
        errors["lastName"] = "Last name is required"

    email = validate_email(form_data.get("email"))
    if not email.is_valid:
        errors["email"] = email.error

    zip_code = validate_zip_code(form_data.get("zipCode"))
    if not zip_code.is_valid:
        errors["zipCode"] = zip_code.error

    has_audio = _has_audio(form_data.get("audioRecording"))
    has_files = bool(form_data.get("uploadedFiles"))
    has_text = not _blank(form_data.get("textStory"))
    if not (has_audio or has_files or has_text):
        errors["content"] = "Please provide your story through audio recording, file upload, or text entry"

    if not _is_checked(form_data.get("consentAgreed")):
        errors["consentAgreed"] = "You must agree to the consent and release terms to submit"

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_email(email: Optional[str]) -> FieldResult:
    if _blank(email):
        return FieldResult(False, "Email address is required")
    if not EMAIL_RE.match(email.strip()):
        return FieldResult(False, "Please enter a valid email address")
    return FieldResult(True)


def validate_zip_code(zip_code: Optional[str]) -> FieldResult:
    if _blank(zip_code):
        return FieldResult(False, "Zip code is required")
    if not ZIP_CODE_RE.match(zip_code.strip()):
        return FieldResult(False, ZIP_CODE_MESSAGE)
    return FieldResult(True)


def validate_name(name: Optional[str], field_name: str) -> FieldResult:
    if _blank(name):
        return FieldResult(False, f"{field_name} is required")
    if len(name.strip()) < 2:
        return FieldResult(False, f"{field_name} must be at least 2 characters long")
    return FieldResult(True)


def validate_file_upload(files: Optional[Sequence[FileCandidate]]) -> FileValidationResult:
    """Check MIME type and size of each file and the size of the batch.

    Every problem is reported; a rejected file does not count toward the
    batch total.
    """
    if not files:
        return FileValidationResult(True)

    errors = []
    total_size = 0
    allowed = ", ".join(dict.fromkeys(ALLOWED_FILE_TYPES.values()))

    for candidate in files:
        if candidate.type not in ALLOWED_FILE_TYPES:
            errors.append(f"{candidate.name}: File type not supported. Allowed types: {allowed}")
            continue
        if candidate.size > MAX_FILE_SIZE:
            errors.append(f"{candidate.name}: File size exceeds 50MB limit")
            continue
        total_size += candidate.size

    if total_size > MAX_TOTAL_FILE_SIZE:
        errors.append("Total file size exceeds 100MB limit")

    return FileValidationResult(is_valid=not errors, errors=errors)


def sanitize_input(value):
    if not isinstance(value, str):
        return value
    return re.sub(r"[<>]", "", value.strip())[:1000]
