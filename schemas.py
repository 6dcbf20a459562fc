"""
Database Schemas

MongoDB document shapes and request bodies as Pydantic models.
Documents are stored with camelCase keys, so every model dumps by alias:
- Submission -> "submissions" collection
- Admin -> "admins" collection
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

SubmissionStatus = Literal['pending', 'reviewed', 'approved', 'rejected']
STATUSES = ('pending', 'reviewed', 'approved', 'rejected')

# A multipart field may be sent once or repeated
FormValue = Union[str, List[str]]

TRUE_STRINGS = {'true', 'on', '1', 'yes'}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class PersonalInfo(CamelModel):
    first_name: str
    last_name: str
    email: str
    zip_code: str


class AudioRecording(CamelModel):
    filename: str = ''
    filepath: str = ''
    duration: float = 0
    format: str = ''
    recorded_at: Optional[datetime] = None
    has_recording: bool = False
    size: int = 0


class UploadedFile(CamelModel):
    filename: str
    original_name: str
    mimetype: str
    size: int
    uploaded_at: datetime = Field(default_factory=utcnow)


class Content(CamelModel):
    text_story: str = ''
    audio_recording: AudioRecording = Field(default_factory=AudioRecording)
    uploaded_files: List[UploadedFile] = Field(default_factory=list)


class ProcResponses(CamelModel):
    question1: str = ''
    question2: str = ''


class Consent(CamelModel):
    agreed: bool
    agreed_at: datetime = Field(default_factory=utcnow)
    continued_engagement: bool = False


class Tracking(CamelModel):
    user_agent: str = ''
    ip_address: str = ''
    session_id: str = ''


class Submission(CamelModel):
    """
    One story submitted through the public form
    Collection name: "submissions"
    """
    submitted_at: datetime = Field(default_factory=utcnow)
    personal_info: PersonalInfo
    content: Content = Field(default_factory=Content)
    proc_responses: ProcResponses = Field(default_factory=ProcResponses)
    consent: Consent
    tracking: Tracking = Field(default_factory=Tracking)
    status: SubmissionStatus = 'pending'
    admin_notes: str = ''
    reviewed_at: Optional[datetime] = None
    reviewed_by: str = ''


class Admin(CamelModel):
    """
    Dashboard account; password holds the passlib hash
    Collection name: "admins"
    """
    username: str
    email: EmailStr
    password: str
    role: str = 'admin'
    is_active: bool = True


class AdminSetup(BaseModel):
    username: str
    email: EmailStr
    password: str


class AdminLogin(BaseModel):
    username: str
    password: str


class UpdateSubmission(CamelModel):
    # Plain string so unknown values reach the handler and get a 400
    status: Optional[str] = None
    admin_notes: Optional[str] = None


class AudioRecordingPayload(CamelModel):
    """JSON blob posted by the browser recorder in the ``audioRecording`` field."""
    blob_data: str = ''
    duration: float = 0
    format: str = 'webm'
    # Decoded blob_data, filled in during intake
    audio: bytes = Field(default=b'', exclude=True)


class IntakeForm(CamelModel):
    """Text fields of the public submission form after multipart parsing."""
    first_name: str = ''
    last_name: str = ''
    email: str = ''
    zip_code: str = ''
    text_story: str = ''
    proc_question1: str = ''
    proc_question2: str = ''
    consent_agreed: bool = False
    continued_engagement: bool = False
    audio_recording: Optional[str] = None
    session_id: str = ''

    @field_validator('*', mode='before')
    @classmethod
    def first_value(cls, value: FormValue):
        if isinstance(value, list):
            return value[0] if value else ''
        return value

    @field_validator('consent_agreed', 'continued_engagement', mode='before')
    @classmethod
    def checkbox(cls, value) -> bool:
        if isinstance(value, list):
            value = value[0] if value else ''
        if isinstance(value, bool):
            return value
        return str(value or '').strip().lower() in TRUE_STRINGS
