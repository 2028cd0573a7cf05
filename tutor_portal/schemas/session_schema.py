from pydantic import AliasChoices, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from bleach import clean
from tutor_portal.schemas import PortalModel
from tutor_portal.schemas.user_schema import ProfileRef
import enum
import re

class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW)

class SessionType(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    HYBRID = "hybrid"

class Registration(PortalModel):
    """A student registered to an open session"""
    student: Optional[ProfileRef] = None
    registered_at: Optional[datetime] = None

class TutoringSession(PortalModel):
    """
    A tutoring session between a tutor and one student, or an open session that many
    students register to (up to ``max_participants``).
    """
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    title: str = ""
    subject: Optional[str] = None
    description: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    tutor: Optional[ProfileRef] = None
    student: Optional[ProfileRef] = None
    registered_students: List[Registration] = []
    max_participants: int = 1
    is_open: bool = False
    scheduled_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[int] = None
    session_type: Optional[SessionType] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("registered_students", mode="before")
    @classmethod
    def default_registrations(cls, v):
        return v or []

    @property
    def seats_left(self) -> int:
        return max(self.max_participants - len(self.registered_students), 0)

    @property
    def is_full(self) -> bool:
        return self.seats_left == 0

    def registered_user_ids(self) -> List[str]:
        return [reg.student.user_id for reg in self.registered_students if reg.student and reg.student.user_id]

############################
##### REQUEST SCHEMAS ######
############################

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

class SessionCreate(PortalModel):
    """Session creation data (tutors only)"""
    title: str
    subject: str
    description: Optional[str] = None
    scheduled_date: datetime
    start_time: str
    end_time: str
    duration: int # Duration in minutes
    session_type: SessionType
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    is_open: bool = False
    max_participants: int = 1
    student: Optional[str] = None # Student profile id for one-to-one sessions

    @field_validator('title', 'description')
    def sanitize_text(cls, v):
        return clean(v, tags=[], strip=True) if v is not None else v

    @field_validator('start_time', 'end_time')
    def validate_time(cls, v):
        if not _TIME_RE.match(v):
            raise ValueError('Time must use the HH:MM format')
        return v

    @field_validator('duration')
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError('Duration must be positive')
        return v

    @field_validator('max_participants')
    def validate_max_participants(cls, v):
        if v < 1:
            raise ValueError('An open session needs at least one seat')
        return v

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_time >= self.end_time:
            raise ValueError('End time must be after start time')
        return self

class SessionCancel(PortalModel):
    """Cancellation data"""
    reason: Optional[str] = None

    @field_validator('reason')
    def sanitize_reason(cls, v):
        return clean(v, tags=[], strip=True) if v is not None else v

class SessionComplete(PortalModel):
    """Completion data (session minutes written by the tutor)"""
    notes: Optional[str] = None
    summary: Optional[str] = None

    @field_validator('notes', 'summary')
    def sanitize_notes(cls, v):
        return clean(v, tags=[], strip=True) if v is not None else v

class Material(PortalModel):
    """Material attached to a session"""
    title: str
    url: str
    type: str = "link"

    @field_validator('title')
    def sanitize_title(cls, v):
        return clean(v, tags=[], strip=True)
