from pydantic import AliasChoices, Field, field_validator
from typing import Any, Optional
from datetime import datetime
from bleach import clean
from tutor_portal.schemas import PortalModel
from tutor_portal.schemas.user_schema import UserRef

class LastMessage(PortalModel):
    """Preview of the latest message of a conversation"""
    content: Optional[str] = None
    sender: Optional[UserRef] = None
    created_at: Optional[datetime] = None

class Conversation(PortalModel):
    """A conversation between the current user and one other participant"""
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    other_user: Optional[UserRef] = None
    last_message: Optional[LastMessage] = None
    unread_count: int = 0
    type: str = "direct"
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return str(v) if v is not None else v

class Message(PortalModel):
    """A message. It belongs to exactly one conversation."""
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    conversation: Optional[str] = None
    sender: Optional[UserRef] = None
    content: str = ""
    type: str = "text"
    is_deleted: bool = False
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("conversation", mode="before")
    @classmethod
    def conversation_id(cls, v: Any):
        # Populated conversation documents are reduced to their id
        if isinstance(v, dict):
            v = v.get("_id") or v.get("id")
        return str(v) if v is not None else v

class MessageCreate(PortalModel):
    """Message sending data"""
    content: str
    type: str = "text"

    @field_validator('content')
    def sanitize_content(cls, v):
        v = clean(v, tags=[], strip=True).strip()
        if not v:
            raise ValueError('Message cannot be empty')
        return v
