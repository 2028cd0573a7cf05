from pydantic import AliasChoices, Field, field_validator
from typing import Any, Dict, Optional
from datetime import datetime
from bleach import clean
from tutor_portal.schemas import PortalModel

class FeedbackCreate(PortalModel):
    """Feedback given on a completed session"""
    session_id: str
    rating: int
    comment: Optional[str] = None

    @field_validator('comment')
    def sanitize_comment(cls, v):
        return clean(v, tags=[], strip=True) if v is not None else v

    @field_validator('rating')
    def validate_rating(cls, v):
        if v < 1 or v > 5:
            raise ValueError('Rating must be between 1 and 5')
        return v

    def to_payload(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "ratings": {"overall": self.rating},
            "comment": self.comment or "",
        }

class Feedback(PortalModel):
    """Feedback response data"""
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    session: Optional[Any] = None
    ratings: Dict[str, Any] = {}
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return str(v) if v is not None else v

    @property
    def overall(self) -> Optional[int]:
        return self.ratings.get("overall")
