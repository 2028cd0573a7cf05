from pydantic import AliasChoices, EmailStr, Field, StringConstraints, field_validator, model_validator
from typing import Annotated, Any, Dict, List, Optional
from bleach import clean
from tutor_portal.schemas import PortalModel
import enum

class UserRole(str, enum.Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    COORDINATOR = "coordinator"
    DEPARTMENT_HEAD = "department_head"
    ADMIN = "admin"

# Roles allowed on the staff pages (reports, admin)
STAFF_ROLES = (UserRole.ADMIN, UserRole.DEPARTMENT_HEAD, UserRole.COORDINATOR)

def _coerce_id(v: Any) -> Any:
    # Ids may arrive as ObjectId strings or numbers depending on the endpoint
    return str(v) if v is not None else v

############################
### USER ACCOUNT SCHEMAS ###
############################

class User(PortalModel):
    """Authenticated user as returned by /auth/login, /auth/me..."""
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    email: Optional[str] = None
    role: UserRole
    user_id: Optional[str] = None # University id (MSSV / staff code)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    avatar: Optional[str] = None
    training_points: Optional[int] = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return _coerce_id(v)

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        name = f"{self.last_name or ''} {self.first_name or ''}".strip()
        return name or self.email or self.id or ""

class UserRef(PortalModel):
    """
    Reference to a user embedded in another document.

    The backend sends either the populated user object or only its id, depending on the
    endpoint. Both are normalized here so the rest of the code only compares ``id`` strings.
    """
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    email: Optional[str] = None
    role: Optional[UserRole] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return _coerce_id(v)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, (str, int)):
            return {"id": str(data)}
        return data

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        name = f"{self.last_name or ''} {self.first_name or ''}".strip()
        return name or self.id

class ProfileRef(PortalModel):
    """Tutor or student profile reference. The profile itself points at a user."""
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    user: Optional[UserRef] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v):
        return _coerce_id(v)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, (str, int)):
            return {"id": str(data)}
        return data

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

class Permissions(PortalModel):
    """Role based UI data returned by /auth/permissions"""
    permissions: Dict[str, bool] = {}
    sidebar_items: List[Any] = []
    dashboard_cards: List[str] = []

    def has(self, key: str) -> bool:
        return bool(self.permissions.get(key, False))

############################
##### REQUEST SCHEMAS ######
############################

class LoginRequest(PortalModel):
    """Email/password credentials"""
    email: EmailStr
    password: Annotated[str, StringConstraints(min_length=1)]

class SsoLoginRequest(PortalModel):
    """University SSO credentials (student id / staff code)"""
    user_id: Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]
    password: Annotated[str, StringConstraints(min_length=1)]

class RegisterRequest(PortalModel):
    """Account registration data"""
    email: EmailStr
    password: Annotated[str, StringConstraints(min_length=6)]
    user_id: Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]
    first_name: Annotated[str, StringConstraints(min_length=1, max_length=50)]
    last_name: Annotated[str, StringConstraints(min_length=1, max_length=50)]
    role: UserRole = UserRole.STUDENT
    faculty: Optional[str] = None
    department: Optional[str] = None
    major: Optional[str] = None
    academic_year: Optional[int] = None

    @field_validator('first_name', 'last_name', 'faculty', 'department', 'major')
    def sanitize_name(cls, v):
        return clean(v, tags=[], strip=True) if v is not None else v

class PasswordUpdate(PortalModel):
    """Password change data"""
    current_password: str
    new_password: Annotated[str, StringConstraints(min_length=6)]
