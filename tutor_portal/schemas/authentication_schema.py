from typing import Any, Optional
from pydantic import BaseModel, ConfigDict
from tutor_portal.schemas import PortalModel
from tutor_portal.schemas.user_schema import User

class ApiResponse(BaseModel):
    """
    Response envelope shared by every backend endpoint: ``{success, message?, data?}``.
    Extra top-level fields are kept because some endpoints put their payload next to ``data``.
    """
    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: Optional[str] = None
    data: Any = None

    def unwrap(self, key: str, default: Any = None) -> Any:
        """
        Read ``data.<key>``, falling back to a top-level ``<key>``, then to ``default``.
        This is the single place where the two payload shapes are told apart.
        """
        if isinstance(self.data, dict) and self.data.get(key) is not None:
            return self.data[key]
        extra = self.model_extra or {}
        if extra.get(key) is not None:
            return extra[key]
        return default

class AuthPayload(PortalModel):
    """Payload of /auth/login, /auth/register and /auth/sso"""
    access_token: str
    refresh_token: str
    user: User

class AuthResult(BaseModel):
    """Outcome of an auth action, rendered inline by the caller instead of raising"""
    success: bool
    message: Optional[str] = None
