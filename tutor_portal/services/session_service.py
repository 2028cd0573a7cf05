"""
Session service: listing, creating and moving tutoring sessions through their lifecycle.
Every call returns normalized TutoringSession objects, never raw payloads.
"""
from typing import List, Optional
from tutor_portal.api import ApiClient
from tutor_portal.schemas.authentication_schema import ApiResponse
from tutor_portal.schemas.session_schema import (
    Material, SessionCancel, SessionComplete, SessionCreate, TutoringSession
)


def _session_from(response: ApiResponse) -> Optional[TutoringSession]:
    data = response.unwrap("session")
    return TutoringSession.model_validate(data) if data else None


def _sessions_from(response: ApiResponse) -> List[TutoringSession]:
    return [TutoringSession.model_validate(item) for item in response.unwrap("sessions", [])]


class SessionService:
    def __init__(self, api: ApiClient):
        self.api = api

    def list(self, params: Optional[dict] = None) -> List[TutoringSession]:
        """Sessions visible to the current user (own sessions, or all of them for staff)."""
        return _sessions_from(self.api.get("/sessions", params=params))

    def available(self, params: Optional[dict] = None) -> List[TutoringSession]:
        """Open sessions that still accept registrations."""
        return _sessions_from(self.api.get("/sessions/available", params=params))

    def get(self, session_id: str) -> Optional[TutoringSession]:
        return _session_from(self.api.get(f"/sessions/{session_id}"))

    def create(self, data: SessionCreate) -> Optional[TutoringSession]:
        return _session_from(self.api.post("/sessions", data.model_dump(by_alias=True, exclude_none=True, mode="json")))

    def register(self, session_id: str) -> Optional[TutoringSession]:
        return _session_from(self.api.post(f"/sessions/{session_id}/register"))

    def update(self, session_id: str, data: dict) -> Optional[TutoringSession]:
        return _session_from(self.api.put(f"/sessions/{session_id}", data))

    def cancel(self, session_id: str, reason: Optional[str] = None) -> Optional[TutoringSession]:
        body = SessionCancel(reason=reason).model_dump(by_alias=True)
        return _session_from(self.api.put(f"/sessions/{session_id}/cancel", body))

    def confirm(self, session_id: str) -> Optional[TutoringSession]:
        return _session_from(self.api.put(f"/sessions/{session_id}/confirm"))

    def start(self, session_id: str) -> Optional[TutoringSession]:
        return _session_from(self.api.put(f"/sessions/{session_id}/start"))

    def complete(self, session_id: str, data: Optional[SessionComplete] = None) -> Optional[TutoringSession]:
        body = data.model_dump(by_alias=True, exclude_none=True) if data else None
        return _session_from(self.api.put(f"/sessions/{session_id}/complete", body))

    def add_material(self, session_id: str, material: Material) -> Optional[TutoringSession]:
        return _session_from(self.api.post(f"/sessions/{session_id}/materials", material.model_dump(by_alias=True)))
