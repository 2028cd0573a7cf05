"""
Session router: listings, creation, detail and lifecycle transitions.

Transitions are delegated to SessionLifecycle, which checks the action against the
viewer and the session status before any request is sent.
"""
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from typing import Optional
from tutor_portal.dependencies import Visitor, require_page
from tutor_portal.schemas.session_schema import SessionCreate, SessionStatus, TutoringSession
from tutor_portal.schemas.user_schema import UserRole
from tutor_portal.session_lifecycle import (
    SessionAction, SessionLifecycle, TransitionResult, Viewer,
    can_register, capacity_label, capacity_style, status_label
)

router = APIRouter(prefix='/sessions')


def _session_view(session: TutoringSession) -> dict:
    data = session.model_dump(mode="json", by_alias=True)
    data["statusLabel"] = status_label(session.status)
    return data


def _lifecycle(visitor: Visitor, session_id: str) -> SessionLifecycle:
    session = visitor.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionLifecycle(visitor.sessions, visitor.feedback, session, Viewer.from_user(visitor.auth.user))


def _result_response(result: TransitionResult, lifecycle: SessionLifecycle) -> JSONResponse:
    content = {
        "ok": result.ok,
        "alert": result.message,
        "code": result.code.value if result.code else None,
        "redirect_to": result.redirect_to,
        "session": _session_view(lifecycle.session),
        "actions": sorted(action.value for action in lifecycle.allowed_actions),
    }
    return JSONResponse(status_code=200 if result.ok else 400, content=content)


@router.get('')
def list_sessions(status: Optional[SessionStatus] = None, visitor: Visitor = Depends(require_page())):
    sessions = visitor.sessions.list({"status": status.value if status else None})
    return {"sessions": [_session_view(session) for session in sessions]}


@router.get('/available')
def available_sessions(subject: Optional[str] = None, visitor: Visitor = Depends(require_page())):
    """Open sessions with their remaining capacity."""
    viewer = Viewer.from_user(visitor.auth.user)
    sessions = visitor.sessions.available({"subject": subject})
    return {
        "sessions": [
            {
                **_session_view(session),
                "capacityLabel": capacity_label(session),
                "capacityStyle": capacity_style(session),
                "canRegister": can_register(session, viewer),
            }
            for session in sessions
        ]
    }


@router.post('/create', status_code=201)
def create_session(data: SessionCreate, visitor: Visitor = Depends(require_page(UserRole.TUTOR))):
    session = visitor.sessions.create(data)
    return {"success": True, "session": session.model_dump(mode="json", by_alias=True) if session else None}


@router.get('/{session_id}')
def session_detail(session_id: str, visitor: Visitor = Depends(require_page())):
    lifecycle = _lifecycle(visitor, session_id)
    session = lifecycle.session
    return {
        "session": _session_view(session),
        "actions": sorted(action.value for action in lifecycle.allowed_actions),
        # Capacity only means something for sessions open to registration
        "capacityLabel": capacity_label(session) if session.is_open else None,
    }


@router.post('/{session_id}/actions/{action}')
def session_action(session_id: str, action: SessionAction, payload: Optional[dict] = Body(default=None),
                   visitor: Visitor = Depends(require_page())):
    """
    Perform a lifecycle action.

    Body (optional): ``reason`` for cancel, ``notes`` for complete, ``rating`` and ``comment`` for feedback.
    """
    lifecycle = _lifecycle(visitor, session_id)
    payload = payload or {}
    kwargs = {key: payload[key] for key in ("reason", "notes", "rating", "comment") if key in payload}
    result = lifecycle.perform(action, **kwargs)
    return _result_response(result, lifecycle)


@router.post('/{session_id}/register')
def register_to_session(session_id: str, visitor: Visitor = Depends(require_page(UserRole.STUDENT))):
    lifecycle = _lifecycle(visitor, session_id)
    result = lifecycle.register()
    return _result_response(result, lifecycle)
