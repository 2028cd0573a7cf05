"""
Session lifecycle gate.

Decides which actions the current viewer may take on a session and performs them:

    pending     --confirm (tutor)-->   confirmed
    confirmed   --start (tutor)-->     in_progress
    in_progress --complete (tutor)-->  completed
    pending/confirmed --cancel (tutor or student)--> cancelled
    completed   --feedback (tutor or student), status unchanged

no_show is only ever set by the server. The displayed session is replaced with the
server's answer after each transition, never with a locally guessed status.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional
from tutor_portal.errors import ApiError, ErrorCode, PortalError
from tutor_portal.logger import logger
from tutor_portal.schemas.feedback_schema import FeedbackCreate
from tutor_portal.schemas.session_schema import SessionComplete, SessionStatus, TutoringSession
from tutor_portal.schemas.user_schema import User, UserRole
from tutor_portal.services.feedback_service import FeedbackService
from tutor_portal.services.session_service import SessionService
import enum

SESSIONS_PATH = "/sessions"

STATUS_LABELS = {
    SessionStatus.PENDING: "Chờ xác nhận",
    SessionStatus.CONFIRMED: "Đã xác nhận",
    SessionStatus.IN_PROGRESS: "Đang diễn ra",
    SessionStatus.COMPLETED: "Hoàn thành",
    SessionStatus.CANCELLED: "Đã hủy",
    SessionStatus.NO_SHOW: "Vắng mặt",
}

FULL_LABEL = "Đã đầy"

# Hints shown instead of the raw server message for well known failures
ERROR_HINTS = {
    ErrorCode.SESSION_NOT_CONFIRMED: "Session cần được xác nhận trước khi bắt đầu. Vui lòng click 'Xác nhận Session' trước.",
    ErrorCode.NOT_SESSION_TUTOR: "Chỉ tutor của session này mới có thể thực hiện thao tác này.",
}


class SessionAction(str, enum.Enum):
    CONFIRM = "confirm"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    FEEDBACK = "feedback"


SUCCESS_MESSAGES = {
    SessionAction.CONFIRM: "Session đã được xác nhận!",
    SessionAction.START: "Đã bắt đầu buổi học!",
    SessionAction.COMPLETE: "Đã hoàn thành buổi học!",
    SessionAction.CANCEL: "Đã hủy buổi học.",
    SessionAction.FEEDBACK: "Đã gửi đánh giá thành công!",
}

FAILURE_MESSAGES = {
    SessionAction.CONFIRM: "Không thể xác nhận session",
    SessionAction.START: "Không thể bắt đầu buổi học",
    SessionAction.COMPLETE: "Không thể hoàn thành buổi học",
    SessionAction.CANCEL: "Không thể hủy buổi học",
    SessionAction.FEEDBACK: "Không thể gửi đánh giá",
}


@dataclass(frozen=True)
class Viewer:
    """The user looking at a session."""
    user_id: Optional[str]
    role: Optional[UserRole]

    @classmethod
    def from_user(cls, user: Optional[User]) -> "Viewer":
        if user is None:
            return cls(None, None)
        return cls(user.id, user.role)


def is_session_tutor(session: TutoringSession, viewer: Viewer) -> bool:
    if viewer.role != UserRole.TUTOR or not viewer.user_id:
        return False
    return session.tutor is not None and session.tutor.user_id == viewer.user_id


def is_session_student(session: TutoringSession, viewer: Viewer) -> bool:
    if viewer.role != UserRole.STUDENT or not viewer.user_id:
        return False
    if session.student is not None and session.student.user_id == viewer.user_id:
        return True
    return viewer.user_id in session.registered_user_ids()


def allowed_actions(session: TutoringSession, viewer: Viewer) -> FrozenSet[SessionAction]:
    """
    Compute the legal actions of ``viewer`` on ``session``.

    Returns:
    - frozenset: Subset of SessionAction, empty for outsiders and terminal sessions
    """
    tutor = is_session_tutor(session, viewer)
    student = is_session_student(session, viewer)
    actions = set()

    if tutor and session.status == SessionStatus.PENDING:
        actions.add(SessionAction.CONFIRM)
    if tutor and session.status == SessionStatus.CONFIRMED:
        actions.add(SessionAction.START)
    if tutor and session.status == SessionStatus.IN_PROGRESS:
        actions.add(SessionAction.COMPLETE)
    if (tutor or student) and session.status in (SessionStatus.PENDING, SessionStatus.CONFIRMED):
        actions.add(SessionAction.CANCEL)
    if (tutor or student) and session.status == SessionStatus.COMPLETED:
        actions.add(SessionAction.FEEDBACK)

    return frozenset(actions)


############################
###### OPEN SESSIONS #######
############################

def can_register(session: TutoringSession, viewer: Viewer) -> bool:
    """Students may register to open, not yet full, not yet started sessions they are not part of."""
    if viewer.role != UserRole.STUDENT or not session.is_open or session.is_full:
        return False
    if session.status not in (SessionStatus.PENDING, SessionStatus.CONFIRMED):
        return False
    return not is_session_student(session, viewer)


def capacity_label(session: TutoringSession) -> str:
    seats = session.seats_left
    return f"Còn {seats} chỗ" if seats > 0 else FULL_LABEL


def capacity_style(session: TutoringSession) -> str:
    """'full' when no seat is left, 'warning' for the last seat, 'normal' otherwise."""
    seats = session.seats_left
    if seats == 0:
        return "full"
    if seats == 1:
        return "warning"
    return "normal"


def status_label(status: SessionStatus) -> str:
    return STATUS_LABELS.get(status, status.value)


############################
####### TRANSITIONS ########
############################

@dataclass
class TransitionResult:
    ok: bool
    message: str
    session: Optional[TutoringSession] = None
    redirect_to: Optional[str] = None
    code: Optional[ErrorCode] = None


class SessionLifecycle:
    """
    Holds one fetched session for one viewer and performs its transitions.

    Each action is a single API call. On success the held session is replaced by the
    session returned by the server; on failure it is left untouched.
    """

    def __init__(self, session_service: SessionService, feedback_service: FeedbackService,
                 session: TutoringSession, viewer: Viewer):
        self.session_service = session_service
        self.feedback_service = feedback_service
        self.session = session
        self.viewer = viewer

    @property
    def allowed_actions(self) -> FrozenSet[SessionAction]:
        return allowed_actions(self.session, self.viewer)

    def _call(self, action: SessionAction, **kwargs) -> Optional[TutoringSession]:
        session_id = self.session.id
        if action == SessionAction.CONFIRM:
            return self.session_service.confirm(session_id)
        if action == SessionAction.START:
            return self.session_service.start(session_id)
        if action == SessionAction.COMPLETE:
            notes = kwargs.get("notes")
            return self.session_service.complete(session_id, SessionComplete(notes=notes) if notes else None)
        if action == SessionAction.CANCEL:
            return self.session_service.cancel(session_id, kwargs.get("reason"))
        raise ValueError(f"Unsupported session action: {action}")

    def perform(self, action: SessionAction, **kwargs) -> TransitionResult:
        """
        Perform ``action`` if it is legal for the viewer.

        Args:
        - action (SessionAction): The action to perform
        - kwargs: ``reason`` for cancel, ``notes`` for complete, ``rating``/``comment`` for feedback

        Returns:
        - TransitionResult: Outcome with the message to show the user
        """
        action = SessionAction(action)
        if action not in self.allowed_actions:
            return TransitionResult(
                ok=False,
                message=f"Không thể thực hiện thao tác '{action.value}' ở trạng thái {status_label(self.session.status)}",
                session=self.session,
                code=ErrorCode.INVALID_TRANSITION,
            )

        if action == SessionAction.FEEDBACK:
            return self._submit_feedback(kwargs.get("rating", 5), kwargs.get("comment"))

        try:
            updated = self._call(action, **kwargs)
        except ApiError as e:
            logger.error(f"Session {self.session.id} {action.value} failed: {e.message}")
            return TransitionResult(
                ok=False,
                message=ERROR_HINTS.get(e.code, e.message or FAILURE_MESSAGES[action]),
                session=self.session,
                code=e.code,
            )
        except PortalError as e:
            logger.error(f"Session {self.session.id} {action.value} failed: {str(e)}")
            return TransitionResult(ok=False, message=FAILURE_MESSAGES[action], session=self.session)

        if updated is not None:
            self.session = updated

        return TransitionResult(
            ok=True,
            message=SUCCESS_MESSAGES[action],
            session=self.session,
            redirect_to=SESSIONS_PATH if action == SessionAction.CANCEL else None,
        )

    def _submit_feedback(self, rating: int, comment: Optional[str]) -> TransitionResult:
        # Feedback is a side channel write, the session itself does not change
        try:
            data = FeedbackCreate(session_id=self.session.id, rating=int(rating), comment=comment)
            self.feedback_service.create(data)
        except ApiError as e:
            logger.error(f"Feedback on session {self.session.id} failed: {e.message}")
            return TransitionResult(ok=False, message=e.message or FAILURE_MESSAGES[SessionAction.FEEDBACK],
                                    session=self.session, code=e.code)
        except (PortalError, ValueError) as e:
            logger.error(f"Feedback on session {self.session.id} failed: {str(e)}")
            return TransitionResult(ok=False, message=FAILURE_MESSAGES[SessionAction.FEEDBACK], session=self.session)

        return TransitionResult(ok=True, message=SUCCESS_MESSAGES[SessionAction.FEEDBACK], session=self.session)

    def register(self) -> TransitionResult:
        """Register the viewer to this open session."""
        if not can_register(self.session, self.viewer):
            message = FULL_LABEL if self.session.is_full else "Không thể đăng ký buổi học này"
            return TransitionResult(ok=False, message=message, session=self.session,
                                    code=ErrorCode.SESSION_FULL if self.session.is_full else ErrorCode.FORBIDDEN)
        try:
            updated = self.session_service.register(self.session.id)
        except ApiError as e:
            logger.error(f"Registration to session {self.session.id} failed: {e.message}")
            return TransitionResult(ok=False, message=e.message, session=self.session, code=e.code)
        except PortalError as e:
            logger.error(f"Registration to session {self.session.id} failed: {str(e)}")
            return TransitionResult(ok=False, message="Không thể đăng ký buổi học này", session=self.session)

        if updated is not None:
            self.session = updated
        return TransitionResult(ok=True, message="Đăng ký thành công!", session=self.session)
