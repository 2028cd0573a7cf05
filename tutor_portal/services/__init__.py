from tutor_portal.services.auth_service import AuthService
from tutor_portal.services.chat_service import ChatService
from tutor_portal.services.feedback_service import FeedbackService
from tutor_portal.services.report_service import ReportService
from tutor_portal.services.session_service import SessionService
