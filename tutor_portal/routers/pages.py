"""
Page router: dashboard, staff pages and settings.
Every page goes through the route guard; failed guards redirect.
"""
import asyncio
from fastapi import APIRouter, Depends
from tutor_portal.dependencies import Visitor, require_page
from tutor_portal.errors import PortalError
from tutor_portal.logger import logger
from tutor_portal.schemas.user_schema import STAFF_ROLES, PasswordUpdate
from tutor_portal.session_lifecycle import status_label

router = APIRouter()


@router.get('/')
def home():
    return {"page": "home"}


@router.get('/unauthorized')
def unauthorized():
    return {"page": "unauthorized", "message": "Bạn không có quyền truy cập trang này"}


async def _safe(label: str, fn, default):
    try:
        return await asyncio.to_thread(fn)
    except (PortalError, ValueError) as e:
        logger.error(f"Dashboard: failed to load {label}: {str(e)}")
        return default


@router.get('/dashboard')
async def dashboard(visitor: Visitor = Depends(require_page())):
    """
    Stats and sessions are fetched concurrently; a failing section renders empty
    instead of failing the whole page.
    """
    auth = visitor.auth
    if auth.permissions is None:
        await auth.load_permissions()

    stats, sessions = await asyncio.gather(
        _safe("stats", visitor.reports.dashboard_stats, {}),
        _safe("sessions", visitor.sessions.list, []),
    )
    return {
        "page": "dashboard",
        "user": auth.user.model_dump(mode="json", by_alias=True),
        "cards": auth.permissions.dashboard_cards if auth.permissions else [],
        "sidebar": auth.permissions.sidebar_items if auth.permissions else [],
        "stats": stats,
        "sessions": [
            {**session.model_dump(mode="json", by_alias=True), "statusLabel": status_label(session.status)}
            for session in sessions[:5]
        ],
    }


@router.get('/reports')
def reports(period: str = None, visitor: Visitor = Depends(require_page(*STAFF_ROLES))):
    return {"page": "reports", "overview": visitor.reports.overview({"period": period})}


@router.get('/admin')
def admin(visitor: Visitor = Depends(require_page(*STAFF_ROLES))):
    return {
        "page": "admin",
        "user": visitor.auth.user.model_dump(mode="json", by_alias=True),
        "stats": visitor.reports.dashboard_stats(),
    }


@router.get('/settings')
def settings_page(visitor: Visitor = Depends(require_page())):
    return {"page": "settings", "user": visitor.auth.user.model_dump(mode="json", by_alias=True)}


@router.put('/settings/password')
def change_password(passwords: PasswordUpdate, visitor: Visitor = Depends(require_page())):
    response = visitor.auth_service.update_password(passwords)
    return {"success": response.success, "message": response.message}
