"""
Authentication router: email login, university SSO login, registration, logout and the
current user. Results are rendered inline; only a successful login moves the visitor on.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from tutor_portal.config import get_settings
from tutor_portal.dependencies import Visitor, VisitorRegistry, get_registry, get_visitor, require_page
from tutor_portal.logger import logger
from tutor_portal.schemas.authentication_schema import AuthResult
from tutor_portal.schemas.user_schema import LoginRequest, RegisterRequest, SsoLoginRequest

DASHBOARD_PATH = "/dashboard"

router = APIRouter()

# Add rate limiting
limiter = Limiter(key_func=get_remote_address)


def login_rate_limit() -> str:
    return get_settings().login_rate_limit


async def _auth_response(registry: VisitorRegistry, visitor: Visitor, result: AuthResult) -> JSONResponse:
    if result.success:
        await registry.keep(visitor)
        auth = visitor.auth
        return JSONResponse({
            "success": True,
            "redirect_to": DASHBOARD_PATH,
            "user": auth.user.model_dump(mode="json", by_alias=True) if auth.user else None,
        })
    return JSONResponse(status_code=401, content={"success": False, "message": result.message})


@router.post('/login')
@limiter.limit(login_rate_limit)
async def login(request: Request, credentials: LoginRequest, visitor: Visitor = Depends(get_visitor),
                registry: VisitorRegistry = Depends(get_registry)):
    """
    Log in with email and password.

    Returns:
    - 200 with redirect_to /dashboard on success
    - 401 with the server message otherwise
    """
    result = await visitor.auth.login(credentials)
    if result.success:
        logger.info(f"Visitor {visitor.id} logged in as {visitor.auth.user.role.value}")
    return await _auth_response(registry, visitor, result)


@router.post('/sso')
@limiter.limit(login_rate_limit)
async def sso_login(request: Request, credentials: SsoLoginRequest, visitor: Visitor = Depends(get_visitor),
                    registry: VisitorRegistry = Depends(get_registry)):
    """Log in with the university account (student id or staff code)."""
    result = await visitor.auth.sso_login(credentials)
    return await _auth_response(registry, visitor, result)


@router.post('/register')
@limiter.limit(login_rate_limit)
async def register(request: Request, user_data: RegisterRequest, visitor: Visitor = Depends(get_visitor),
                   registry: VisitorRegistry = Depends(get_registry)):
    result = await visitor.auth.register(user_data)
    return await _auth_response(registry, visitor, result)


@router.post('/logout')
async def logout(request: Request, visitor: Visitor = Depends(get_visitor),
                 registry: VisitorRegistry = Depends(get_registry)):
    """Log out. Works (and succeeds) for anonymous visitors too."""
    await visitor.auth.logout()
    await registry.discard(visitor.id)
    request.session.clear()
    return {"success": True, "redirect_to": "/login"}


@router.get('/me')
async def me(visitor: Visitor = Depends(require_page())):
    auth = visitor.auth
    permissions = auth.permissions or await auth.load_permissions()
    return {
        "user": auth.user.model_dump(mode="json", by_alias=True),
        "permissions": permissions.model_dump(by_alias=True) if permissions else None,
    }
