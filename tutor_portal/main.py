from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from datetime import datetime
from typing import Any, Optional
from tutor_portal.config import Settings, get_settings
from tutor_portal.dependencies import PageRedirect, VisitorRegistry
from tutor_portal.errors import ApiError, TransportError
from tutor_portal.logger import AuthAuditLogger, logger

### ROUTERS
from tutor_portal.routers.auth import limiter, router as auth_router
from tutor_portal.routers.chat import router as chat_router
from tutor_portal.routers.pages import router as pages_router
from tutor_portal.routers.sessions import router as sessions_router


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging all portal requests and responses.

    Logs request method, URL, response status, and timing information.
    """
    async def dispatch(self, request: Request, call_next):
        start_time = datetime.now()
        logger.info(f"Request: {request.method} {request.url.path}")

        try:
            response = await call_next(request)
            duration = (datetime.now() - start_time).total_seconds()
            logger.info(f"Response: {response.status_code} - Duration: {duration:.3f}s")
            return response
        except Exception as e:
            logger.error(f"Error processing request: {str(e)}")
            raise


def create_app(settings: Optional[Settings] = None, http: Optional[Any] = None) -> FastAPI:
    """
    Build the portal app.

    Args:
    - settings (Settings): Defaults to get_settings()
    - http: HTTP session shared by every visitor's ApiClient (tests pass a TestClient of a fake backend)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.registry = VisitorRegistry(settings, http, AuthAuditLogger(settings.logs_dir))

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(LoggingMiddleware)

    # The visitor cookie only carries the visitor id, tokens stay server side
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        max_age=settings.session_expire_minutes * 60,
        same_site="lax",
        https_only=settings.https_enabled
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        max_age=3600
    )

    @app.exception_handler(PageRedirect)
    async def page_redirect_handler(request: Request, exc: PageRedirect):
        return RedirectResponse(url=exc.location, status_code=303)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        status_code = exc.status_code if 400 <= exc.status_code < 600 else 502
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "message": exc.message, "code": exc.code.value},
        )

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError):
        logger.error(f"Backend unreachable while serving {request.url.path}: {str(exc)}")
        return JSONResponse(status_code=502, content={"success": False, "message": str(exc), "code": "TRANSPORT_ERROR"})

    app.include_router(auth_router, tags=['authentication'])
    app.include_router(pages_router, tags=['pages'])
    app.include_router(sessions_router, tags=['sessions'])
    app.include_router(chat_router, tags=['chat'])

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"{settings.app_name} {settings.app_version} started, backend at {settings.api_base_url}")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.registry.close()
        logger.info("Portal shut down, chat pollers stopped")

    return app
