"""
AuthContext: single source of truth for "who is logged in and what can they do".

One context exists per client (per visitor in the portal). It is created at startup,
verified against the server once through ``initialize`` and torn down by ``logout``.
All actions are coroutines; the blocking HTTP calls run in a worker thread so the event
loop keeps serving other visitors.
"""
import asyncio
from typing import Any, Callable, Iterable, Optional
from tutor_portal.errors import PortalError
from tutor_portal.logger import AuthAuditLogger, logger
from tutor_portal.schemas.authentication_schema import ApiResponse, AuthResult
from tutor_portal.schemas.user_schema import (
    LoginRequest, Permissions, RegisterRequest, SsoLoginRequest, User, UserRole
)
from tutor_portal.services.auth_service import AuthService


class AuthContext:
    """
    Attributes:
        user (User): The authenticated user, None when anonymous
        loading (bool): True until the startup verification has finished
        error (str): Message of the last failed auth action
        permissions (Permissions): Role based UI data, loaded on demand
    """

    def __init__(self, auth_service: AuthService, audit: Optional[AuthAuditLogger] = None):
        self.auth_service = auth_service
        self.audit = audit
        self.user: Optional[User] = None
        self.loading = True
        self.error: Optional[str] = None
        self.permissions: Optional[Permissions] = None

        # Bumped by every action that sets or clears the user. The startup verification
        # only applies its result if nothing newer happened while it was in flight.
        self._generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    async def _call(self, fn: Callable, *args) -> Any:
        return await asyncio.to_thread(fn, *args)

    def _audit(self, event_type: str, user: Optional[User] = None, **details):
        if self.audit:
            self.audit.log_auth_event(event_type, user.id if user else None, details)

    def _set_user(self, user: Optional[User]):
        self._generation += 1
        self.user = user

    ##########################
    ### STARTUP VERIFYING ####
    ##########################

    async def initialize(self):
        """
        Verify the stored session with the server.

        The cached user is shown right away, then replaced by /auth/me. Any failure
        (invalid token, expired session, unknown user) forces a full logout.
        """
        generation = self._generation
        try:
            if not self.auth_service.is_authenticated():
                return

            stored_user = self.auth_service.get_stored_user()
            if stored_user:
                self.user = stored_user

            try:
                response: ApiResponse = await self._call(self.auth_service.get_me)
            except PortalError as e:
                logger.info(f"Session expired or user not found, logging out: {str(e)}")
                await self._expire(generation)
                return

            if generation != self._generation:
                # A login/logout finished while we were waiting, its result wins
                return

            if response.success:
                user = User.model_validate(response.unwrap("user"))
                self.user = user
                self.auth_service.store_user(user)
            else:
                logger.info("Token invalid, logging out")
                await self._expire(generation)
        except ValueError as e:
            logger.error(f"Auth init error: {str(e)}")
            await self._expire(generation)
        finally:
            self.loading = False

    async def _expire(self, generation: int):
        if generation != self._generation:
            return
        self._audit("session_expired", self.user)
        await self._call(self.auth_service.logout)
        self._set_user(None)
        self.permissions = None

    ##########################
    ##### AUTH ACTIONS #######
    ##########################

    async def _authenticate(self, event_type: str, fn: Callable, payload) -> AuthResult:
        self.error = None
        try:
            response: ApiResponse = await self._call(fn, payload)
        except PortalError as e:
            message = getattr(e, "message", str(e))
            self.error = message
            self._audit(f"{event_type}_failed", None, message=message)
            return AuthResult(success=False, message=message)
        except ValueError as e:
            logger.error(f"Malformed {event_type} response: {str(e)}")
            self.error = "Invalid response from the server"
            return AuthResult(success=False, message=self.error)

        if response.success:
            user = self.auth_service.get_stored_user()
            self._set_user(user)
            self._audit(event_type, user)
            return AuthResult(success=True)

        self._audit(f"{event_type}_failed", None, message=response.message)
        return AuthResult(success=False, message=response.message)

    async def login(self, credentials: LoginRequest) -> AuthResult:
        return await self._authenticate("login", self.auth_service.login, credentials)

    async def register(self, user_data: RegisterRequest) -> AuthResult:
        return await self._authenticate("register", self.auth_service.register, user_data)

    async def sso_login(self, credentials: SsoLoginRequest) -> AuthResult:
        return await self._authenticate("sso_login", self.auth_service.sso_login, credentials)

    async def logout(self):
        """Clear the session. Server side invalidation is best effort and never raises."""
        user = self.user
        self._set_user(None)
        self.permissions = None
        await self._call(self.auth_service.logout)
        if user:
            self._audit("logout", user)

    async def load_permissions(self) -> Optional[Permissions]:
        try:
            self.permissions = await self._call(self.auth_service.get_permissions)
        except PortalError as e:
            logger.error(f"Failed to load permissions: {str(e)}")
        return self.permissions

    def update_user(self, fields: dict):
        """Merge profile changes into the current user and persist them."""
        if not self.user:
            return
        merged = {**self.user.model_dump(), **fields}
        self.user = User.model_validate(merged)
        self.auth_service.store_user(self.user)

    ##########################
    ###### ROLE CHECKS #######
    ##########################

    def has_role(self, role) -> bool:
        return self.user is not None and self.user.role.value == _role_value(role)

    def has_any_role(self, roles: Iterable) -> bool:
        return self.user is not None and self.user.role.value in {_role_value(role) for role in roles}


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)
