"""
Auth service: login/register/SSO, logout, current user and permissions.
It is the only component that writes the token storage.
"""
from typing import Any, List, Optional
from tutor_portal.api import ApiClient
from tutor_portal.errors import PortalError
from tutor_portal.logger import logger
from tutor_portal.schemas.authentication_schema import ApiResponse, AuthPayload
from tutor_portal.schemas.user_schema import (
    LoginRequest, PasswordUpdate, Permissions, RegisterRequest, SsoLoginRequest, User
)
from tutor_portal.storage import ACCESS_TOKEN_KEY, PERMISSIONS_KEY, REFRESH_TOKEN_KEY, USER_KEY, Storage


class AuthService:
    def __init__(self, api: ApiClient, storage: Storage):
        self.api = api
        self.storage = storage

    def _store_session(self, response: ApiResponse) -> Optional[User]:
        """Persist tokens and user of a successful auth response."""
        if not response.success:
            return None
        payload = AuthPayload.model_validate(response.data)
        self.storage.set(ACCESS_TOKEN_KEY, payload.access_token)
        self.storage.set(REFRESH_TOKEN_KEY, payload.refresh_token)
        self.store_user(payload.user)
        return payload.user

    def login(self, credentials: LoginRequest) -> ApiResponse:
        response = self.api.post("/auth/login", credentials.model_dump(by_alias=True))
        self._store_session(response)
        return response

    def register(self, user_data: RegisterRequest) -> ApiResponse:
        response = self.api.post("/auth/register", user_data.model_dump(by_alias=True, exclude_none=True, mode="json"))
        self._store_session(response)
        return response

    def sso_login(self, credentials: SsoLoginRequest) -> ApiResponse:
        response = self.api.post("/auth/sso", credentials.model_dump(by_alias=True))
        self._store_session(response)
        return response

    def logout(self):
        """
        Invalidate the refresh token server side (best effort), then clear local state.
        Never raises, and calling it twice is harmless.
        """
        try:
            refresh_token = self.storage.get(REFRESH_TOKEN_KEY)
            if refresh_token:
                self.api.post("/auth/logout", {"refreshToken": refresh_token})
        except PortalError as e:
            logger.error(f"Logout error: {str(e)}")
        finally:
            self.storage.clear()

    def get_me(self) -> ApiResponse:
        return self.api.get("/auth/me")

    def update_password(self, passwords: PasswordUpdate) -> ApiResponse:
        return self.api.put("/auth/password", passwords.model_dump(by_alias=True))

    def get_permissions(self) -> Optional[Permissions]:
        response = self.api.get("/auth/permissions")
        if not response.success:
            return None
        permissions = Permissions.model_validate(response.data or {})
        self.storage.set_json(PERMISSIONS_KEY, permissions.model_dump(by_alias=True))
        return permissions

    #########################
    ### STORED AUTH STATE ###
    #########################

    def is_authenticated(self) -> bool:
        return bool(self.storage.get(ACCESS_TOKEN_KEY))

    def get_token(self) -> Optional[str]:
        return self.storage.get(ACCESS_TOKEN_KEY)

    def store_user(self, user: User):
        self.storage.set_json(USER_KEY, user.model_dump(by_alias=True, mode="json"))

    def get_stored_user(self) -> Optional[User]:
        data = self.storage.get_json(USER_KEY)
        if not data:
            return None
        try:
            return User.model_validate(data)
        except ValueError:
            logger.error("Stored user could not be parsed, ignoring it")
            return None

    def get_stored_permissions(self) -> Optional[Permissions]:
        data = self.storage.get_json(PERMISSIONS_KEY)
        return Permissions.model_validate(data) if data else None

    def has_permission(self, key: str) -> bool:
        permissions = self.get_stored_permissions()
        return permissions.has(key) if permissions else False

    def sidebar_items(self) -> List[Any]:
        permissions = self.get_stored_permissions()
        return permissions.sidebar_items if permissions else []

    def dashboard_cards(self) -> List[str]:
        permissions = self.get_stored_permissions()
        return permissions.dashboard_cards if permissions else []
