import os

# Settings are read from the environment when the app modules are imported
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("HTTPS_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from tutor_portal.api import ApiClient
from tutor_portal.auth_context import AuthContext
from tutor_portal.config import Settings
from tutor_portal.main import create_app
from tutor_portal.services import AuthService, ChatService, FeedbackService, SessionService
from tutor_portal.storage import MemoryStorage
from tests.fake_backend import STUDENT_PASSWORD, FakeBackend

BACKEND_URL = "http://backend"


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret-key",
        api_base_url=f"{BACKEND_URL}/api",
        https_enabled=False,
        rate_limit_enabled=False,
        chat_poll_interval_seconds=0.05,
        user_search_debounce_seconds=0.05,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def backend_http(backend):
    return TestClient(backend.app, base_url=BACKEND_URL)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def api(settings, storage, backend_http):
    return ApiClient(settings, storage, http=backend_http)


@pytest.fixture
def auth_service(api, storage):
    return AuthService(api, storage)


@pytest.fixture
def session_service(api):
    return SessionService(api)


@pytest.fixture
def feedback_service(api):
    return FeedbackService(api)


@pytest.fixture
def chat_service(api):
    return ChatService(api)


@pytest.fixture
def auth_context(auth_service):
    return AuthContext(auth_service)


@pytest.fixture
def login_as(backend, storage):
    """Put a valid token pair and cached user for ``user_id`` into storage."""
    def _login(user_id: str):
        access, refresh = backend.issue_tokens(user_id)
        storage.set("accessToken", access)
        storage.set("refreshToken", refresh)
        storage.set_json("user", backend.public_user(user_id))
        return access, refresh
    return _login


@pytest.fixture
def portal(settings, backend_http, tmp_path):
    settings.logs_dir = str(tmp_path)
    with TestClient(create_app(settings, http=backend_http)) as client:
        yield client


@pytest.fixture
def portal_login(portal):
    def _login(email: str, password: str = STUDENT_PASSWORD):
        response = portal.post("/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response
    return _login
