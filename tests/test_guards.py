import pytest
from types import SimpleNamespace
from tutor_portal import guards
from tutor_portal.guards import GuardState
from tutor_portal.schemas.user_schema import STAFF_ROLES, UserRole


def make_auth(role=None, loading=False):
    roles = {role} if role else set()
    return SimpleNamespace(
        loading=loading,
        is_authenticated=role is not None,
        has_any_role=lambda allowed: any(getattr(r, "value", r) in roles for r in allowed),
    )


def test_loading_renders_nothing():
    decision = guards.evaluate(make_auth(loading=True), STAFF_ROLES)

    assert decision.state == GuardState.LOADING
    assert decision.redirect_to is None
    assert not decision.allowed


def test_anonymous_is_sent_to_login():
    decision = guards.evaluate(make_auth(), None)

    assert decision.state == GuardState.UNAUTHENTICATED
    assert decision.redirect_to == "/login"


def test_student_on_admin_page_is_unauthorized():
    decision = guards.resolve("/admin", make_auth("student"))

    assert decision.state == GuardState.UNAUTHORIZED
    assert decision.redirect_to == "/unauthorized"


@pytest.mark.parametrize("role", ["admin", "department_head", "coordinator"])
def test_staff_reach_reports(role):
    assert guards.resolve("/reports", make_auth(role)).allowed


def test_any_authenticated_role_without_role_list():
    for role in UserRole:
        assert guards.resolve("/dashboard", make_auth(role.value)).allowed


def test_create_session_is_tutor_only():
    assert guards.resolve("/sessions/create", make_auth("tutor")).allowed
    assert guards.resolve("/sessions/create", make_auth("student")).state == GuardState.UNAUTHORIZED
    # Detail pages of any session stay open to students
    assert guards.resolve("/sessions/abc123", make_auth("student")).allowed


def test_public_routes_ignore_auth_state():
    assert guards.resolve("/login", make_auth()).allowed
    assert guards.resolve("/tutors/42", make_auth(loading=True)).allowed


def test_unknown_route():
    assert guards.resolve("/does/not/exist", make_auth("admin")) is None


def test_find_route_prefers_static_paths():
    assert guards.find_route("/sessions/create").path == "/sessions/create"
    assert guards.find_route("/sessions/xyz").path == "/sessions/:id"
    assert guards.find_route("/chat/c-1?tab=files").path == "/chat/:conversationId"
