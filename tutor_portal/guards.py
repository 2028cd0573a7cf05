"""
Route guard: decides whether a page is reachable for the current auth state.

The decision is pure and synchronous. While the auth state is still being verified the
guard answers LOADING and the caller renders nothing (or a spinner).
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from tutor_portal.schemas.user_schema import STAFF_ROLES, UserRole
import enum

LOGIN_PATH = "/login"
UNAUTHORIZED_PATH = "/unauthorized"


class GuardState(str, enum.Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.state == GuardState.AUTHORIZED


def evaluate(auth, roles: Optional[Iterable] = None) -> GuardDecision:
    """
    Evaluate the guard for the given auth context.

    Args:
    - auth: Anything exposing ``loading``, ``is_authenticated`` and ``has_any_role``
    - roles: Allowed roles. None means any authenticated role.

    Returns:
    - GuardDecision: The state and, for denials, where to redirect
    """
    if auth.loading:
        return GuardDecision(GuardState.LOADING)
    if not auth.is_authenticated:
        return GuardDecision(GuardState.UNAUTHENTICATED, LOGIN_PATH)
    if roles is not None and not auth.has_any_role(roles):
        return GuardDecision(GuardState.UNAUTHORIZED, UNAUTHORIZED_PATH)
    return GuardDecision(GuardState.AUTHORIZED)


@dataclass(frozen=True)
class Route:
    path: str
    protected: bool = True
    roles: Optional[Tuple[UserRole, ...]] = None

    def matches(self, path: str) -> bool:
        pattern = [part for part in self.path.split("/") if part]
        parts = [part for part in path.split("?")[0].split("/") if part]
        if len(pattern) != len(parts):
            return False
        return all(p.startswith(":") or p == part for p, part in zip(pattern, parts))

    @property
    def is_static(self) -> bool:
        return ":" not in self.path


# Route table of the portal. Static routes are matched before parameterized ones
# so /sessions/create never resolves to /sessions/:id.
ROUTES = (
    # Public routes
    Route("/", protected=False),
    Route("/login", protected=False),
    Route("/register", protected=False),
    Route("/tutors", protected=False),
    Route("/tutors/:id", protected=False),
    Route("/unauthorized", protected=False),

    # Protected routes
    Route("/dashboard"),
    Route("/profile"),
    Route("/matching"),
    Route("/sessions"),
    Route("/sessions/create", roles=(UserRole.TUTOR,)),
    Route("/sessions/:id"),
    Route("/feedback"),
    Route("/library"),
    Route("/notifications"),
    Route("/settings"),
    Route("/community"),
    Route("/programs"),
    Route("/learning-paths"),
    Route("/chat"),
    Route("/chat/:conversationId"),

    # Admin/Staff routes
    Route("/reports", roles=STAFF_ROLES),
    Route("/admin", roles=STAFF_ROLES),
)


def find_route(path: str) -> Optional[Route]:
    candidates = [route for route in ROUTES if route.matches(path)]
    if not candidates:
        return None
    candidates.sort(key=lambda route: not route.is_static)
    return candidates[0]


def resolve(path: str, auth) -> Optional[GuardDecision]:
    """
    Find the route for ``path`` and evaluate its guard.

    Returns:
    - GuardDecision: The decision, always AUTHORIZED for public routes
    - None: If no route matches (the caller renders its not found page)
    """
    route = find_route(path)
    if route is None:
        return None
    if not route.protected:
        return GuardDecision(GuardState.AUTHORIZED)
    return evaluate(auth, route.roles)
