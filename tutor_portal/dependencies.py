"""
Portal dependencies.

Each browser visiting the portal is a "visitor", identified by an id kept in the signed
session cookie. A visitor owns its token storage, its API client and its AuthContext.
The context is created and verified on the visitor's first request. Visitors are held
across requests once they are authenticated, and discarded at logout or when idle.
"""
import asyncio
import time
import uuid
from typing import Any, Dict, Optional
from fastapi import Depends, HTTPException, Request
from tutor_portal import guards
from tutor_portal.api import ApiClient
from tutor_portal.auth_context import AuthContext
from tutor_portal.chat_poller import ChatPoller
from tutor_portal.config import Settings
from tutor_portal.logger import AuthAuditLogger, logger
from tutor_portal.services import AuthService, ChatService, FeedbackService, ReportService, SessionService
from tutor_portal.storage import Storage, create_storage

VISITOR_KEY = "visitor_id"


class PageRedirect(Exception):
    """Raised by the route guard; turned into a redirect response by the app."""

    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


class Visitor:
    """Everything the portal keeps for one browser."""

    def __init__(self, visitor_id: str, settings: Settings, storage: Storage, http: Optional[Any] = None,
                 audit: Optional[AuthAuditLogger] = None):
        self.id = visitor_id
        self.settings = settings
        self.storage = storage
        self.api = ApiClient(settings, storage, http)
        self.auth_service = AuthService(self.api, storage)
        self.sessions = SessionService(self.api)
        self.chat = ChatService(self.api)
        self.feedback = FeedbackService(self.api)
        self.reports = ReportService(self.api)
        self.auth = AuthContext(self.auth_service, audit)
        self.pollers = set()
        self.last_seen = time.monotonic()

    def touch(self):
        self.last_seen = time.monotonic()

    def new_poller(self, listener=None) -> ChatPoller:
        poller = ChatPoller(
            self.chat,
            interval=self.settings.chat_poll_interval_seconds,
            debounce=self.settings.user_search_debounce_seconds,
            min_query_length=self.settings.user_search_min_length,
            listener=listener,
        )
        self.pollers.add(poller)
        return poller

    async def release_poller(self, poller: ChatPoller):
        await poller.close()
        self.pollers.discard(poller)

    async def close(self):
        for poller in list(self.pollers):
            await self.release_poller(poller)


class VisitorRegistry:
    """
    Maps visitor ids to Visitor objects.

    Only authenticated visitors are kept. An anonymous visitor lives for one request
    until a login, SSO login or registration hands it to ``keep``. Kept visitors idle
    for longer than the session cookie lifetime are dropped.

    Attributes:
        settings (Settings): Portal settings
        http: Shared HTTP session handed to every ApiClient (None builds a requests.Session)
        idle_timeout (float): Seconds without a request after which a visitor is dropped
    """

    def __init__(self, settings: Settings, http: Optional[Any] = None, audit: Optional[AuthAuditLogger] = None):
        self.settings = settings
        self.http = http
        self.audit = audit
        self.idle_timeout = settings.session_expire_minutes * 60
        self._visitors: Dict[str, Visitor] = {}
        self._lock = asyncio.Lock()

    def __len__(self):
        return len(self._visitors)

    def __contains__(self, visitor_id: str):
        return visitor_id in self._visitors

    async def get(self, visitor_id: str) -> Visitor:
        await self.evict_idle()

        async with self._lock:
            visitor = self._visitors.get(visitor_id)
        if visitor is not None:
            visitor.touch()
            return visitor

        storage = create_storage(self.settings, visitor_id)
        visitor = Visitor(visitor_id, self.settings, storage, self.http, self.audit)
        await visitor.auth.initialize()
        if visitor.auth.is_authenticated:
            # Stored tokens from an earlier run were still valid
            return await self.keep(visitor)
        return visitor

    async def keep(self, visitor: Visitor) -> Visitor:
        """Start holding ``visitor`` across requests. An already kept visitor with the same id wins."""
        async with self._lock:
            kept = self._visitors.setdefault(visitor.id, visitor)
        kept.touch()
        return kept

    async def evict_idle(self):
        now = time.monotonic()
        async with self._lock:
            idle = [
                visitor_id for visitor_id, visitor in self._visitors.items()
                if not visitor.pollers and now - visitor.last_seen > self.idle_timeout
            ]
        for visitor_id in idle:
            logger.info(f"Visitor {visitor_id} idle for more than {self.idle_timeout:.0f}s, dropped")
            await self.discard(visitor_id)

    async def discard(self, visitor_id: str):
        visitor = self._visitors.pop(visitor_id, None)
        if visitor is not None:
            await visitor.close()

    async def close(self):
        for visitor_id in list(self._visitors):
            await self.discard(visitor_id)


def visitor_id_from(session: dict) -> str:
    visitor_id = session.get(VISITOR_KEY)
    if not visitor_id:
        visitor_id = str(uuid.uuid4())
        session[VISITOR_KEY] = visitor_id
    return visitor_id


##################################
### AUTHORIZATION DEPENDENCIES ###
##################################

def get_registry(request: Request) -> VisitorRegistry:
    return request.app.state.registry


async def get_visitor(request: Request, registry: VisitorRegistry = Depends(get_registry)) -> Visitor:
    """Resolve (or create) the visitor of the current request."""
    return await registry.get(visitor_id_from(request.session))


def require_page(*roles) -> Any:
    """
    Guard a page. Anonymous visitors are redirected to /login, visitors whose role is
    not in ``roles`` to /unauthorized. Without ``roles`` any authenticated role passes.
    """
    async def dependency(visitor: Visitor = Depends(get_visitor)) -> Visitor:
        decision = guards.evaluate(visitor.auth, roles or None)
        if decision.state == guards.GuardState.LOADING:
            raise HTTPException(status_code=503, detail="Authentication state is still loading")
        if not decision.allowed:
            logger.info(f"Visitor {visitor.id} redirected to {decision.redirect_to} ({decision.state.value})")
            raise PageRedirect(decision.redirect_to)
        return visitor
    return dependency


async def get_auth(visitor: Visitor = Depends(get_visitor)) -> AuthContext:
    return visitor.auth
