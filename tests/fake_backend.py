"""
In-memory stand-in for the tutoring REST backend.

Implements the endpoints the portal talks to with the same envelope and error shapes.
Tests drive it through ``TestClient(backend.app)``, which the ApiClient accepts as its
HTTP session.
"""
import itertools
import json
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

STUDENT_PASSWORD = "secret1"


class BackendError(Exception):
    def __init__(self, status_code: int, message: str, code: str = None):
        self.status_code = status_code
        self.message = message
        self.code = code


class FakeBackend:
    """
    Attributes:
        calls (list): (method, path) of every request received
        expired_tokens (set): Access tokens answered with 401 "Token expired"
        always_expired (bool): Answer every authenticated call with 401 "Token expired"
        refresh_fails (bool): Reject every refresh attempt
        duplicate_conversations (bool): List each conversation twice
    """

    def __init__(self):
        self.calls = []
        self.users = {}
        self.profiles = {}
        self.access_tokens = {}
        self.refresh_tokens = {}
        self.expired_tokens = set()
        self.always_expired = False
        self.refresh_fails = False
        self.duplicate_conversations = False
        self.sessions = {}
        self.conversations = {}
        self.messages = {}
        self.feedbacks = []
        self._ids = itertools.count(1)
        self._seed()
        self.app = self._build_app()

    ############################
    ########## DATA ############
    ############################

    def add_user(self, user_id: str, email: str, role: str, first_name: str, university_id: str = None):
        self.users[user_id] = {
            "_id": user_id,
            "email": email,
            "password": STUDENT_PASSWORD,
            "role": role,
            "userId": university_id or user_id.upper(),
            "firstName": first_name,
            "lastName": "Nguyen",
        }
        self.profiles[f"p-{user_id}"] = user_id
        return self.users[user_id]

    def add_session(self, session_id: str, status: str = "pending", tutor: str = "tutor", student: str = "student",
                    is_open: bool = False, max_participants: int = 1, registered=()):
        self.sessions[session_id] = {
            "_id": session_id,
            "title": f"Session {session_id}",
            "subject": "Giải tích 1",
            "status": status,
            "tutor": f"p-{tutor}",
            "student": f"p-{student}" if student else None,
            "registeredStudents": [f"p-{uid}" for uid in registered],
            "maxParticipants": max_participants,
            "isOpen": is_open,
            "startTime": "09:00",
            "endTime": "10:30",
            "sessionType": "online",
        }
        return self.sessions[session_id]

    def add_conversation(self, conversation_id: str, first: str, second: str, unread: int = 0):
        self.conversations[conversation_id] = {
            "_id": conversation_id,
            "participants": [first, second],
            "unread": {first: unread, second: unread},
            "updatedAt": datetime(2024, 5, 1).isoformat(),
        }
        self.messages[conversation_id] = []
        return self.conversations[conversation_id]

    def issue_tokens(self, user_id: str):
        n = next(self._ids)
        access, refresh = f"access-{user_id}-{n}", f"refresh-{user_id}-{n}"
        self.access_tokens[access] = user_id
        self.refresh_tokens[refresh] = user_id
        return access, refresh

    def _seed(self):
        self.add_user("student", "student@hcmut.edu.vn", "student", "An", "2110001")
        self.add_user("student2", "student2@hcmut.edu.vn", "student", "Binh", "2110002")
        self.add_user("tutor", "tutor@hcmut.edu.vn", "tutor", "Chi")
        self.add_user("admin", "admin@hcmut.edu.vn", "admin", "Dung")
        self.add_session("s-pending", "pending")
        self.add_session("s-confirmed", "confirmed")
        self.add_session("s-open", "confirmed", student=None, is_open=True, max_participants=2, registered=["student2"])
        self.add_conversation("c-1", "student", "tutor", unread=2)
        self.add_conversation("c-2", "student", "student2")

    ############################
    ####### SERIALIZERS ########
    ############################

    def public_user(self, user_id: str) -> dict:
        return {k: v for k, v in self.users[user_id].items() if k != "password"}

    def profile(self, profile_id, populated: bool):
        # Tutors come populated, students with a bare user id, like the real endpoints
        if profile_id is None:
            return None
        user_id = self.profiles[profile_id]
        return {"_id": profile_id, "user": self.public_user(user_id) if populated else user_id}

    def session_json(self, session_id: str) -> dict:
        raw = self.sessions[session_id]
        return {
            **raw,
            "tutor": self.profile(raw["tutor"], populated=True),
            "student": self.profile(raw["student"], populated=False),
            "registeredStudents": [
                {"student": self.profile(pid, populated=False), "registeredAt": "2024-05-01T08:00:00"}
                for pid in raw["registeredStudents"]
            ],
        }

    def conversation_json(self, conversation: dict, user_id: str) -> dict:
        other = next(uid for uid in conversation["participants"] if uid != user_id)
        messages = self.messages[conversation["_id"]]
        return {
            "_id": conversation["_id"],
            "otherUser": self.public_user(other),
            "lastMessage": messages[-1] if messages else None,
            "unreadCount": conversation["unread"][user_id],
            "updatedAt": conversation["updatedAt"],
        }

    ############################
    ########## HELPERS #########
    ############################

    def current_user(self, request: Request) -> str:
        header = request.headers.get("Authorization", "")
        token = header[len("Bearer "):] if header.startswith("Bearer ") else None
        if not token:
            raise BackendError(401, "Not authorized, no token")
        if self.always_expired or token in self.expired_tokens:
            raise BackendError(401, "Token expired")
        if token not in self.access_tokens:
            raise BackendError(401, "Invalid token")
        return self.access_tokens[token]

    def get_session(self, session_id: str) -> dict:
        if session_id not in self.sessions:
            raise BackendError(404, "Session not found", "NOT_FOUND")
        return self.sessions[session_id]

    def require_tutor(self, session: dict, user_id: str):
        if self.profiles.get(session["tutor"]) != user_id:
            raise BackendError(403, "Only the tutor of this session can do this", "NOT_SESSION_TUTOR")

    def calls_to(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method, path))

    ############################
    ########### APP ############
    ############################

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def record_calls(request: Request, call_next):
            backend.calls.append((request.method, request.url.path))
            return await call_next(request)

        @app.exception_handler(BackendError)
        async def backend_error(request: Request, exc: BackendError):
            content = {"success": False, "message": exc.message}
            if exc.code:
                content["code"] = exc.code
            return JSONResponse(status_code=exc.status_code, content=content)

        async def body(request: Request) -> dict:
            raw = await request.body()
            return json.loads(raw) if raw else {}

        def ok(data=None, status_code: int = 200, message: str = None):
            return JSONResponse(status_code=status_code, content={"success": True, "message": message, "data": data})

        def auth_success(user_id: str, status_code: int = 200):
            access, refresh = backend.issue_tokens(user_id)
            return ok({"accessToken": access, "refreshToken": refresh, "user": backend.public_user(user_id)}, status_code)

        # Auth
        @app.post("/api/auth/login")
        async def login(request: Request):
            data = await body(request)
            for user_id, user in backend.users.items():
                if user["email"] == data.get("email") and user["password"] == data.get("password"):
                    return auth_success(user_id)
            raise BackendError(401, "Invalid email or password")

        @app.post("/api/auth/sso")
        async def sso(request: Request):
            data = await body(request)
            for user_id, user in backend.users.items():
                if user["userId"] == data.get("userId") and user["password"] == data.get("password"):
                    return auth_success(user_id)
            raise BackendError(401, "Invalid SSO credentials")

        @app.post("/api/auth/register")
        async def register(request: Request):
            data = await body(request)
            if any(user["email"] == data.get("email") for user in backend.users.values()):
                raise BackendError(409, "Email already registered", "CONFLICT")
            user_id = f"u{next(backend._ids)}"
            backend.add_user(user_id, data["email"], data.get("role", "student"), data["firstName"], data["userId"])
            backend.users[user_id]["password"] = data["password"]
            return auth_success(user_id, 201)

        @app.post("/api/auth/refresh")
        async def refresh(request: Request):
            data = await body(request)
            user_id = backend.refresh_tokens.get(data.get("refreshToken"))
            if backend.refresh_fails or user_id is None:
                raise BackendError(401, "Invalid refresh token")
            access, _ = backend.issue_tokens(user_id)
            return ok({"accessToken": access})

        @app.post("/api/auth/logout")
        async def logout(request: Request):
            data = await body(request)
            backend.refresh_tokens.pop(data.get("refreshToken"), None)
            return ok(message="Logged out")

        @app.get("/api/auth/me")
        async def me(request: Request):
            return ok({"user": backend.public_user(backend.current_user(request))})

        @app.put("/api/auth/password")
        async def password(request: Request):
            user_id = backend.current_user(request)
            data = await body(request)
            if data.get("currentPassword") != backend.users[user_id]["password"]:
                raise BackendError(400, "Current password is incorrect")
            backend.users[user_id]["password"] = data["newPassword"]
            return ok(message="Password updated")

        @app.get("/api/auth/permissions")
        async def permissions(request: Request):
            role = backend.users[backend.current_user(request)]["role"]
            staff = role in ("admin", "department_head", "coordinator")
            return ok({
                "permissions": {"canViewReports": staff, "canCreateSession": role == "tutor"},
                "sidebarItems": [{"path": "/dashboard"}, {"path": "/sessions"}] + ([{"path": "/reports"}] if staff else []),
                "dashboardCards": ["sessions", "reports"] if staff else ["sessions"],
            })

        # Sessions
        @app.get("/api/sessions")
        async def list_sessions(request: Request, status: str = None):
            user_id = backend.current_user(request)
            mine = [
                sid for sid, s in backend.sessions.items()
                if user_id in (backend.profiles.get(s["tutor"]), backend.profiles.get(s["student"]))
                and (status is None or s["status"] == status)
            ]
            return ok({"sessions": [backend.session_json(sid) for sid in mine]})

        @app.get("/api/sessions/available")
        async def available(request: Request):
            backend.current_user(request)
            open_ids = [sid for sid, s in backend.sessions.items() if s["isOpen"]]
            return ok({"sessions": [backend.session_json(sid) for sid in open_ids]})

        @app.post("/api/sessions")
        async def create_session(request: Request):
            user_id = backend.current_user(request)
            if backend.users[user_id]["role"] != "tutor":
                raise BackendError(403, "Only tutors can create sessions", "FORBIDDEN")
            data = await body(request)
            session_id = f"s{next(backend._ids)}"
            backend.add_session(session_id, tutor=user_id, student=None, is_open=data.get("isOpen", False),
                                max_participants=data.get("maxParticipants", 1))
            backend.sessions[session_id]["title"] = data["title"]
            return ok({"session": backend.session_json(session_id)}, 201)

        @app.get("/api/sessions/{session_id}")
        async def get_session(session_id: str, request: Request):
            backend.current_user(request)
            backend.get_session(session_id)
            return ok({"session": backend.session_json(session_id)})

        def transition(session_id: str, request: Request, source: str, target: str):
            user_id = backend.current_user(request)
            session = backend.get_session(session_id)
            backend.require_tutor(session, user_id)
            if session["status"] != source:
                if target == "in_progress":
                    raise BackendError(400, "Session must be confirmed before starting", "SESSION_NOT_CONFIRMED")
                raise BackendError(400, f"Cannot move a {session['status']} session to {target}", "INVALID_TRANSITION")
            session["status"] = target
            return ok({"session": backend.session_json(session_id)})

        @app.put("/api/sessions/{session_id}/confirm")
        async def confirm(session_id: str, request: Request):
            return transition(session_id, request, "pending", "confirmed")

        @app.put("/api/sessions/{session_id}/start")
        async def start(session_id: str, request: Request):
            return transition(session_id, request, "confirmed", "in_progress")

        @app.put("/api/sessions/{session_id}/complete")
        async def complete(session_id: str, request: Request):
            return transition(session_id, request, "in_progress", "completed")

        @app.put("/api/sessions/{session_id}/cancel")
        async def cancel(session_id: str, request: Request):
            user_id = backend.current_user(request)
            session = backend.get_session(session_id)
            if user_id not in (backend.profiles.get(session["tutor"]), backend.profiles.get(session["student"])):
                raise BackendError(403, "Not a participant of this session", "FORBIDDEN")
            if session["status"] not in ("pending", "confirmed"):
                raise BackendError(400, "Session can no longer be cancelled", "INVALID_TRANSITION")
            session["status"] = "cancelled"
            session["cancellationReason"] = (await body(request)).get("reason")
            return ok({"session": backend.session_json(session_id)})

        @app.post("/api/sessions/{session_id}/register")
        async def register_session(session_id: str, request: Request):
            user_id = backend.current_user(request)
            session = backend.get_session(session_id)
            if len(session["registeredStudents"]) >= session["maxParticipants"]:
                raise BackendError(400, "Session is full", "SESSION_FULL")
            session["registeredStudents"].append(f"p-{user_id}")
            return ok({"session": backend.session_json(session_id)})

        # Feedback
        @app.post("/api/feedback")
        async def feedback(request: Request):
            backend.current_user(request)
            data = await body(request)
            record = {"_id": f"f{next(backend._ids)}", "session": data["sessionId"], "ratings": data["ratings"],
                      "comment": data.get("comment")}
            backend.feedbacks.append(record)
            return ok({"feedback": record}, 201)

        # Reports
        @app.get("/api/reports/dashboard")
        async def dashboard(request: Request):
            backend.current_user(request)
            return ok({"stats": {"totalSessions": len(backend.sessions)}})

        @app.get("/api/reports/overview")
        async def overview(request: Request, period: str = "month"):
            backend.current_user(request)
            return ok({"period": period, "sessions": len(backend.sessions), "feedbacks": len(backend.feedbacks)})

        # Chat
        @app.get("/api/chat/conversations")
        async def conversations(request: Request):
            user_id = backend.current_user(request)
            items = [
                backend.conversation_json(c, user_id)
                for c in backend.conversations.values() if user_id in c["participants"]
            ]
            if backend.duplicate_conversations:
                items = items + items
            return ok({"conversations": items})

        @app.get("/api/chat/conversations/user/{other_id}")
        async def conversation_with(other_id: str, request: Request):
            user_id = backend.current_user(request)
            for conversation in backend.conversations.values():
                if set(conversation["participants"]) == {user_id, other_id}:
                    return ok({"conversation": backend.conversation_json(conversation, user_id)})
            conversation = backend.add_conversation(f"c{next(backend._ids)}", user_id, other_id)
            return ok({"conversation": backend.conversation_json(conversation, user_id)})

        @app.get("/api/chat/conversations/{conversation_id}/messages")
        async def messages(conversation_id: str, request: Request):
            backend.current_user(request)
            return ok({"messages": backend.messages.get(conversation_id, [])})

        @app.post("/api/chat/conversations/{conversation_id}/messages")
        async def send(conversation_id: str, request: Request):
            user_id = backend.current_user(request)
            data = await body(request)
            message = {
                "_id": f"m{next(backend._ids)}",
                "conversation": {"_id": conversation_id},
                "sender": {"_id": user_id},
                "content": data["content"],
                "type": data.get("type", "text"),
                "createdAt": datetime(2024, 5, 1, 9, 0).isoformat(),
            }
            backend.messages[conversation_id].append(message)
            for uid in backend.conversations[conversation_id]["participants"]:
                if uid != user_id:
                    backend.conversations[conversation_id]["unread"][uid] += 1
            return ok({"message": message}, 201)

        @app.put("/api/chat/conversations/{conversation_id}/read")
        async def read(conversation_id: str, request: Request):
            user_id = backend.current_user(request)
            backend.conversations[conversation_id]["unread"][user_id] = 0
            return ok()

        @app.get("/api/chat/users/search")
        async def search(request: Request, q: str = "", role: str = None):
            user_id = backend.current_user(request)
            found = [
                backend.public_user(uid) for uid, user in backend.users.items()
                if uid != user_id and q.lower() in (user["firstName"] + " " + user["email"]).lower()
                and (role is None or user["role"] == role)
            ]
            return ok({"users": found})

        return app
