"""In-process fake of the storytelling backend's REST API.

A FastAPI app mounted under /api, reached through httpx.ASGITransport so the
real ApiClient code path (headers, JSON, status handling) is exercised without
a network. Tokens are real HS256 JWTs signed with SECRET; the fake verifies
them like the real backend would and answers 401 otherwise.

Errors use the backend's shape: {"message": "..."}.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from typing import Any

import httpx
import jwt
from fastapi import FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse

from taleforge.models import ROLE_CLAIM

SECRET = "fake-backend-secret"
AUDIENCE = "taleforge"
BASE_URL = "http://testserver/api"
GOOD_GOOGLE_TOKEN = "google-id-token-ok"


def make_token(
    email: str = "player@example.com",
    player_id: int = 7,
    expires_in: float = 3600,
    role: str | None = None,
    secret: str = SECRET,
) -> str:
    payload: dict[str, Any] = {
        "sub": str(player_id),
        "playerId": str(player_id),
        "email": email,
        "jti": uuid.uuid4().hex,
        "exp": int(time.time() + expires_in),
        "iss": "fake-backend",
        "aud": AUDIENCE,
    }
    if role is not None:
        payload[ROLE_CLAIM] = role
    return jwt.encode(payload, secret, algorithm="HS256")


class BackendError(Exception):
    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message


class FakeBackend:
    def __init__(self) -> None:
        self.characters: dict[int, dict[str, Any]] = {
            1: {
                "characterId": 1, "name": "Brunolf", "characterClass": "Fighter", "level": 3,
                "characterSheet": "# Brunolf\n\nSTR 16", "backstory": "A retired sellsword.",
                "playerId": 7,
            },
            2: {
                "characterId": 2, "name": "Ysolde", "characterClass": "Wizard", "level": 1,
                "characterSheet": "# Ysolde",
                "backstory": '[{"sender": "user", "text": "A wizard"}, {"sender": "ai", "text": "Done."}]',
                "playerId": 7,
            },
        }
        self.sessions: dict[str, dict[str, Any]] = {}
        self.submissions: dict[str, list[dict[str, Any]]] = {}
        self.users = [
            {"playerId": 7, "email": "player@example.com", "tier": "Free", "status": "Active",
             "isAdminGranted": False},
            {"playerId": 8, "email": "bard@example.com", "tier": "Premium", "status": "PastDue",
             "isAdminGranted": False},
        ]
        self.subscription: dict[str, Any] = {"hasSubscription": False, "tier": "", "status": ""}
        self.transactions: list[dict[str, Any]] = []
        self.provider = 1

        self.refresh_calls = 0
        self.refresh_delay = 0.05
        self.refresh_fails = False
        self.issued_tokens: list[str] = []
        self.auth_headers: list[tuple[str, str | None]] = []
        self.admin_actions: list[tuple[str, dict[str, Any]]] = []
        self.database_healthy = True

        self.app = self._build_app()

    @property
    def transport(self) -> httpx.ASGITransport:
        return httpx.ASGITransport(app=self.app)

    def _issue(self, **claims: Any) -> str:
        token = make_token(**claims)
        self.issued_tokens.append(token)
        return token

    def _claims(self, path: str, authorization: str | None) -> dict[str, Any]:
        self.auth_headers.append((path, authorization))
        if not authorization or not authorization.startswith("Bearer "):
            raise BackendError(401, "Missing bearer token")
        try:
            return jwt.decode(
                authorization[len("Bearer "):], SECRET, algorithms=["HS256"], audience=AUDIENCE
            )
        except jwt.PyJWTError:
            raise BackendError(401, "Invalid or expired token") from None

    def _admin(self, path: str, authorization: str | None) -> dict[str, Any]:
        claims = self._claims(path, authorization)
        if claims.get(ROLE_CLAIM) != "Administrator":
            raise BackendError(403, "Administrator role required")
        return claims

    def _character(self, character_id: int) -> dict[str, Any]:
        if character_id not in self.characters:
            raise BackendError(404, "Character not found")
        return self.characters[character_id]

    def _session(self, session_id: str) -> dict[str, Any]:
        if session_id not in self.sessions:
            raise BackendError(404, "Session not found")
        return self.sessions[session_id]

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.exception_handler(BackendError)
        async def backend_error(request: Request, exc: BackendError):
            return JSONResponse({"message": exc.message}, status_code=exc.status)

        # ── health ──

        @app.api_route("/api", methods=["GET", "HEAD"])
        async def root():
            return Response(headers={"x-version": "1.4.2"})

        @app.get("/api/health/database")
        async def database_health():
            if backend.database_healthy:
                return {"status": "ok", "version": "PostgreSQL 16"}
            return JSONResponse({"error": "connection refused"}, status_code=503)

        # ── auth ──

        @app.post("/api/auth/google")
        async def google_login(body: dict, authorization: str | None = Header(None)):
            backend.auth_headers.append(("auth/google", authorization))
            if body.get("idToken") != GOOD_GOOGLE_TOKEN:
                raise BackendError(400, "Invalid Google credential")
            return {"token": backend._issue()}

        @app.post("/api/auth/dev-login")
        async def dev_login(body: dict, authorization: str | None = Header(None)):
            backend.auth_headers.append(("auth/dev-login", authorization))
            email = body.get("email", "")
            if not email:
                return {}
            role = "Administrator" if email.startswith("admin") else None
            return {"token": backend._issue(email=email, role=role)}

        @app.post("/api/auth/refresh")
        async def refresh(body: dict, authorization: str | None = Header(None)):
            backend.refresh_calls += 1
            backend.auth_headers.append(("auth/refresh", authorization))
            await asyncio.sleep(backend.refresh_delay)
            if backend.refresh_fails:
                raise BackendError(401, "Refresh token rejected")
            old = jwt.decode(body["token"], options={"verify_signature": False})
            return {"token": backend._issue(email=old["email"], role=old.get(ROLE_CLAIM))}

        @app.get("/api/auth/admin/test")
        async def admin_test(authorization: str | None = Header(None)):
            claims = backend._admin("auth/admin/test", authorization)
            return {"message": "Admin access confirmed", "email": claims["email"]}

        # ── characters ──

        @app.get("/api/characters")
        async def list_characters(authorization: str | None = Header(None)):
            backend._claims("characters", authorization)
            return list(backend.characters.values())

        @app.get("/api/character/{character_id}")
        async def get_character(character_id: int, authorization: str | None = Header(None)):
            backend._claims("character", authorization)
            return backend._character(character_id)

        @app.delete("/api/character/{character_id}")
        async def delete_character(character_id: int, authorization: str | None = Header(None)):
            backend._claims("character", authorization)
            backend._character(character_id)
            del backend.characters[character_id]
            return Response(status_code=204)

        @app.post("/api/character/saveFromConversation")
        async def save_from_conversation(body: dict, authorization: str | None = Header(None)):
            claims = backend._claims("character/saveFromConversation", authorization)
            character_id = max(backend.characters, default=0) + 1
            backend.characters[character_id] = {
                "characterId": character_id,
                "name": body["name"],
                "characterSheet": body["characterSheet"],
                "backstory": json.dumps(body["conversation"]),
                "playerId": int(claims["playerId"]),
            }
            return {"characterId": character_id}

        @app.put("/api/character/{character_id}/sheet")
        async def update_sheet(character_id: int, body: dict, authorization: str | None = Header(None)):
            backend._claims("character/sheet", authorization)
            backend._character(character_id)["characterSheet"] = body["characterSheet"]
            return {"ok": True}

        @app.post("/api/character/{character_id}/image/generate")
        async def generate_image(character_id: int, authorization: str | None = Header(None)):
            backend._claims("character/image/generate", authorization)
            backend._character(character_id)
            return {"imageUrl": f"https://images.example/{character_id}.png"}

        @app.put("/api/character/{character_id}/image")
        async def save_image(character_id: int, body: dict, authorization: str | None = Header(None)):
            backend._claims("character/image", authorization)
            backend._character(character_id)["imageUrl"] = body["imageUrl"]
            return {"ok": True}

        @app.post("/api/ai/negotiate")
        async def negotiate(body: dict, authorization: str | None = Header(None)):
            backend._claims("ai/negotiate", authorization)
            last = body["messages"][-1]["text"]
            return {"response": f"#### Character\n\nA hero who {last}"}

        # ── sessions ──

        @app.post("/api/session/character/{character_id}")
        async def get_or_create_session(character_id: int, authorization: str | None = Header(None)):
            backend._claims("session/character", authorization)
            backend._character(character_id)
            session_id = f"s-{character_id}"
            backend.sessions.setdefault(session_id, {
                "sessionId": session_id, "characterId": character_id, "summary": "",
            })
            backend.submissions.setdefault(session_id, [])
            return backend.sessions[session_id]

        @app.post("/api/dm/session/{session_id}/start")
        async def start(session_id: str, authorization: str | None = Header(None)):
            backend._claims("dm/start", authorization)
            session = backend._session(session_id)
            session["summary"] = "You wake in the Prancing Pony."
            return {"narrative": session["summary"], "dmNotes": "Opening scene"}

        @app.post("/api/dm/session/{session_id}/action")
        async def action(session_id: str, body: dict, authorization: str | None = Header(None)):
            backend._claims("dm/action", authorization)
            session = backend._session(session_id)
            if not body.get("action"):
                raise BackendError(400, "Action is required")
            narrative = f"You {body['action']}. The room falls silent."
            log = backend.submissions[session_id]
            log.append({"sequence": len(log) + 1, "action": body["action"], "narrative": narrative})
            session["summary"] = narrative
            return {"narrative": narrative, "dmNotes": f"turn {len(log)}"}

        @app.get("/api/sessions/{session_id}/history")
        async def history(
            session_id: str, page: int = 1, pageSize: int = 4,
            authorization: str | None = Header(None),
        ):
            backend._claims("sessions/history", authorization)
            backend._session(session_id)
            newest_first = list(reversed(backend.submissions[session_id]))
            chunk = newest_first[(page - 1) * pageSize: page * pageSize]
            total = len(newest_first)
            return {
                "submissions": chunk,
                "page": page,
                "pageSize": pageSize,
                "totalPages": max(1, -(-total // pageSize)),
                "totalCount": total,
            }

        @app.post("/api/sessions/{session_id}/finalize")
        async def finalize(session_id: str, authorization: str | None = Header(None)):
            backend._claims("sessions/finalize", authorization)
            backend._session(session_id)
            lines = [f"> {s['action']}\n\n{s['narrative']}" for s in backend.submissions[session_id]]
            return {"fileName": f"{session_id}.md", "content": "\n\n".join(lines)}

        # ── admin ──

        @app.get("/api/admin/api-provider")
        async def get_provider(authorization: str | None = Header(None)):
            backend._admin("admin/api-provider", authorization)
            names = {1: "Grok", 2: "OpenAI"}
            return {
                "currentProvider": backend.provider,
                "displayName": names[backend.provider],
                "availableProviders": [
                    {"provider": k, "displayName": v} for k, v in names.items()
                ],
            }

        @app.post("/api/admin/api-provider/set")
        async def set_provider(body: dict, authorization: str | None = Header(None)):
            backend._admin("admin/api-provider/set", authorization)
            if body.get("provider") not in (1, 2):
                raise BackendError(400, "Unknown provider")
            backend.provider = body["provider"]
            return {"ok": True}

        @app.get("/api/admin/subscription/users")
        async def users(authorization: str | None = Header(None)):
            backend._admin("admin/subscription/users", authorization)
            return {"users": backend.users}

        @app.post("/api/admin/subscription/{action}")
        async def admin_action(action: str, body: dict, authorization: str | None = Header(None)):
            backend._admin(f"admin/subscription/{action}", authorization)
            user = next((u for u in backend.users if u["playerId"] == body.get("playerId")), None)
            if user is None:
                raise BackendError(404, "Player not found")
            backend.admin_actions.append((action, body))
            if action == "grant-free-access":
                user.update(tier="AdminGranted", status="Active", isAdminGranted=True)
            elif action == "revoke-free-access":
                user.update(tier="Free", isAdminGranted=False)
            elif action == "suspend":
                user["status"] = "Suspended"
            elif action == "reactivate":
                user["status"] = "Active"
            else:
                raise BackendError(404, "Unknown action")
            return {"ok": True}

        # ── subscription ──

        @app.get("/api/subscription/status")
        async def subscription_status(authorization: str | None = Header(None)):
            backend._claims("subscription/status", authorization)
            return backend.subscription

        @app.post("/api/subscription/create")
        async def subscription_create(body: dict, authorization: str | None = Header(None)):
            backend._claims("subscription/create", authorization)
            if backend.subscription.get("hasSubscription"):
                raise BackendError(409, "Subscription already exists")
            backend.subscription = {
                "hasSubscription": True, "tier": body["tier"], "status": "Active",
                "isAdminGranted": False, "currentPeriodEnd": "2026-11-17T00:00:00Z",
            }
            backend.transactions.append({
                "transactionId": len(backend.transactions) + 1, "type": "Charge",
                "status": "Completed", "amount": 9.99, "currency": "USD",
                "createdAt": "2026-10-17T09:30:00Z",
            })
            return backend.subscription

        @app.put("/api/subscription/upgrade")
        async def subscription_upgrade(body: dict, authorization: str | None = Header(None)):
            backend._claims("subscription/upgrade", authorization)
            if not backend.subscription.get("hasSubscription"):
                raise BackendError(400, "No subscription to upgrade")
            backend.subscription["tier"] = body["newTier"]
            return backend.subscription

        @app.post("/api/subscription/cancel")
        async def subscription_cancel(authorization: str | None = Header(None)):
            backend._claims("subscription/cancel", authorization)
            if not backend.subscription.get("hasSubscription"):
                raise BackendError(400, "No active subscription")
            backend.subscription["status"] = "Cancelled"
            return backend.subscription

        @app.get("/api/subscription/transactions")
        async def subscription_transactions(authorization: str | None = Header(None)):
            backend._claims("subscription/transactions", authorization)
            return {"transactions": backend.transactions}

        @app.post("/api/subscription/validate-access")
        async def validate_access(body: dict, authorization: str | None = Header(None)):
            backend._claims("subscription/validate-access", authorization)
            tier = backend.subscription.get("tier")
            ok = body.get("requiredTier") == "Free" or tier in ("Premium", "AdminGranted")
            return {"hasAccess": ok}

        return app
