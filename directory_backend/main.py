import logging
import math
import os
import sys
from pathlib import Path
from typing import Optional

from fastapi import Cookie, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
import psycopg2.extras
from dotenv import load_dotenv
from jose import JWTError, jwt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from directory_backend import app_context  # noqa: E402
from directory_backend.app.entitlements import Actor, ActorRole  # noqa: E402
from directory_backend.app.routes.addons import router as addons_router  # noqa: E402
from directory_backend.app.routes.entitlements import router as entitlements_router  # noqa: E402
from directory_backend.app.routes.subscriptions import router as subscriptions_router  # noqa: E402


load_dotenv()


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "directory_db"),
    user=os.getenv("DB_USER", "directory_user"),
    password=os.getenv("DB_PASSWORD", "directory_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if origin.strip()]

logger = logging.getLogger("auth")


def get_conn():
    return psycopg2.connect(**DB_CFG)


def _role_from_value(value: Optional[str]) -> ActorRole:
    try:
        return ActorRole((value or "").lower())
    except ValueError:
        return ActorRole.VIEWER


def get_actor_by_id(user_id: str) -> Optional[Actor]:
    with get_conn() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("SELECT id, role FROM users WHERE id = %s AND is_active", (user_id,))
        row = cur.fetchone()
    if not row:
        return None
    return Actor(user_id=str(row["id"]), role=_role_from_value(row.get("role")))


def resolve_actor_from_session_token(session_token: str) -> Optional[Actor]:
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    return get_actor_by_id(str(subject))


def get_current_actor(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> Actor:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    actor = resolve_actor_from_session_token(session_token)
    if actor is None:
        logger.info("Rejected session token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return actor


app_context.configure(get_conn=get_conn, get_current_actor=get_current_actor)

app = FastAPI(title="Directory Entitlements API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(entitlements_router)
app.include_router(subscriptions_router)
app.include_router(addons_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
