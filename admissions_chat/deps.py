"""Database engine, session factory and auth dependencies."""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict

import jwt
from fastapi import Depends, HTTPException, Request
from jwt import PyJWTError
from loguru import logger
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from admissions_chat.config import settings
from admissions_chat.domain.errors import PermissionDeniedError
from admissions_chat.ports.chat_store import SqlChatStore


# engine and sessions
def _build_db_url() -> URL:
    """Construct the SQLAlchemy URL used for engine creation.

    Plain ``postgresql://`` URLs are pointed at the async psycopg driver.
    """

    url = make_url(settings.database_url)
    if url.drivername in {"postgresql", "postgres", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+psycopg")
    elif url.drivername == "sqlite":
        url = url.set(drivername="sqlite+aiosqlite")
    return url


def _engine_kwargs(url: URL) -> Dict[str, Any]:
    if url.get_dialect().name == "sqlite":
        return {}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
    }


def build_engine(url: URL | str | None = None, **overrides: Any) -> AsyncEngine:
    resolved = make_url(url) if url is not None else _build_db_url()
    kwargs = _engine_kwargs(resolved)
    kwargs.update(overrides)
    return create_async_engine(resolved, echo=settings.database_echo, **kwargs)


_db_url = _build_db_url()
logger.info("Initializing database engine db_url={}", _db_url.render_as_string(hide_password=True))
engine: AsyncEngine = build_engine(_db_url)

SessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine, autoflush=False, expire_on_commit=False
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields a session per request."""

    async with SessionLocal() as session:
        yield session


Claims = Dict[str, Any]


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token", headers={"WWW-Authenticate": "Bearer"})
    return token.strip()


def _decode_claims(token: str) -> Claims:
    """Verify an HS256 token; ``user_id`` is mandatory, ``aud`` only when configured."""

    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_aud or None,
            options={"require": ["user_id"], "verify_aud": bool(settings.jwt_aud)},
        )
    except PyJWTError as exc:
        raise HTTPException(
            status_code=401, detail=f"Invalid token: {exc}", headers={"WWW-Authenticate": "Bearer"}
        ) from exc


def get_current_user(request: Request) -> Claims:
    claims = _decode_claims(_bearer_token(request))
    request.state.user = claims
    return claims


def require_role(*roles: str) -> Callable[..., Claims]:
    """Build a dependency that admits callers whose ``role`` claim is in ``roles``."""

    if not roles:
        raise ValueError("require_role needs at least one role")
    accepted = frozenset(roles)

    def _check(user: Claims = Depends(get_current_user)) -> Claims:
        if user.get("role") not in accepted:
            raise PermissionDeniedError(f"Role {user.get('role')!r} cannot use this endpoint")
        return user

    return _check


def get_chat_store(db: AsyncSession = Depends(get_db)) -> SqlChatStore:
    return SqlChatStore(db)
