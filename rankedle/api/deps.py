"""
rankedle.api.deps — FastAPI dependency injection
=================================================

Tokens are issued by the community site's Discord OAuth flow; this API
only validates them.  The ``sub`` claim is the member's Discord id and
``is_admin`` gates the admin routes.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from rankedle.config import RankedleConfig, load_config
from rankedle.database.engine import create_db_engine
from rankedle.services.guild_service import DiscordRestGateway
from rankedle.services.media_service import MediaToolchain
from rankedle.services.rankedle_service import RankedleService

_WEAK_SECRETS = frozenset({
    "rankedle-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> RankedleConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_service() -> RankedleService:
    """Process-wide :class:`RankedleService`.

    The guild gateway talks to Discord REST when ``DISCORD_TOKEN`` is set;
    without it ranking is empty and the results channel is never synced.
    """
    cfg = get_config()
    token = os.getenv("DISCORD_TOKEN", "").strip()
    guild = DiscordRestGateway(token, cfg.guild_id) if token else None
    return RankedleService(
        get_engine(),
        cfg,
        toolchain=MediaToolchain(cfg.ffmpeg_path, cfg.ffprobe_path),
        guild=guild,
    )


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_player(
    authorization: Annotated[str | None, Header()] = None,
) -> int:
    """Validate JWT and return the member id. Raises 401 if invalid."""
    payload = _decode_bearer(authorization)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401 if invalid."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


PlayerId = Annotated[int, Depends(get_current_player)]
Service = Annotated[RankedleService, Depends(get_service)]
