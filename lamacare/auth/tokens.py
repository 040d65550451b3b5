"""Bearer tokens: HS256 JWTs carrying ``sub``, ``role`` and ``purpose``."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app
from jose import JWTError, jwt

from ..errors import Unauthorized

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS = "access"
RESET = "reset"
PURPOSES = (ACCESS, RESET)


@dataclass
class TokenDetails:
    token: str
    user_id: str
    role: str
    purpose: str
    expires_at: int
    nonce: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "role": self.role,
            "purpose": self.purpose,
            "exp": self.expires_at,
        }


def _secret() -> str:
    secret = current_app.config.get("JWT_SECRET_KEY")
    if not secret:
        raise RuntimeError("JWT_SECRET_KEY is not configured")
    return secret


def issue_token(
    user_id: str,
    role: str,
    purpose: str = ACCESS,
    lifetime: timedelta | None = None,
    nonce: str | None = None,
) -> TokenDetails:
    if purpose not in PURPOSES:
        raise ValueError(f"unknown token purpose {purpose!r}")
    if lifetime is None:
        if purpose == ACCESS:
            lifetime = timedelta(hours=current_app.config.get("ACCESS_TOKEN_HOURS", 6))
        else:
            lifetime = timedelta(minutes=current_app.config.get("RESET_TOKEN_MINUTES", 15))

    now = datetime.now(timezone.utc)
    exp = int((now + lifetime).timestamp())
    claims = {
        "sub": user_id,
        "role": role,
        "purpose": purpose,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": exp,
    }
    if nonce is not None:
        claims["nonce"] = nonce
    token = jwt.encode(claims, _secret(), algorithm=ALGORITHM)
    return TokenDetails(token, user_id, role, purpose, exp, nonce)


def decode_token(token: str, purpose: str = ACCESS) -> TokenDetails:
    """Verify signature, ``exp``, ``nbf`` and ``iat``, then the expected purpose."""
    if not token:
        raise Unauthorized()
    try:
        claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.warning("rejected token: %s", exc)
        raise Unauthorized() from exc

    sub = claims.get("sub")
    role = claims.get("role")
    if not isinstance(sub, str) or not isinstance(role, str):
        raise Unauthorized()
    if claims.get("purpose") != purpose:
        logger.warning("token purpose %r used where %r expected", claims.get("purpose"), purpose)
        raise Unauthorized()
    return TokenDetails(
        token=token,
        user_id=sub,
        role=role,
        purpose=purpose,
        expires_at=int(claims["exp"]),
        nonce=claims.get("nonce"),
    )


def bearer_token(request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
