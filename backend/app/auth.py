from dataclasses import dataclass
import logging

from fastapi import HTTPException, Request
from jose import JWTError, jwt

from core.config import Settings

logger = logging.getLogger("app.auth")


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: str = ""


def _resolve_payload_from_token(token: str, settings: Settings) -> dict:
    if settings.jwt_secret:
        try:
            return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
        except JWTError:
            raise HTTPException(401, "Invalid token")

    if settings.is_production:
        raise HTTPException(500, "JWT_SECRET is not configured")
    if not settings.allow_unverified_jwt_dev:
        raise HTTPException(
            401,
            "Token verification unavailable in development; configure JWT_SECRET or set ALLOW_UNVERIFIED_JWT_DEV=true",
        )
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError:
        raise HTTPException(401, "Invalid token")
    logger.warning("ALLOW_UNVERIFIED_JWT_DEV enabled; using unverified token claims in non-production mode")
    return payload


def get_current_user(request: Request) -> AuthenticatedUser:
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        raise HTTPException(401, "Unauthorized")

    token = auth.replace("Bearer ", "", 1)
    payload = _resolve_payload_from_token(token, request.app.state.settings)

    user_id = (payload or {}).get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid token")
    return AuthenticatedUser(user_id=str(user_id), email=str(payload.get("email") or ""))
