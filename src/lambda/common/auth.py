"""
Caller identity. API Gateway authorizer claims win; otherwise the session JWT
from the token cookie or Authorization header is verified with JWT_SECRET.
"""
import logging

from common import config
from common.errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ROLES = ("customer", "admin")


def _authorizerClaims(event):
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = (authorizer.get("jwt") or {}).get("claims")
    if claims:
        return claims
    # Lambda authorizers put their context straight under authorizer
    lambda_ctx = authorizer.get("lambda") or authorizer
    if lambda_ctx.get("userId"):
        return lambda_ctx
    return None


def _extractToken(event):
    headers = event.get("headers") or {}
    headers_lower = {k.lower(): v for k, v in headers.items()}
    auth_header = (headers_lower.get("authorization") or "").strip()
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    cookies = list(event.get("cookies") or [])
    if headers_lower.get("cookie"):
        cookies.extend(headers_lower["cookie"].split(";"))
    for c in cookies:
        name, _, value = c.strip().partition("=")
        if name == "token" and value:
            return value
    return None


def _decodeToken(token):
    import jwt

    if not config.JWT_SECRET:
        raise Unauthenticated("User is not authenticated")
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.info("token rejected: %s", e)
        raise Unauthenticated("User is not authenticated") from e


def verify(event):
    """Return {userId, email, role} for the caller or raise Unauthenticated."""
    claims = _authorizerClaims(event)
    if claims is None:
        token = _extractToken(event)
        if not token:
            raise Unauthenticated("User is not authenticated")
        claims = _decodeToken(token)
    user_id = claims.get("userId") or claims.get("sub") or ""
    if not user_id:
        raise Unauthenticated("User is not authenticated")
    role = claims.get("role") or "customer"
    return {
        "userId": str(user_id),
        "email": claims.get("email", ""),
        "role": role if role in ROLES else "customer",
    }


def isAdmin(user):
    return user.get("role") == "admin"


def requireAdmin(user):
    if not isAdmin(user):
        raise Forbidden("Forbidden - Admin access required")
    return user
