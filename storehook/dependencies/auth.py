"""
Authentication dependencies for the management API.

Inbound WooCommerce deliveries authenticate with their HMAC signature and
never go through these dependencies.
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ValidationError

from storehook.exceptions import UnauthorizedError
from storehook.services.jwt_service import JWTService


# Security scheme (missing credentials are reported through UnauthorizedError)
security = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    org_id: str
    role: str
    email: str


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security)
) -> TokenPayload:
    """
    Dependency that requires a valid JWT bearer token.

    Usage:
        @router.get("/protected")
        async def protected_route(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None:
        raise UnauthorizedError("Missing bearer token")

    payload = JWTService().verify_token(credentials.credentials)
    if payload is None:
        raise UnauthorizedError("Invalid or expired token")

    try:
        token = TokenPayload(**payload)
    except ValidationError as e:
        raise UnauthorizedError("Token is missing operator claims") from e

    # Picked up by LoggingMiddleware
    request.state.user_id = token.sub
    request.state.org_id = token.org_id
    return token
