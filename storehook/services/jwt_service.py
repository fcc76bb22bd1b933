"""
JWT tokens for the operator-facing management API.

Tokens are HS256-signed, carry the operator's organization and role, and
are scoped to this service through the issuer claim.
"""
from datetime import timedelta

from jose import JWTError, jwt

from storehook.config import settings
from storehook.models.base import utcnow


TOKEN_ISSUER = "storehook"


class JWTService:
    """Issues and verifies operator tokens."""

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def create_token(
        self,
        user_id: str,
        org_id: str,
        role: str,
        email: str,
        expires_in: timedelta | None = None,
    ) -> str:
        """
        Create a token for an operator.

        Args:
            user_id: Operator id (the "sub" claim)
            org_id: Organization the operator belongs to
            role: Operator role
            email: Operator email
            expires_in: Lifetime, defaults to JWT_EXPIRATION_MINUTES
        """
        issued_at = utcnow()
        lifetime = expires_in if expires_in is not None else timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
        claims = {
            "sub": user_id,
            "org_id": org_id,
            "role": role,
            "email": email,
            "iss": TOKEN_ISSUER,
            "iat": issued_at,
            "exp": issued_at + lifetime,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict | None:
        """Decoded claims, or None when the token is invalid, expired or foreign."""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=TOKEN_ISSUER,
            )
        except JWTError:
            return None
