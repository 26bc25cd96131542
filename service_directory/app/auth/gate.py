"""
Bearer token gate for Directory Service routes.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_user_context


@dataclass(frozen=True)
class AuthContext:
    """Authenticated request context derived from a verified JWT."""

    subject: Optional[str]
    claims: Dict[str, Any]
    token: str


class JWTRequestGate:
    """FastAPI dependency that admits only requests carrying a valid HS256 token.

    Signature and ``exp`` are always checked. Issuer and audience are checked
    when configured.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.logger = get_logger("directory.auth")

    async def __call__(self, request: Request) -> AuthContext:
        return self.authenticate(request)

    def authenticate(self, request: Request) -> AuthContext:
        """Authenticate the incoming request using the Authorization bearer token."""
        authorization = request.headers.get("Authorization")
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid Authorization header")

        token = authorization[7:].strip()
        if not token:
            raise AuthenticationError("Authorization header contained empty bearer token")

        claims = self.validate_token(token)
        subject = claims.get("sub")
        context = AuthContext(subject=subject if isinstance(subject, str) else None, claims=claims, token=token)

        request.state.auth_context = context
        set_user_context(context.subject)
        return context

    def validate_token(self, token: str) -> Dict[str, Any]:
        """Validate the JWT and return its claims."""
        options: Dict[str, Any] = {
            "verify_aud": self.audience is not None,
            "require_exp": True,
        }

        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except JWTError as exc:
            self.logger.info("Rejected bearer token", error=str(exc))
            raise AuthenticationError("JWT validation failed", details={"error": str(exc)}) from exc
