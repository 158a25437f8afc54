"""
Request identity for the EducaIA API.

The tenant and school come from request headers set by the platform
gateway. The user comes from a validated bearer JWT (``sub`` claim), or
from the ``X-User-Id`` header when authentication is disabled for local
development.

Environment Variables:
- REQUIRE_AUTH: Enable/disable JWT validation (default: true)
- JWT_SECRET: Secret key for HS* algorithms
- JWT_PUBLIC_KEY: Public key for RS*/ES*/PS* algorithms (PEM or file path)
- JWT_ALGORITHM: Algorithm to use (default: HS256)
- JWT_ISSUER: Expected issuer claim (optional)
- JWT_AUDIENCE: Expected audience claim (optional)
- JWT_CLOCK_SKEW_SECONDS: Clock skew tolerance (default: 30)
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Optional

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError

from ..domain.entities import UserContext
from ..domain.errors import AuthContextError

logger = logging.getLogger(__name__)


class JWTConfig:
    """JWT configuration from environment variables."""

    SECRET: Optional[str] = os.getenv("JWT_SECRET")
    PUBLIC_KEY: Optional[str] = os.getenv("JWT_PUBLIC_KEY")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ISSUER: Optional[str] = os.getenv("JWT_ISSUER")
    AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE")
    REQUIRE_AUTH: bool = os.getenv("REQUIRE_AUTH", "true").lower() == "true"
    CLOCK_SKEW_SECONDS: int = int(os.getenv("JWT_CLOCK_SKEW_SECONDS", "30"))

    TENANT_ID_CLAIM: str = os.getenv("JWT_TENANT_ID_CLAIM", "tenant_id")
    USER_ID_CLAIM: str = os.getenv("JWT_USER_ID_CLAIM", "sub")

    # 'none' and unexpected algorithms are never accepted
    SYMMETRIC_ALGORITHMS: frozenset[str] = frozenset({"HS256", "HS384", "HS512"})
    ASYMMETRIC_ALGORITHMS: frozenset[str] = frozenset({
        "RS256", "RS384", "RS512",
        "ES256", "ES384", "ES512",
        "PS256", "PS384", "PS512",
    })

    _public_key_cache: Optional[str] = None

    @classmethod
    def validate_algorithm(cls) -> str:
        """Return the configured algorithm if it is allowed.

        Raises:
            ValueError: If the algorithm is not allowed
        """
        alg = cls.ALGORITHM.upper()
        if alg not in cls.SYMMETRIC_ALGORITHMS | cls.ASYMMETRIC_ALGORITHMS:
            raise ValueError(f"JWT algorithm '{cls.ALGORITHM}' is not allowed")
        return alg

    @classmethod
    def get_verification_key(cls) -> str:
        """Secret for HS* algorithms, public key for the others.

        Raises:
            ValueError: If the required key is not configured
        """
        if cls.ALGORITHM.upper() in cls.SYMMETRIC_ALGORITHMS:
            if not cls.SECRET:
                raise ValueError(f"JWT_SECRET required for algorithm {cls.ALGORITHM}")
            return cls.SECRET

        if cls._public_key_cache:
            return cls._public_key_cache

        if not cls.PUBLIC_KEY:
            raise ValueError(f"JWT_PUBLIC_KEY required for algorithm {cls.ALGORITHM}")

        public_key = cls.PUBLIC_KEY
        if os.path.isfile(public_key):
            logger.info(f"Loading JWT public key from file: {public_key}")
            with open(public_key, "r") as f:
                public_key = f.read()

        if not public_key.strip().startswith("-----BEGIN"):
            raise ValueError("JWT_PUBLIC_KEY must be PEM format (starting with '-----BEGIN')")

        cls._public_key_cache = public_key
        return public_key


class AuthenticationError(HTTPException):
    """Authentication failure exception."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Authorization failure exception."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def _extract_token(authorization: Optional[str]) -> str:
    """Extract the bearer token from an Authorization header.

    Raises:
        AuthenticationError: If the header is missing or malformed
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError(
            "Invalid authorization header format. Expected: Bearer <token>"
        )
    return parts[1]


def _decode_token(token: str) -> dict[str, Any]:
    """Validate a JWT and return its claims.

    Raises:
        HTTPException: 500 when the server is misconfigured
        AuthenticationError: If the token is invalid
    """
    try:
        algorithm = JWTConfig.validate_algorithm()
        key = JWTConfig.get_verification_key()
    except ValueError as e:
        logger.error(f"JWT configuration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server authentication misconfigured",
        )

    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            options={"require": ["exp"]},
            issuer=JWTConfig.ISSUER,
            audience=JWTConfig.AUDIENCE,
            leeway=JWTConfig.CLOCK_SKEW_SECONDS,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT expired")
        raise AuthenticationError("Token has expired")
    except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as e:
        logger.warning(f"JWT claim error: {e}")
        raise AuthenticationError("Invalid token claims")
    except InvalidTokenError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise AuthenticationError("Invalid token")


def _resolve_identity(
    authorization: Optional[str],
    tenant_header: Optional[str],
    user_header: Optional[str],
) -> tuple[Optional[str], Optional[str], dict[str, Any]]:
    """Return (tenant_id, user_id, claims) for the request."""
    if not JWTConfig.REQUIRE_AUTH:
        return tenant_header, user_header, {}

    claims = _decode_token(_extract_token(authorization))
    user_id = claims.get(JWTConfig.USER_ID_CLAIM)
    token_tenant = claims.get(JWTConfig.TENANT_ID_CLAIM)

    if token_tenant and tenant_header and str(token_tenant) != tenant_header:
        logger.warning(f"Tenant header {tenant_header} does not match token tenant for user {user_id}")
        raise AuthorizationError("Tenant does not match token")

    return tenant_header or token_tenant, user_id, claims


async def get_user_context(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_school_id: Optional[str] = Header(None, alias="X-School-Id"),
    x_school_slug: Optional[str] = Header(None, alias="X-School-Slug"),
    x_request_id: Optional[str] = Header(None, alias="X-Request-Id"),
) -> UserContext:
    """FastAPI dependency building the caller's UserContext.

    Raises:
        AuthenticationError: Missing or invalid identity
        AuthorizationError: Tenant header contradicts the token
    """
    tenant_id, user_id, claims = _resolve_identity(authorization, x_tenant_id, x_user_id)

    try:
        return UserContext(
            tenant_id=str(tenant_id) if tenant_id else "",
            user_id=str(user_id) if user_id else "",
            school_id=x_school_id or None,
            school_slug=x_school_slug or None,
            school_name=claims.get("school_name"),
            user_name=claims.get("name"),
            user_role=claims.get("role"),
            session_id=claims.get("session_id"),
            request_id=x_request_id or str(uuid.uuid4()),
        )
    except AuthContextError as e:
        logger.warning(f"Rejected request without identity: {e}")
        raise AuthenticationError(str(e))
