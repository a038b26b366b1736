"""Verification of identity-provider access tokens.

The marketplace never authenticates users itself. Tokens arrive signed with the
shared JWT_SECRET and carry:

    sub   user id (opaque string)
    role  buyer | seller | admin (absent means buyer)
    type  "access"

`create_access_token` mints the same shape for local tooling and tests.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.mk_common.enums import UserRole
from src.mk_common.errors import InvalidCredentialsError

_KNOWN_ROLES = frozenset(role.value for role in UserRole)


def create_access_token(
    user_id: str,
    role: str = UserRole.BUYER.value,
    ttl: timedelta | None = None,
) -> str:
    issued = datetime.now(UTC)
    lifetime = ttl or timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    claims = {"sub": user_id, "role": role, "type": "access", "iat": issued, "exp": issued + lifetime}
    return str(jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Return the verified claims.

    Raises:
        InvalidCredentialsError: bad signature, expired, not an access token,
            no subject, or a role this marketplace does not know.
    """
    try:
        # Pinning `algorithms` stops a token from choosing its own verifier.
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise InvalidCredentialsError() from None

    if claims.get("type") != "access" or not claims.get("sub"):
        raise InvalidCredentialsError()
    if claims.get("role", UserRole.BUYER.value) not in _KNOWN_ROLES:
        raise InvalidCredentialsError()
    return claims
