"""Bearer token helpers.

Tokens are issued by the surrounding identity service; the scheduling core
only needs to read who is acting so the actor can be stamped on created
records and audit entries.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from jose import JWTError, jwt

from clinic_scheduler.config import settings


def create_access_token(actor_id: UUID | str, expires_delta: timedelta | None = None) -> str:
    """
    Issue an access token for an actor.

    Used by internal tooling and tests; production tokens come from the
    identity service and share the same secret and claims.

    Args:
        actor_id: Id placed in the ``sub`` claim
        expires_delta: Optional lifetime, defaults to the configured expiry
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(actor_id),
        "type": "access",
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def read_actor_id(token: str) -> UUID | None:
    """
    Return the actor id carried by a valid access token.

    Expired, tampered and non-access tokens, and tokens whose subject is
    not a UUID, all yield None.
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if claims.get("type") != "access":
        return None

    try:
        return UUID(str(claims.get("sub")))
    except ValueError:
        return None
