from datetime import datetime, timezone

from jose import JWTError, jwt


def token_expiry(token: str) -> datetime | None:
    """Read the ``exp`` claim without verifying the signature. None for opaque tokens."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def token_is_expired(token: str, now: datetime | None = None) -> bool:
    expires_at = token_expiry(token)
    if expires_at is None:
        return False
    return expires_at <= (now or datetime.now(timezone.utc))
