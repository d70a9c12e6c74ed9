from datetime import datetime, timedelta, timezone
from typing import Literal, Sequence

import jwt
from jwt import InvalidTokenError

TokenScope = Literal["user", "restaurant"]


def create_access_token(
    *,
    subject_id: int,
    secret: str,
    scope: TokenScope = "user",
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a bearer token for tests and local tooling."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {"sub": str(subject_id), "scope": scope, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
    scope: TokenScope,
) -> int:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    if payload.get("scope") != scope:
        raise ValueError(f"token scope is not {scope!r}")
    sub = payload.get("sub")
    if sub is None:
        raise ValueError("token missing sub")
    try:
        return int(sub)
    except (TypeError, ValueError) as exc:
        raise ValueError("token sub is not an integer") from exc


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
