from datetime import datetime, timedelta, timezone

from jose import jwt

from haulage.core.config import settings

# Tokens are issued by the identity service; this side only needs to read them.
# create_access_token exists for local tooling and tests.
ALGO = "HS256"
ROLES = ("customer", "carrier", "admin")


def create_access_token(subject: str, role: str, expires_minutes: int = 30) -> str:
    if role not in ROLES:
        raise ValueError(f"unknown role {role!r}")
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "role": role, "type": "access", "exp": exp}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
