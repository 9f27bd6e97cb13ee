import secrets
import time
from datetime import UTC, datetime, timedelta

from jose import jwt

from app.core.config import settings

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def verify_admin_password(password: str) -> bool:
    if not settings.admin_password:
        return False
    return secrets.compare_digest(password.encode(), settings.admin_password.encode())


def create_access_token(subject: str | int) -> str:
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(subject), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_service_account_assertion(
    client_email: str,
    private_key_pem: str,
    scopes: list[str],
    lifetime_seconds: int = 3600,
) -> str:
    """Signed RS256 JWT exchanged at Google's token endpoint for an access token."""
    now = int(time.time())
    claims = {
        "iss": client_email,
        "scope": " ".join(scopes),
        "aud": GOOGLE_TOKEN_URL,
        "iat": now,
        "exp": now + lifetime_seconds,
    }
    return jwt.encode(claims, private_key_pem, algorithm="RS256")
