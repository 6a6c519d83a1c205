import hmac
import secrets
import uuid

from autosend.core.datetime_utils import get_expiry
from autosend.core.errors import AuthorizationError, ConfigurationError

BEARER_PREFIX = "Bearer "


def generate_session_id() -> uuid.UUID:
    """Generate a new session ID."""
    return uuid.uuid4()


def get_session_expiry():
    """Get expiry time for sessions (30 days from now)."""
    return get_expiry(days=30)


def generate_cron_secret() -> str:
    """Generate a random secret suitable for CRON_SECRET."""
    return secrets.token_urlsafe(32)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of a ``Bearer <token>`` header, or None."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :]
    return token or None


def verify_cron_token(authorization: str | None, secret: str) -> None:
    """
    Check a scheduled-trigger Authorization header against the cron secret.

    Fails closed: an unset secret rejects every call, whatever the header.

    Raises:
        ConfigurationError: If the secret is not configured.
        AuthorizationError: If the header is missing, malformed or wrong.
    """
    if not secret:
        raise ConfigurationError("Cron secret is not configured")

    token = extract_bearer_token(authorization)
    if token is None or not hmac.compare_digest(token.encode(), secret.encode()):
        raise AuthorizationError("Unauthorized")
