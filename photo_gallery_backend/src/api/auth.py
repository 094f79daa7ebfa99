import hmac
import logging
import secrets
import threading
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from src.api.config import Settings
from src.api.errors import AuthFailure

logger = logging.getLogger(__name__)

# bcrypt hashes are accepted for ADMIN_PASSWORD_HASH when a bcrypt backend is installed.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_BYTES = 32


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Hash a plaintext password with the default scheme."""
    return pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against a stored hash."""
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognized or malformed hash.
        return False


class TokenAuthenticator:
    """
    Issues and checks opaque bearer tokens for the one configured admin.

    Tokens live in memory for the lifetime of the process. There is no expiry
    and no revocation; a restart invalidates every token.
    """

    def __init__(self, username: str, password_hash: str) -> None:
        self._username = username
        self._password_hash = password_hash
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    # PUBLIC_INTERFACE
    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenAuthenticator":
        """Build from settings, hashing ADMIN_PASSWORD unless a hash is configured."""
        password_hash = settings.admin_password_hash or hash_password(settings.admin_password)
        return cls(settings.admin_username, password_hash)

    # PUBLIC_INTERFACE
    def login(self, username: Optional[str], password: Optional[str]) -> str:
        """
        Exchange the admin credentials for a new token.

        Raises AuthFailure("Invalid credentials") on any mismatch, without saying
        which field was wrong.
        """
        username_ok = isinstance(username, str) and hmac.compare_digest(
            username.encode("utf-8"), self._username.encode("utf-8")
        )
        # Always run the hash check so timing does not reveal the username.
        password_ok = isinstance(password, str) and verify_password(password, self._password_hash)
        if not (username_ok and password_ok):
            logger.warning("Rejected login attempt")
            raise AuthFailure("Invalid credentials")

        token = secrets.token_urlsafe(TOKEN_BYTES)
        with self._lock:
            self._tokens.add(token)
        logger.info("Issued admin token")
        return token

    # PUBLIC_INTERFACE
    def authenticate(self, token: Optional[str]) -> None:
        """Raise AuthFailure unless `token` was issued by `login`."""
        if not token:
            raise AuthFailure("Missing authentication token")
        with self._lock:
            known = token in self._tokens
        if not known:
            raise AuthFailure("Invalid authentication token")


# PUBLIC_INTERFACE
def get_authenticator(request: Request) -> TokenAuthenticator:
    """FastAPI dependency returning the app's token registry."""
    return request.app.state.authenticator


# PUBLIC_INTERFACE
def require_token(
    authenticator: TokenAuthenticator = Depends(get_authenticator),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    FastAPI dependency guarding mutating routes.

    Expects `Authorization: Bearer <token>`; returns the token.
    """
    if creds is None or not creds.credentials:
        raise AuthFailure("Missing authentication token")
    authenticator.authenticate(creds.credentials)
    return creds.credentials
