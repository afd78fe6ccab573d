"""
Admin session handling

One operator, identified by email + password from the environment. A login
issues a signed JWT; logout revokes it by its jti. Session listeners learn
when the service goes from "no admin signed in" to "admin signed in" and back.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthenticationError(Exception):
    """Bad credentials. The message never says which half was wrong."""

    def __init__(self, message: str = INVALID_CREDENTIALS):
        super().__init__(message)


class SessionAuth:
    def __init__(
        self,
        admin_email: str,
        password_hash: str,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60 * 12,
        pwd_context: Optional[CryptContext] = None,
    ):
        self._admin_email = admin_email
        self._password_hash = password_hash
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes
        self._pwd_context = pwd_context or CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
        # jti -> expiry of sessions issued and not yet logged out
        self._sessions: Dict[str, datetime] = {}
        self._listeners: List[Callable[[bool], None]] = []

    # =========
    # Utilities
    # =========
    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self._pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self._expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def _decode(self, token: str) -> Optional[dict]:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None
        if payload.get("sub") != self._admin_email or payload.get("role") != "admin":
            return None
        return payload

    def _prune(self) -> None:
        now = datetime.now(timezone.utc)
        for jti, expires in list(self._sessions.items()):
            if expires <= now:
                del self._sessions[jti]

    # ========
    # Sessions
    # ========
    @property
    def is_active(self) -> bool:
        self._prune()
        return bool(self._sessions)

    def login(self, email: str, password: str) -> str:
        if email.lower() != self._admin_email.lower() or not self.verify_password(password, self._password_hash):
            logger.warning("Admin login rejected")
            raise AuthenticationError()

        was_active = self.is_active
        jti = uuid.uuid4().hex
        expires_delta = timedelta(minutes=self._expire_minutes)
        token = self.create_access_token({"sub": self._admin_email, "role": "admin", "jti": jti}, expires_delta)
        self._sessions[jti] = datetime.now(timezone.utc) + expires_delta
        logger.info("Admin logged in", email=self._admin_email)
        if not was_active:
            self._notify(True)
        return token

    def check_session(self, token: Optional[str]) -> bool:
        if not token:
            return False
        payload = self._decode(token)
        if payload is None:
            return False
        self._prune()
        return payload.get("jti") in self._sessions

    def logout(self, token: Optional[str]) -> None:
        """End the session behind `token`. Unknown or repeated tokens are ignored."""
        payload = self._decode(token) if token else None
        if payload is None:
            return
        was_active = self.is_active
        if self._sessions.pop(payload.get("jti"), None) is not None:
            logger.info("Admin logged out", email=self._admin_email)
        if was_active and not self.is_active:
            self._notify(False)

    def on_session_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        callback(self.is_active)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, active: bool) -> None:
        for callback in list(self._listeners):
            callback(active)
