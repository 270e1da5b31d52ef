"""Authentication service.

Registration, login, session checks and logout over a ``CredentialStore``.
Every public coroutine returns a result model; user-input problems and
storage failures are reported in the result, never raised.  Each decision
branch is annotated with its branch-ID (see contract.py BranchSpec).

Branches: REG-*, AUTH-*, SESSION-*, USER-*, LOGOUT-*
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from starlette.concurrency import run_in_threadpool

from auth import generate_session_token, hash_password, verify_password
from contract import (
    DEFAULT_SESSION_TTL_DAYS,
    MAX_STORED_ID,
    MIN_PASSWORD_LENGTH,
    MSG_AUTHENTICATED,
    MSG_FIELDS_REQUIRED,
    MSG_INVALID_TEXT,
    MSG_PASSWORD_TOO_SHORT,
    MSG_REGISTERED,
    is_storable_text,
)
from errors import (
    AuthenticationFailure,
    DuplicateCredentialError,
    DuplicateEmailError,
    StorageError,
    ValidationError,
)
from logger import logger
from models import (
    AuthResult,
    LogoutResult,
    RegisterResult,
    SessionCheck,
    User,
    UserPublic,
    _utcnow,
)
from store import CredentialStore


class AuthService:
    """Auth operations bound to one credential store."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        session_ttl: timedelta = timedelta(days=DEFAULT_SESSION_TTL_DAYS),
        hash_iterations: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if session_ttl <= timedelta(0):
            raise ValueError("session_ttl must be positive")
        self.store = store
        self.session_ttl = session_ttl
        self.hash_iterations = hash_iterations
        self._clock = clock

    @property
    def session_ttl_days(self) -> int:
        return max(1, self.session_ttl.days)

    # -- registration -------------------------------------------------------

    def _check_registration(self, username: str, email: str, password: str) -> None:
        if not username or not email or not password:
            raise ValidationError(MSG_FIELDS_REQUIRED)              # REG-EMPTY
        if not is_storable_text(username) or not is_storable_text(email):
            raise ValidationError(MSG_INVALID_TEXT)                 # REG-BAD-TEXT
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(MSG_PASSWORD_TOO_SHORT)           # REG-SHORT-PW

    async def register(self, username: str, email: str, password: str) -> RegisterResult:
        """Create an account.

        Checks run in order: required fields, valid text, password length,
        email availability.  A username clash, or an email clash lost to a
        concurrent registration, is reported from the store's uniqueness
        constraints.

        Branches: REG-EMPTY, REG-BAD-TEXT, REG-SHORT-PW, REG-DUP-EMAIL,
        REG-DUP-USERNAME, REG-STORAGE, REG-SUCCESS
        """
        try:
            self._check_registration(username, email, password)
            if await self.store.find_user_by_email(email) is not None:
                raise DuplicateEmailError(email)                    # REG-DUP-EMAIL
            password_hash = await run_in_threadpool(
                hash_password, password, self.hash_iterations
            )
            user_id = await self.store.create_user(username, email, password_hash)
        except ValidationError as exc:
            logger.info(f"auth.register: rejected ({exc.message})")
            return RegisterResult(success=False, message=exc.message)
        except DuplicateCredentialError as exc:
            # REG-DUP-EMAIL / REG-DUP-USERNAME
            logger.info(f"auth.register: duplicate {exc.field}")
            return RegisterResult(success=False, message=exc.message)
        except StorageError as exc:
            logger.error(f"auth.register: storage failure in {exc.operation}: {exc.cause}")
            return RegisterResult(                                  # REG-STORAGE
                success=False, message=f"Registration failed: {exc.cause}"
            )

        logger.info(f"auth.register: ok user_id={user_id}")
        return RegisterResult(                                      # REG-SUCCESS
            success=True, message=MSG_REGISTERED, user_id=user_id
        )

    # -- login --------------------------------------------------------------

    async def _check_credentials(self, email: str, password: str) -> User:
        if not is_storable_text(email):
            raise AuthenticationFailure()                           # AUTH-NO-USER
        user = await self.store.find_user_by_email(email)
        if user is None:
            raise AuthenticationFailure()                           # AUTH-NO-USER
        matched = await run_in_threadpool(verify_password, password, user.password_hash)
        if not matched:
            raise AuthenticationFailure()                           # AUTH-BAD-PASS
        return user

    async def authenticate(self, email: str, password: str) -> AuthResult:
        """Check credentials and open a new session.

        Unknown emails and wrong passwords produce the same result.

        Branches: AUTH-NO-USER, AUTH-BAD-PASS, AUTH-STORAGE, AUTH-SUCCESS
        """
        try:
            user = await self._check_credentials(email, password)
            now = self._clock()
            token = generate_session_token()
            session = await self.store.create_session(
                user.id, token, now + self.session_ttl, created_at=now
            )
        except AuthenticationFailure as exc:
            logger.info("auth.login: invalid credentials")
            return AuthResult(success=False, message=exc.message)
        except StorageError as exc:
            logger.error(f"auth.login: storage failure in {exc.operation}: {exc.cause}")
            return AuthResult(                                      # AUTH-STORAGE
                success=False, message=f"Authentication failed: {exc.cause}"
            )

        logger.info(
            f"auth.login: ok user_id={user.id} expires_at={session.expires_at.isoformat()}"
        )
        return AuthResult(                                          # AUTH-SUCCESS
            success=True,
            message=MSG_AUTHENTICATED,
            session_token=session.session_token,
            user_id=session.user_id,
        )

    # -- sessions -----------------------------------------------------------

    async def verify_session(self, token: str | None) -> SessionCheck:
        """Report whether *token* names an unexpired session.

        Branches: SESSION-EMPTY, SESSION-INVALID, SESSION-STORAGE,
        SESSION-VALID
        """
        if not token:
            return SessionCheck(valid=False)                        # SESSION-EMPTY
        if not is_storable_text(token):
            return SessionCheck(valid=False)                        # SESSION-INVALID

        try:
            session = await self.store.find_valid_session(token, self._clock())
        except StorageError as exc:
            logger.error(f"auth.session: storage failure: {exc.cause}")
            return SessionCheck(valid=False)                        # SESSION-STORAGE

        if session is None:
            logger.debug("auth.session: unknown or expired token")
            return SessionCheck(valid=False)                        # SESSION-INVALID
        return SessionCheck(valid=True, user_id=session.user_id)    # SESSION-VALID

    async def get_user_by_id(self, user_id: object) -> UserPublic | None:
        """Public profile for *user_id*, or None.

        Branches: USER-BAD-ID, USER-FOUND
        """
        if (
            isinstance(user_id, bool)
            or not isinstance(user_id, int)
            or not 0 < user_id <= MAX_STORED_ID
        ):
            return None                                             # USER-BAD-ID
        try:
            return await self.store.find_user_by_id(user_id)        # USER-FOUND
        except StorageError as exc:
            logger.error(f"auth.user: storage failure: {exc.cause}")
            return None

    async def logout(self, token: str | None) -> LogoutResult:
        """Revoke the session for *token*.  Always reports success.

        Branches: LOGOUT-EMPTY, LOGOUT-OK
        """
        if not token or not is_storable_text(token):
            return LogoutResult(success=True)                       # LOGOUT-EMPTY
        try:
            await self.store.delete_session(token)
        except StorageError as exc:
            logger.error(f"auth.logout: storage failure: {exc.cause}")
        else:
            logger.info("auth.logout: session revoked")
        return LogoutResult(success=True)                           # LOGOUT-OK

    async def sweep_expired_sessions(self) -> int:
        """Delete expired sessions; return how many were removed."""
        try:
            removed = await self.store.delete_expired_sessions(self._clock())
        except StorageError as exc:
            logger.error(f"auth.sweep: storage failure: {exc.cause}")
            return 0
        if removed:
            logger.info(f"auth.sweep: removed {removed} expired session(s)")
        return removed
