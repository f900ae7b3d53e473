"""
auth/service.py -- AuthService: the account, OTP, and session workflows.

Every flow that establishes, verifies, or invalidates an identity goes
through here. Routes call one method, get back domain objects or a typed
AuthError, and never touch the stores directly.

Collaborators are injected once at process start (see api/main.py lifespan):

    service = AuthService(users, sessions, otps, todos, mailer, settings)

Flows:
  signup          request_signup -> (code mailed) -> complete_signup
  login / logout  login, logout, logout_all
  forgot password request_password_reset -> (code mailed) -> complete_password_reset
  change email    request_email_change -> (code mailed to NEW address)
                  -> complete_email_change
  account         change_password, change_name, delete_account
  oauth           oauth_login (find-or-create, then the same session primitive)

Error policy:
  Business-rule failures are AuthError subclasses raised by the stores or
  here. Anything else the database throws is logged with the flow name and
  re-raised as StorageFailure, so the client sees a generic 500 and the log
  has the real cause.

  Mail is fire-and-forget. A send that raises is logged and ignored; the
  user can always ask for a new code once the cooldown has passed.

Ordering inside a flow matters and is written out step by step on purpose.
A consumed code is gone even if a later step fails -- the user requests a
new one.

Layer rule: no imports from api/ or todo/. The to-do store is reached only
through the TodoPurger protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredOTP,
    StorageFailure,
    UnknownUser,
    ValidationFailed,
)
from auth.models import OTPOperation, OTPRecord, Session, User
from auth.schemas import (
    ChangeEmailRequest,
    ChangeNameRequest,
    ChangePasswordRequest,
    ConfirmEmailChangeRequest,
    DeleteAccountRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyCodeRequest,
)
from auth.store import OTPStore, SessionStore, UserStore, normalize_email
from auth.tokens import authenticate_user, check_user_password, hash_password
from core.config import Settings
from core.database import transaction
from core.mailer import Mailer

logger = logging.getLogger("priorly.auth.service")


class TodoPurger(Protocol):
    def delete_all_for_user(self, user_id: int, conn: Connection | None = None) -> int: ...


class AuthService:
    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        otps: OTPStore,
        todos: TodoPurger,
        mailer: Mailer,
        settings: Settings,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.otps = otps
        self.todos = todos
        self.mailer = mailer
        self.settings = settings

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def request_signup(self, req: SignupRequest) -> OTPRecord:
        """Issue a SIGNUP code for req.email and mail it.

        The password is hashed now and only the hash rides along in the
        code's payload. Raises DuplicateEmail or RateLimited.
        """
        with self._storage("signup request"):
            if self.users.find_by_email(req.email) is not None:
                raise DuplicateEmail()
            record = self.otps.request_code(
                req.email,
                OTPOperation.SIGNUP,
                {"name": req.name, "password_hash": hash_password(req.password)},
            )
        self._send(record.email, "signup", self._code_context(record))
        logger.info("Signup code issued for %s", record.email)
        return record

    def complete_signup(self, req: VerifyCodeRequest) -> tuple[User, Session]:
        """Consume the SIGNUP code, create the account, and log it in."""
        with self._storage("signup verification"):
            payload = self.otps.consume(req.code, req.email, OTPOperation.SIGNUP)
            user = self.users.create_user(req.email, payload["password_hash"], payload["name"])
            session = self.sessions.create(user.id)
        self._send(user.email, "welcome", {"login_link": self.settings.client_uri})
        logger.info("User %d signed up", user.id)
        return user, session

    def create_verified_user(self, req: SignupRequest) -> User:
        """Create an account without the emailed code. CLI use only."""
        with self._storage("user creation"):
            return self.users.create_user(req.email, hash_password(req.password), req.name)

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> tuple[User, Session]:
        """Check credentials and open a new session.

        Unknown email, OAuth-only account, and wrong password all raise the
        same InvalidCredentials after the same amount of bcrypt work.
        """
        with self._storage("login"):
            user = authenticate_user(self.users, email, password)
            if user is None:
                logger.info("Failed login attempt")
                raise InvalidCredentials()
            session = self.sessions.create(user.id)
        logger.info("User %d logged in", user.id)
        return user, session

    def logout(self, token: str) -> None:
        with self._storage("logout"):
            self.sessions.revoke(token)

    def logout_all(self, user_id: int) -> int:
        with self._storage("logout all"):
            revoked = self.sessions.revoke_all(user_id)
        logger.info("User %d logged out of %d session(s)", user_id, revoked)
        return revoked

    def resolve_user(self, token: str) -> User | None:
        """Return the user behind a session token, or None."""
        with self._storage("session resolve"):
            user_id = self.sessions.resolve(token)
            if user_id is None:
                return None
            return self.users.find_by_id(user_id)

    def list_sessions(self, user_id: int) -> list[Session]:
        with self._storage("session listing"):
            return self.sessions.list_for_user(user_id)

    # ------------------------------------------------------------------
    # Forgot password
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> None:
        """Mail a FORGOT_PASSWORD code if the email belongs to an account.

        Unknown emails return silently so the endpoint cannot be used to
        discover which addresses are registered.
        """
        with self._storage("password reset request"):
            user = self.users.find_by_email(email)
            if user is None:
                logger.info("Password reset requested for unknown email")
                return
            record = self.otps.request_code(user.email, OTPOperation.FORGOT_PASSWORD)
        self._send(record.email, "forgot-password", self._code_context(record))
        logger.info("Password reset code issued for user %d", user.id)

    def complete_password_reset(self, req: ResetPasswordRequest) -> None:
        """Consume the code, set the new password, and end every session."""
        new_hash = hash_password(req.password)
        with self._storage("password reset"):
            self.otps.consume(req.code, req.email, OTPOperation.FORGOT_PASSWORD)
            user = self.users.find_by_email(req.email)
            if user is None:
                # Account deleted after the code was issued.
                raise InvalidOrExpiredOTP()
            self.users.update_password(user.id, new_hash)
            revoked = self.sessions.revoke_all(user.id)
        self._send(user.email, "password-changed", {})
        logger.info("User %d reset password; %d session(s) revoked", user.id, revoked)

    # ------------------------------------------------------------------
    # Change email
    # ------------------------------------------------------------------

    def request_email_change(self, user: User, req: ChangeEmailRequest) -> OTPRecord:
        """Re-check the password and mail a CHANGE_EMAIL code to the new address."""
        if not check_user_password(user, req.password):
            raise InvalidCredentials()
        if req.new_email == user.email:
            raise ValidationFailed({"new_email": "New email must be different from the current email."})
        with self._storage("email change request"):
            if self.users.find_by_email(req.new_email) is not None:
                raise DuplicateEmail()
            record = self.otps.request_code(req.new_email, OTPOperation.CHANGE_EMAIL, {"user_id": user.id})
        self._send(record.email, "change-email", self._code_context(record))
        logger.info("Email change code issued for user %d", user.id)
        return record

    def complete_email_change(self, user: User, req: ConfirmEmailChangeRequest) -> User:
        """Verify password and code, then switch the login email.

        The code must have been issued to this user: the payload's user_id is
        checked before the code is consumed, so a stranger holding the code
        cannot burn it.
        """
        if not check_user_password(user, req.password):
            raise InvalidCredentials()
        old_email = user.email
        with self._storage("email change"):
            record = self.otps.peek(req.code, req.new_email, OTPOperation.CHANGE_EMAIL)
            if record.payload.get("user_id") != user.id:
                raise InvalidOrExpiredOTP()
            self.otps.consume(req.code, req.new_email, OTPOperation.CHANGE_EMAIL)
            if not self.users.update_email(user.id, req.new_email):
                raise UnknownUser()
            updated = self.users.find_by_id(user.id)
        self._send(old_email, "email-changed-old", {"new_email": updated.email})
        self._send(updated.email, "email-changed-new", {})
        logger.info("User %d changed email", user.id)
        return updated

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def change_password(self, user: User, req: ChangePasswordRequest, current_token: str | None = None) -> int:
        """Replace the password and end every other session.

        Returns the number of sessions revoked. The session making the
        request (current_token) survives.
        """
        if not check_user_password(user, req.current_password):
            raise InvalidCredentials()
        new_hash = hash_password(req.password)
        with self._storage("password change"):
            self.users.update_password(user.id, new_hash)
            revoked = self.sessions.revoke_all(user.id, except_token=current_token)
        self._send(user.email, "password-changed", {})
        logger.info("User %d changed password; %d other session(s) revoked", user.id, revoked)
        return revoked

    def change_name(self, user: User, req: ChangeNameRequest) -> User:
        with self._storage("name change"):
            if not self.users.update_name(user.id, req.name):
                raise UnknownUser()
            return self.users.find_by_id(user.id)

    def delete_account(self, user: User, req: DeleteAccountRequest) -> None:
        """Delete the account and everything it owns.

        Sessions, pending code, to-do items, and the user row go in one
        transaction: either all of them are removed or none are. User ids
        are never reused, so nothing left behind by an earlier failure can
        attach to a later account.
        """
        if not check_user_password(user, req.password):
            raise InvalidCredentials()
        with self._storage("account deletion"), transaction(self.users.engine) as conn:
            revoked = self.sessions.revoke_all(user.id, conn=conn)
            self.otps.delete_for_email(user.email, conn=conn)
            todos = self.todos.delete_all_for_user(user.id, conn=conn)
            self.users.delete_user(user.id, conn=conn)
        self._send(user.email, "account-deleted", {})
        logger.info("User %d deleted (%d session(s), %d to-do item(s))", user.id, revoked, todos)

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def oauth_login(self, email: str, name: str) -> tuple[User, Session]:
        """Log in a provider-verified email, creating an OAuth-only account if new.

        The provider has already confirmed the email, so no code is sent.
        """
        email = normalize_email(email)
        created = False
        with self._storage("oauth login"):
            user = self.users.find_by_email(email)
            if user is None:
                try:
                    user = self.users.create_user(email, None, name[:120])
                    created = True
                except DuplicateEmail:
                    # Concurrent first login for the same email.
                    user = self.users.find_by_email(email)
            session = self.sessions.create(user.id)
        if created:
            self._send(user.email, "welcome", {"login_link": self.settings.client_uri})
            logger.info("User %d created via OAuth", user.id)
        return user, session

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self) -> dict[str, int]:
        """Delete expired codes and sessions. Returns counts per table."""
        with self._storage("purge"):
            counts = {
                "otp_records": self.otps.purge_expired(),
                "sessions": self.sessions.purge_expired(),
            }
        if any(counts.values()):
            logger.info("Purged %d expired code(s) and %d expired session(s)", counts["otp_records"], counts["sessions"])
        return counts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _storage(self, flow: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("Storage failure during %s", flow)
            raise StorageFailure() from exc

    def _code_context(self, record: OTPRecord) -> dict:
        return {"code": record.code, "ttl_minutes": max(self.settings.otp_ttl_seconds // 60, 1)}

    def _send(self, to_address: str, template_id: str, context: dict) -> None:
        try:
            self.mailer.send(to_address, template_id, context)
        except Exception:
            logger.exception("Could not queue mail %r to %s", template_id, to_address)
