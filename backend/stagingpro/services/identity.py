"""Who is calling, and which submissions they may see.

Roles are derived, never stored: an email on the configured admin allow-list
is an admin; an email matching an editor roster entry is an editor (admins
keep the admin role even when they are also on the roster); everyone else is
a client ("user").
"""

import logging
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from stagingpro.config import Settings
from stagingpro.models.staff import Editor

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    USER = "user"


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str


@dataclass
class User:
    id: str
    email: str
    role: Role
    editor_record_id: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.EDITOR)

    @property
    def display_name(self) -> str:
        return self.email.split("@")[0]


def normalize_email(email: Optional[str]) -> str:
    """Lowercase, trim, and drop whitespace and control/format characters."""
    if not email:
        return ""
    email = email.lower().strip()
    return "".join(ch for ch in email if unicodedata.category(ch)[0] not in ("C", "Z"))


def resolve_role(email: str, admin_emails: Iterable[str], editors: Iterable[Any]) -> Tuple[Role, Optional[str]]:
    """Return (role, editor record id) for an email. Pure; no I/O."""
    email = normalize_email(email)
    role = Role.USER
    if email and any(normalize_email(a) == email for a in admin_emails):
        role = Role.ADMIN

    editor_record_id = None
    for editor in editors:
        editor_email = editor.get("email") if isinstance(editor, dict) else editor.email
        editor_id = editor.get("id") if isinstance(editor, dict) else editor.id
        if email and normalize_email(editor_email) == email:
            editor_record_id = editor_id
            if role != Role.ADMIN:
                role = Role.EDITOR
            break
    return role, editor_record_id


def decode_auth_token(token: str, settings: Settings) -> AuthSession:
    """Verify a bearer token issued by the hosted auth service."""
    if not settings.auth_jwt_secret:
        raise AuthError("authentication is not configured")
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    options = {"verify_aud": bool(settings.auth_jwt_audience)}
    try:
        claims = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as e:
        raise AuthError(f"invalid token: {e}")
    user_id = claims.get("sub")
    email = claims.get("email")
    if not user_id or not email:
        raise AuthError("token is missing sub/email claims")
    return AuthSession(user_id=str(user_id), email=email)


def resolve_user(auth_session: AuthSession, data, settings: Settings) -> User:
    """Request-scoped resolution: roster lookup plus allow-list check."""
    email = normalize_email(auth_session.email)
    roster = data.editors.fetch_all()
    if roster.failed:
        logger.warning("Editor roster unavailable while resolving %s; falling back to allow-list only", email)
    role, editor_record_id = resolve_role(email, settings.admin_emails, roster)
    return User(id=auth_session.user_id, email=email, role=role, editor_record_id=editor_record_id)


def load_scoped_submissions(data, user: User) -> list:
    if user.role == Role.ADMIN:
        return data.submissions.fetch_all()
    if user.role == Role.EDITOR and user.editor_record_id:
        return data.submissions.fetch_by_editor(user.editor_record_id)
    return data.submissions.fetch_by_user(user.id)


def in_scope(user: Optional[User]) -> Callable[[Dict[str, Any]], bool]:
    """Row predicate (wire-form rows) matching `load_scoped_submissions`."""
    if user is None:
        return lambda row: False
    if user.role == Role.ADMIN:
        return lambda row: True
    if user.role == Role.EDITOR and user.editor_record_id:
        return lambda row: row.get("assignedEditorId") == user.editor_record_id
    return lambda row: row.get("ownerId") == user.id


@dataclass
class SessionState:
    user: Optional[User] = None
    editors: List[Any] = field(default_factory=list)
    submissions: List[Any] = field(default_factory=list)
    initializing: bool = True


class IdentityResolver:
    """Long-lived resolver for one live session.

    Auth events can arrive back to back (initial session, then a token
    refresh). Each call to `identify` takes a new sequence number and only the
    most recent call may write `state`; an older call that finishes late
    discards what it loaded.
    """

    def __init__(self, data, settings: Settings):
        self.data = data
        self.settings = settings
        self.state = SessionState()
        self._sequence = 0

    @property
    def sequence(self) -> int:
        return self._sequence

    def _is_current(self, sequence: int) -> bool:
        return sequence == self._sequence

    async def identify(self, auth_session: Optional[AuthSession]) -> bool:
        """Resolve `auth_session` into `state`. Returns False if superseded."""
        self._sequence += 1
        sequence = self._sequence

        try:
            if auth_session is None:
                if self._is_current(sequence):
                    self.state = SessionState(user=None, initializing=False)
                return self._is_current(sequence)

            email = normalize_email(auth_session.email)
            editors: List[Any] = []
            try:
                roster = await run_in_threadpool(self.data.editors.fetch_all)
                if roster.failed:
                    logger.warning("Editor roster fetch failed: %s", roster.error)
                editors = list(roster)
            except Exception as e:
                logger.warning("Editor roster fetch failed: %s", e)

            if not self._is_current(sequence):
                logger.debug("Discarding stale identity resolution #%s", sequence)
                return False

            role, editor_record_id = resolve_role(email, self.settings.admin_emails, editors)
            user = User(id=auth_session.user_id, email=email, role=role, editor_record_id=editor_record_id)
            submissions = await run_in_threadpool(load_scoped_submissions, self.data, user)

            if not self._is_current(sequence):
                logger.debug("Discarding stale identity resolution #%s", sequence)
                return False

            self.state = SessionState(user=user, editors=editors, submissions=list(submissions), initializing=False)
            logger.info("Resolved session user=%s role=%s", user.id, user.role.value)
            return True
        except Exception as e:
            logger.exception("Identity resolution failed: %s", e)
            if self._is_current(sequence):
                self.state = SessionState(user=None, initializing=False)
            return False
