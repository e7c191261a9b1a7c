"""
AgriSupply Session Context
Application-level auth state with an explicit lifecycle: start on mount,
close on unmount. Consumers read `user`, `profile` and `loading` and are
notified on every change instead of polling.
"""
from collections import namedtuple
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session, sessionmaker

from .database import SessionLocal
from .exceptions import AuthenticationError
from .security import verify_token

logger = logging.getLogger("agrisupply.security")

LOGIN_ROUTE = "/login"

GuardDecision = namedtuple("GuardDecision", ["action", "redirect_to"])
LOADING = "LOADING"
REDIRECT = "REDIRECT"
RENDER = "RENDER"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


class TokenSessionProvider:
    """
    Session backend over bearer tokens and user profiles.

    Emits (event, session) to its listeners whenever the session changes.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal, access_token: Optional[str] = None):
        self.session_factory = session_factory
        self.access_token = access_token
        self._listeners: List[Callable[[str, Optional[Dict[str, Any]]], None]] = []

    def _emit(self, event: str, session: Optional[Dict[str, Any]]) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    def on_change(self, listener: Callable[[str, Optional[Dict[str, Any]]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_session(self) -> Optional[Dict[str, Any]]:
        """Current session, or None when there is no valid token"""
        if not self.access_token:
            return None

        payload = verify_token(self.access_token)
        if not payload or not payload.get("sub"):
            return None

        from agrisupply.services.auth_service import AuthService

        db: Session = self.session_factory()
        try:
            user = AuthService(db).get_user_by_email(payload["sub"])
            if not user or not user.is_active:
                return None
            db.expunge(user)
        finally:
            db.close()
        return {"access_token": self.access_token, "user": user}

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        from agrisupply.services.auth_service import AuthService

        db: Session = self.session_factory()
        try:
            service = AuthService(db)
            user = service.authenticate_user(email, password)
            if user is None:
                raise AuthenticationError("Invalid login credentials")
            token = service.create_user_session(user)["access_token"]
            db.expunge(user)
        finally:
            db.close()

        self.access_token = token
        session = {"access_token": token, "user": user}
        self._emit(SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        self.access_token = None
        self._emit(SIGNED_OUT, None)


class AuthSession:
    """Current user, their profile and a loading flag"""

    def __init__(self, provider: TokenSessionProvider):
        self.provider = provider
        self.user = None
        self.profile: Optional[Dict[str, Any]] = None
        self.loading = True
        self._listeners: List[Callable[["AuthSession"], None]] = []
        self._unsubscribe_provider: Optional[Callable[[], None]] = None

    def _apply(self, session: Optional[Dict[str, Any]]) -> None:
        user = session["user"] if session else None
        self.user = user
        self.profile = None
        if user is not None:
            self.profile = {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "display_name": user.full_name or user.email,
                "role": user.role,
            }
        self.loading = False
        for listener in list(self._listeners):
            listener(self)

    def _on_provider_change(self, event: str, session: Optional[Dict[str, Any]]) -> None:
        logger.debug(f"Session event {event}")
        self._apply(session)

    def start(self) -> None:
        """Load the current session and follow provider changes"""
        if self._unsubscribe_provider is None:
            self._unsubscribe_provider = self.provider.on_change(self._on_provider_change)

        self.loading = True
        session = None
        try:
            session = self.provider.get_session()
        except Exception as e:
            # No retry; the gate falls through to the login redirect
            logger.error(f"Failed to load session: {e}")
        self._apply(session)

    def subscribe(self, listener: Callable[["AuthSession"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, email: str, password: str) -> None:
        self.provider.sign_in(email, password)

    def sign_out(self) -> None:
        self.provider.sign_out()

    def close(self) -> None:
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None
        self._listeners.clear()


def guard_route(session: AuthSession) -> GuardDecision:
    """Spinner while loading, login redirect without a user, else render"""
    if session.loading:
        return GuardDecision(LOADING, None)
    if session.user is None:
        return GuardDecision(REDIRECT, LOGIN_ROUTE)
    return GuardDecision(RENDER, None)
