"""
Tests for the application session context and route guard
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agrisupply.core.database import Base
from agrisupply.core.exceptions import AuthenticationError
from agrisupply.core.session import (
    LOADING, REDIRECT, RENDER, SIGNED_IN, SIGNED_OUT,
    AuthSession, TokenSessionProvider, guard_route
)
from agrisupply.schemas.auth import UserProfileCreate
from agrisupply.services.auth_service import AuthService

PASSWORD = "warehouse-pass-1"


@pytest.fixture
def session_factory():
    """Own in-memory database; the provider opens and closes its sessions"""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    AuthService(db).create_user(UserProfileCreate(
        email="clerk@agrisupply.co.za", full_name="Bongani Zulu", password=PASSWORD
    ))
    AuthService(db).create_user(UserProfileCreate(
        email="nameless@agrisupply.co.za", password=PASSWORD
    ))
    db.close()

    yield factory
    engine.dispose()


class FailingProvider(TokenSessionProvider):
    def get_session(self):
        raise ConnectionError("auth backend unreachable")


class TestTokenSessionProvider:
    """Test the token-backed session provider"""

    def test_no_token(self, session_factory):
        """Test no session without a token"""
        assert TokenSessionProvider(session_factory).get_session() is None

    def test_invalid_token(self, session_factory):
        """Test a garbage token yields no session"""
        assert TokenSessionProvider(session_factory, access_token="not-a-jwt").get_session() is None

    def test_sign_in_emits_event(self, session_factory):
        """Test sign-in stores the token and notifies listeners"""
        provider = TokenSessionProvider(session_factory)
        events = []
        provider.on_change(lambda event, session: events.append((event, session)))

        session = provider.sign_in("clerk@agrisupply.co.za", PASSWORD)

        assert provider.access_token == session["access_token"]
        assert events[0][0] == SIGNED_IN
        assert events[0][1]["user"].email == "clerk@agrisupply.co.za"
        assert provider.get_session()["user"].full_name == "Bongani Zulu"

    def test_sign_in_failure(self, session_factory):
        """Test bad credentials raise and leave the provider signed out"""
        provider = TokenSessionProvider(session_factory)

        with pytest.raises(AuthenticationError):
            provider.sign_in("clerk@agrisupply.co.za", "wrong-password")

        assert provider.access_token is None

    def test_unsubscribe(self, session_factory):
        """Test removed listeners are no longer called"""
        provider = TokenSessionProvider(session_factory)
        events = []
        unsubscribe = provider.on_change(lambda event, session: events.append(event))

        unsubscribe()
        provider.sign_out()

        assert events == []


class TestAuthSession:
    """Test the session context lifecycle"""

    def test_loading_until_started(self, session_factory):
        """Test the guard shows a spinner before the first load"""
        auth = AuthSession(TokenSessionProvider(session_factory))

        assert auth.loading is True
        assert guard_route(auth) == (LOADING, None)

    def test_signed_out_redirects(self, session_factory):
        """Test no session sends the user to login"""
        auth = AuthSession(TokenSessionProvider(session_factory))

        auth.start()

        assert auth.loading is False
        assert auth.user is None
        assert guard_route(auth) == (REDIRECT, "/login")

    def test_sign_in_and_out(self, session_factory):
        """Test provider events update the context and its subscribers"""
        auth = AuthSession(TokenSessionProvider(session_factory))
        auth.start()
        seen = []
        auth.subscribe(lambda context: seen.append(context.user is not None))

        auth.sign_in("clerk@agrisupply.co.za", PASSWORD)

        assert guard_route(auth) == (RENDER, None)
        assert auth.profile["display_name"] == "Bongani Zulu"
        assert auth.profile["role"] == "staff"

        auth.sign_out()

        assert auth.user is None
        assert auth.profile is None
        assert seen == [True, False]

    def test_display_name_falls_back_to_email(self, session_factory):
        """Test a profile without a full name shows the email"""
        auth = AuthSession(TokenSessionProvider(session_factory))
        auth.start()

        auth.sign_in("nameless@agrisupply.co.za", PASSWORD)

        assert auth.profile["display_name"] == "nameless@agrisupply.co.za"

    def test_existing_token_restores_session(self, session_factory):
        """Test a stored token is picked up on start"""
        provider = TokenSessionProvider(session_factory)
        token = provider.sign_in("clerk@agrisupply.co.za", PASSWORD)["access_token"]

        auth = AuthSession(TokenSessionProvider(session_factory, access_token=token))
        auth.start()

        assert auth.user.email == "clerk@agrisupply.co.za"

    def test_load_error_falls_through_to_login(self, session_factory):
        """Test a failing backend ends loading without a user"""
        auth = AuthSession(FailingProvider(session_factory))

        auth.start()

        assert auth.loading is False
        assert guard_route(auth).action == REDIRECT

    def test_close_stops_updates(self, session_factory):
        """Test a closed context ignores provider events"""
        provider = TokenSessionProvider(session_factory)
        auth = AuthSession(provider)
        auth.start()
        auth.close()

        provider.sign_in("clerk@agrisupply.co.za", PASSWORD)

        assert auth.user is None


class TestSessionEvents:
    """Test the event names emitted on sign-out"""

    def test_sign_out_event(self, session_factory):
        """Test sign-out clears the token and emits SIGNED_OUT"""
        provider = TokenSessionProvider(session_factory, access_token="stale")
        events = []
        provider.on_change(lambda event, session: events.append((event, session)))

        provider.sign_out()

        assert provider.access_token is None
        assert events == [(SIGNED_OUT, None)]
