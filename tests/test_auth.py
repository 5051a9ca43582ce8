"""
Tests for the session provider (services/auth.py) against a mocked Firebase REST API.
"""
import json
import time

import httpx
import pytest

from models.schemas import Identity
from services.auth import (
    AUTH_SESSION_KEY,
    AuthProviderError,
    AuthSession,
    FirebaseAuthProvider,
    InvalidCredentialsError,
    NoSessionError,
)
from services.storage import FileKeyValueStorage


class FakeFirebase:
    """accounts:signInWithPassword / accounts:signUp / token 엔드포인트 흉내"""

    def __init__(self):
        self.users = {"me@example.com": ("secret1", "uid-1")}
        self.refresh_count = 0
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/token"):
            self.refresh_count += 1
            return httpx.Response(200, json={
                "id_token": f"id-refreshed-{self.refresh_count}",
                "refresh_token": "refresh-2",
                "expires_in": "3600",
                "user_id": "uid-1",
            })

        body = json.loads(request.content)
        email, password = body["email"], body["password"]

        if path.endswith("accounts:signUp"):
            if email in self.users:
                return _firebase_error("EMAIL_EXISTS")
            self.users[email] = (password, f"uid-{len(self.users) + 1}")
        elif email not in self.users or self.users[email][0] != password:
            return _firebase_error("INVALID_LOGIN_CREDENTIALS")

        return httpx.Response(200, json={
            "localId": self.users[email][1],
            "email": email,
            "idToken": "id-initial",
            "refreshToken": "refresh-1",
            "expiresIn": "3600",
        })


def _firebase_error(message: str) -> httpx.Response:
    return httpx.Response(400, json={"error": {"code": 400, "message": message}})


@pytest.fixture
def firebase():
    return FakeFirebase()


@pytest.fixture
def provider(firebase):
    client = httpx.AsyncClient(transport=httpx.MockTransport(firebase.handler))
    return FirebaseAuthProvider(
        api_key="fb-key",
        client=client,
        identity_url="https://identity.test/v1",
        token_url="https://token.test/v1",
    )


class TestAuthSession:
    @pytest.mark.asyncio
    async def test_no_identity_initially(self, provider):
        session = AuthSession(provider)

        assert session.current_identity() is None
        with pytest.raises(NoSessionError):
            await session.mint_credential()

    @pytest.mark.asyncio
    async def test_sign_in_and_mint(self, provider, firebase):
        session = AuthSession(provider)

        identity = await session.sign_in("me@example.com", "secret1")

        assert identity.uid == "uid-1"
        assert session.current_identity() == identity
        assert firebase.requests[0].url.params["key"] == "fb-key"

    @pytest.mark.asyncio
    async def test_force_refresh_always_requests_new_token(self, provider, firebase):
        session = AuthSession(provider)
        await session.sign_in("me@example.com", "secret1")

        first = await session.mint_credential(force_refresh=True)
        second = await session.mint_credential(force_refresh=True)

        assert (first, second) == ("id-refreshed-1", "id-refreshed-2")
        assert firebase.refresh_count == 2

    @pytest.mark.asyncio
    async def test_cached_token_used_without_force(self, provider, firebase):
        session = AuthSession(provider)
        await session.sign_in("me@example.com", "secret1")

        assert await session.mint_credential(force_refresh=False) == "id-initial"
        assert firebase.refresh_count == 0

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, provider, firebase):
        identity = Identity(uid="uid-1", id_token="old", refresh_token="r", expires_at=time.time() - 1)
        session = AuthSession(provider, identity=identity)

        assert await session.mint_credential(force_refresh=False) == "id-refreshed-1"

    @pytest.mark.asyncio
    async def test_wrong_password(self, provider):
        session = AuthSession(provider)

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await session.sign_in("me@example.com", "wrong")

        assert exc_info.value.code == "INVALID_LOGIN_CREDENTIALS"
        assert session.current_identity() is None

    @pytest.mark.asyncio
    async def test_sign_up_existing_email(self, provider):
        with pytest.raises(InvalidCredentialsError):
            await AuthSession(provider).sign_up("me@example.com", "another")

    @pytest.mark.asyncio
    async def test_sign_up_new_user_becomes_current(self, provider):
        session = AuthSession(provider)

        identity = await session.sign_up("new@example.com", "secret2")

        assert session.current_identity() == identity
        assert identity.email == "new@example.com"

    @pytest.mark.asyncio
    async def test_empty_credentials_rejected_without_request(self, provider, firebase):
        with pytest.raises(InvalidCredentialsError):
            await AuthSession(provider).sign_in("", "secret1")
        assert firebase.requests == []

    @pytest.mark.asyncio
    async def test_provider_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        provider = FirebaseAuthProvider(api_key="k", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(AuthProviderError):
            await AuthSession(provider).sign_in("me@example.com", "secret1")

    @pytest.mark.asyncio
    async def test_sign_out(self, provider):
        session = AuthSession(provider)
        await session.sign_in("me@example.com", "secret1")

        session.sign_out()

        assert session.current_identity() is None


class TestSessionPersistence:
    @pytest.mark.asyncio
    async def test_restore_after_restart(self, provider, tmp_path):
        storage = FileKeyValueStorage(str(tmp_path))
        session = AuthSession.restore(provider, storage)
        await session.sign_in("me@example.com", "secret1")

        restored = AuthSession.restore(provider, storage)

        assert restored.current_identity().uid == "uid-1"

    @pytest.mark.asyncio
    async def test_sign_out_forgets_saved_session(self, provider, tmp_path):
        storage = FileKeyValueStorage(str(tmp_path))
        session = AuthSession.restore(provider, storage)
        await session.sign_in("me@example.com", "secret1")

        session.sign_out()

        assert storage.get_item(AUTH_SESSION_KEY) is None
        assert AuthSession.restore(provider, storage).current_identity() is None

    def test_corrupt_saved_session_means_signed_out(self, provider, tmp_path):
        storage = FileKeyValueStorage(str(tmp_path))
        storage.set_item(AUTH_SESSION_KEY, "{broken")

        assert AuthSession.restore(provider, storage).current_identity() is None


class TestMalformedProviderResponses:
    """HTML 페이지 등 JSON이 아닌 200 응답은 AuthProviderError로 바뀐다"""

    @staticmethod
    def _captive_portal_provider():
        def handler(request):
            return httpx.Response(200, text="<html>captive portal</html>")

        return FirebaseAuthProvider(api_key="k", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    @pytest.mark.asyncio
    async def test_sign_in_with_html_body(self):
        session = AuthSession(self._captive_portal_provider())

        with pytest.raises(AuthProviderError):
            await session.sign_in("me@example.com", "secret1")
        assert session.current_identity() is None

    @pytest.mark.asyncio
    async def test_sign_up_with_non_object_body(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "object"])

        provider = FirebaseAuthProvider(api_key="k", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(AuthProviderError):
            await AuthSession(provider).sign_up("new@example.com", "secret2")

    @pytest.mark.asyncio
    async def test_refresh_with_html_body(self):
        identity = Identity(uid="uid-1", id_token="old", refresh_token="r", expires_at=time.time() + 3600)
        session = AuthSession(self._captive_portal_provider(), identity=identity)

        with pytest.raises(AuthProviderError):
            await session.mint_credential(force_refresh=True)
        assert session.current_identity() == identity
