import json
import logging
import time
from typing import Optional
import httpx
from pydantic import ValidationError
from config import settings
from models.schemas import Identity
from services.storage import FileKeyValueStorage
from utils.http_errors import ResponseDecodeError, decode_json, log_http_error

logger = logging.getLogger(__name__)

AUTH_SESSION_KEY = "auth_session"

# 자격 증명 불일치 / 이미 존재하는 계정 등 사용자 입력 문제로 보는 Firebase 오류 코드
CREDENTIAL_ERROR_CODES = (
    "EMAIL_EXISTS",
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_EMAIL",
    "INVALID_LOGIN_CREDENTIALS",
    "USER_DISABLED",
    "MISSING_PASSWORD",
    "WEAK_PASSWORD",
)


class NoSessionError(Exception):
    """No identity is signed in; the operation requires login."""
    pass


class InvalidCredentialsError(Exception):
    """Sign-in/sign-up rejected (wrong credentials, unknown user, email already in use)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class AuthProviderError(Exception):
    """Identity provider unreachable or returned an unexpected response."""
    pass


class FirebaseAuthProvider:
    """Firebase Identity Toolkit REST API 클라이언트"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        identity_url: Optional[str] = None,
        token_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.firebase_api_key
        self.identity_url = (identity_url or settings.firebase_identity_url).rstrip("/")
        self.token_url = (token_url or settings.firebase_token_url).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def sign_in(self, email: str, password: str) -> Identity:
        data = await self._post_identity(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity_from_account(data)

    async def sign_up(self, email: str, password: str) -> Identity:
        data = await self._post_identity(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._identity_from_account(data)

    async def refresh(self, identity: Identity) -> Identity:
        """refresh token으로 새 id token 발급"""
        try:
            response = await self.client.post(
                f"{self.token_url}/token",
                params={"key": self.api_key},
                data={"grant_type": "refresh_token", "refresh_token": identity.refresh_token},
            )
            response.raise_for_status()
            data = decode_json(response)
            return Identity(
                uid=data.get("user_id", identity.uid),
                email=identity.email,
                id_token=data["id_token"],
                refresh_token=data.get("refresh_token", identity.refresh_token),
                expires_at=time.time() + float(data.get("expires_in", 3600)),
            )
        except (httpx.HTTPError, ResponseDecodeError, KeyError, ValueError) as e:
            log_http_error("인증 토큰 갱신", e, logger)
            raise AuthProviderError(f"Token refresh failed: {e}") from e

    async def _post_identity(self, endpoint: str, payload: dict) -> dict:
        try:
            response = await self.client.post(
                f"{self.identity_url}/{endpoint}",
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            log_http_error(f"Firebase {endpoint}", e, logger)
            raise AuthProviderError(f"{endpoint} request failed: {e}") from e

        if response.status_code == 400:
            code = _firebase_error_code(response)
            if code and code.split(" ")[0] in CREDENTIAL_ERROR_CODES:
                raise InvalidCredentialsError(f"Firebase rejected credentials: {code}", code=code)

        try:
            response.raise_for_status()
            return decode_json(response)
        except (httpx.HTTPStatusError, ResponseDecodeError, ValueError) as e:
            log_http_error(f"Firebase {endpoint}", e, logger)
            raise AuthProviderError(f"{endpoint} failed: {e}") from e

    @staticmethod
    def _identity_from_account(data: dict) -> Identity:
        try:
            return Identity(
                uid=data["localId"],
                email=data.get("email"),
                id_token=data["idToken"],
                refresh_token=data["refreshToken"],
                expires_at=time.time() + float(data.get("expiresIn", 3600)),
            )
        except (KeyError, ValueError) as e:
            raise AuthProviderError(f"Malformed account response: {e}") from e


def _firebase_error_code(response: httpx.Response) -> Optional[str]:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return None


class AuthSession:
    """
    현재 로그인한 사용자와 bearer 토큰 발급을 담당하는 세션 객체

    전역 상태가 아니라 필요한 작업에 명시적으로 전달한다.
    storage가 주어지면 로그인 상태를 저장해 프로세스 재시작 후에도 유지한다.
    """

    def __init__(
        self,
        provider: FirebaseAuthProvider,
        identity: Optional[Identity] = None,
        storage: Optional[FileKeyValueStorage] = None,
    ):
        self.provider = provider
        self.identity = identity
        self.storage = storage

    @classmethod
    def restore(cls, provider: FirebaseAuthProvider, storage: FileKeyValueStorage) -> "AuthSession":
        """저장된 세션을 불러옴 (없거나 손상된 경우 로그아웃 상태)"""
        identity = None
        try:
            raw = storage.get_item(AUTH_SESSION_KEY)
            if raw is not None:
                identity = Identity.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"저장된 로그인 정보 불러오기 실패: {str(e)}")
        return cls(provider, identity=identity, storage=storage)

    def current_identity(self) -> Optional[Identity]:
        return self.identity

    async def mint_credential(self, force_refresh: bool = True) -> str:
        """
        현재 사용자의 bearer 토큰 발급

        Args:
            force_refresh: True이면 캐시된 토큰을 무시하고 항상 새 토큰을 발급

        Returns:
            id token 문자열

        Raises:
            NoSessionError: 로그인한 사용자가 없는 경우
            AuthProviderError: 토큰 갱신 실패
        """
        if self.identity is None:
            raise NoSessionError("로그인된 사용자가 없습니다.")

        if force_refresh or self.identity.expires_at <= time.time():
            self._set_identity(await self.provider.refresh(self.identity))
            logger.debug(f"토큰 갱신 완료: uid={self.identity.uid}")

        return self.identity.id_token

    async def sign_in(self, email: str, password: str) -> Identity:
        _require_credentials(email, password)
        identity = await self.provider.sign_in(email, password)
        self._set_identity(identity)
        logger.info(f"로그인 성공: uid={identity.uid}")
        return identity

    async def sign_up(self, email: str, password: str) -> Identity:
        _require_credentials(email, password)
        identity = await self.provider.sign_up(email, password)
        self._set_identity(identity)
        logger.info(f"회원가입 성공: uid={identity.uid}")
        return identity

    def sign_out(self) -> None:
        self.identity = None
        if self.storage is not None:
            try:
                self.storage.remove_item(AUTH_SESSION_KEY)
            except OSError as e:
                logger.error(f"로그인 정보 삭제 실패: {str(e)}")

    def _set_identity(self, identity: Identity) -> None:
        self.identity = identity
        if self.storage is not None:
            try:
                self.storage.set_item(AUTH_SESSION_KEY, identity.model_dump_json())
            except OSError as e:
                logger.error(f"로그인 정보 저장 실패: {str(e)}")


def _require_credentials(email: str, password: str) -> None:
    if not email or not password:
        raise InvalidCredentialsError("이메일과 비밀번호를 모두 입력해주세요.")
