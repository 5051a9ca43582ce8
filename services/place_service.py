import logging
from typing import List, Optional
import httpx
from pydantic import TypeAdapter, ValidationError
from config import settings
from models.schemas import Favorite, PlaceDetail, PlaceSearchResult, Review
from services.auth import AuthProviderError, AuthSession, NoSessionError
from utils.http_errors import ResponseDecodeError, decode_json, log_http_error

logger = logging.getLogger(__name__)

_reviews_adapter = TypeAdapter(List[Review])
_favorites_adapter = TypeAdapter(List[Favorite])

# 요청 실패를 빈 결과로 처리할 예외
REQUEST_FAILURES = (httpx.HTTPError, ResponseDecodeError, ValidationError)


class PlaceService:
    """
    장소 검색 / 리뷰 / 즐겨찾기 서버 API 클라이언트

    모든 작업은 실패 시 예외 대신 빈 결과(None, [], False)를 반환한다.
    실패 유형은 로그로만 남긴다.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, api_key: Optional[str] = None):
        self.client = client or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
        )
        self.api_key = api_key if api_key is not None else settings.google_maps_api_key
        self.search_timeout = settings.search_timeout

    async def __aenter__(self) -> "PlaceService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def search_place_by_name(self, place_name: str) -> Optional[PlaceSearchResult]:
        """
        장소 이름으로 검색

        타임아웃은 검색 결과 없음과 동일하게 None을 반환한다.

        Args:
            place_name: 검색할 장소 이름

        Returns:
            PlaceSearchResult 또는 None
        """
        try:
            response = await self.client.post(
                "/places/search",
                json={"placeName": place_name, "apiKey": self.api_key},
                timeout=self.search_timeout,
            )
            response.raise_for_status()
            data = decode_json(response)

            if data.get("success"):
                return PlaceSearchResult.model_validate(data)

            logger.info(f"장소 검색 결과 없음: {place_name}")
            return None

        except REQUEST_FAILURES as e:
            log_http_error(f"장소 검색 ({place_name})", e, logger)
            return None

    async def get_place_details(self, place_id: str) -> Optional[PlaceDetail]:
        """장소 ID로 상세 정보 및 리뷰 조회"""
        try:
            response = await self.client.get(f"/places/{place_id}/details")
            response.raise_for_status()
            data = decode_json(response)

            if data.get("success"):
                return PlaceDetail.model_validate(data)
            return None

        except REQUEST_FAILURES as e:
            log_http_error(f"장소 상세 정보 조회 ({place_id})", e, logger)
            return None

    async def get_place_details_by_name(self, place_name: str) -> Optional[PlaceDetail]:
        """
        장소 이름으로 상세 정보 조회

        1. 이름으로 place_id 검색 (실패 시 바로 None)
        2. 외부 리뷰를 서버 DB에 동기화
        3. 상세 정보 조회

        캐시하지 않으므로 같은 이름으로 다시 호출하면 세 단계를 모두 다시 수행한다.
        """
        search_result = await self.search_place_by_name(place_name)
        if search_result is None:
            return None

        await self.sync_place_reviews(search_result.place_id, search_result.name)

        return await self.get_place_details(search_result.place_id)

    async def sync_place_reviews(self, place_id: str, place_name: str) -> List[Review]:
        """
        외부 리뷰 소스에서 리뷰를 가져와 서버 DB에 동기화

        여러 번 호출해도 안전하다. 빈 리스트는 오류가 아니다.
        """
        try:
            response = await self.client.post(
                "/places/sync-reviews",
                json={"placeId": place_id, "placeName": place_name, "apiKey": self.api_key},
            )
            response.raise_for_status()
            data = decode_json(response)

            if data.get("success"):
                return _reviews_adapter.validate_python(data.get("reviews") or [])
            return []

        except REQUEST_FAILURES as e:
            log_http_error(f"리뷰 동기화 ({place_id})", e, logger)
            return []

    async def get_reviews_by_place_id(self, place_id: str, limit: int = 10, offset: int = 0) -> List[Review]:
        """
        장소 ID로 리뷰 목록 조회

        offset 관리는 호출자 책임. 실패 시 빈 리스트이며 "더 이상 리뷰 없음"과 구분되지 않는다.
        """
        try:
            response = await self.client.get(
                f"/reviews/{place_id}",
                params={"limit": limit, "offset": offset},
            )
            response.raise_for_status()
            data = decode_json(response)

            if data.get("success"):
                return _reviews_adapter.validate_python(data.get("reviews") or [])
            return []

        except REQUEST_FAILURES as e:
            log_http_error(f"리뷰 조회 ({place_id})", e, logger)
            return []

    async def add_user_review(
        self,
        place_id: str,
        place_name: str,
        user_name: str,
        rating: int,
        comment: str,
    ) -> bool:
        """사용자 리뷰 작성 (생성된 리뷰는 반환하지 않음)"""
        try:
            response = await self.client.post(
                "/reviews",
                json={
                    "placeId": place_id,
                    "placeName": place_name,
                    "userName": user_name,
                    "rating": rating,
                    "comment": comment,
                },
            )
            response.raise_for_status()
            return bool(decode_json(response).get("success"))

        except REQUEST_FAILURES as e:
            log_http_error(f"리뷰 작성 ({place_id})", e, logger)
            return False

    async def add_to_favorites(self, place_id: str, session: AuthSession) -> bool:
        """장소 즐겨찾기 추가 (중복 방지는 서버 책임)"""
        headers = await self._auth_headers(session, "즐겨찾기 추가")
        if headers is None:
            return False

        logger.info(f"즐겨찾기 추가 요청: {place_id}")
        try:
            response = await self.client.post(
                "/places/favorites",
                json={"place_id": place_id},
                headers=headers,
            )
            response.raise_for_status()
            data = decode_json(response)
            logger.debug(f"즐겨찾기 추가 응답: {data}")
            return bool(data.get("success"))

        except REQUEST_FAILURES as e:
            log_http_error(f"즐겨찾기 추가 ({place_id})", e, logger)
            return False

    async def remove_from_favorites(self, place_id: str, session: AuthSession) -> bool:
        """장소 즐겨찾기 제거"""
        headers = await self._auth_headers(session, "즐겨찾기 제거")
        if headers is None:
            return False

        try:
            response = await self.client.request(
                "DELETE",
                "/places/favorites",
                json={"place_id": place_id},
                headers=headers,
            )
            response.raise_for_status()
            return bool(decode_json(response).get("success"))

        except REQUEST_FAILURES as e:
            log_http_error(f"즐겨찾기 제거 ({place_id})", e, logger)
            return False

    async def check_favorite_status(self, place_id: str, session: AuthSession) -> bool:
        """
        장소 즐겨찾기 상태 확인

        "즐겨찾기 아님"과 "확인 실패" 모두 False를 반환한다.
        """
        headers = await self._auth_headers(session, "즐겨찾기 상태 확인")
        if headers is None:
            return False

        try:
            response = await self.client.get(f"/places/favorites/{place_id}", headers=headers)
            response.raise_for_status()
            return decode_json(response).get("isFavorite") is True

        except REQUEST_FAILURES as e:
            log_http_error(f"즐겨찾기 상태 확인 ({place_id})", e, logger)
            return False

    async def get_favorites(self, session: AuthSession) -> List[Favorite]:
        """사용자의 즐겨찾기 목록 (서버 순서 유지, 실패 시 빈 리스트)"""
        headers = await self._auth_headers(session, "즐겨찾기 목록 가져오기")
        if headers is None:
            return []

        try:
            response = await self.client.get("/places/favorites", headers=headers)
            response.raise_for_status()
            data = decode_json(response)

            if data.get("success"):
                favorites = _favorites_adapter.validate_python(data.get("favorites") or [])
                logger.info(f"즐겨찾기 {len(favorites)}개 조회")
                return favorites
            return []

        except REQUEST_FAILURES as e:
            log_http_error("즐겨찾기 목록 가져오기", e, logger)
            return []

    async def _auth_headers(self, session: Optional[AuthSession], action: str) -> Optional[dict]:
        """bearer 토큰 헤더 생성. 토큰을 얻을 수 없으면 None (요청하지 않음)"""
        if session is None:
            logger.error(f"{action} 실패: 세션이 없습니다")
            return None
        try:
            token = await session.mint_credential(force_refresh=True)
        except NoSessionError:
            logger.error(f"{action} 실패: 로그인된 사용자가 없습니다")
            return None
        except AuthProviderError as e:
            logger.error(f"{action} 실패: 인증 토큰 가져오기 실패 ({str(e)})")
            return None

        return {"Authorization": f"Bearer {token}"}
