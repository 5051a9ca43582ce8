import logging
from typing import Optional
import httpx
from pydantic import ValidationError
from config import settings
from models.schemas import RouteRequest, RouteResponse, TravelParams, TravelRoute
from utils.http_errors import ResponseDecodeError, decode_json, log_http_error

logger = logging.getLogger(__name__)

# 저장된 파라미터에 값이 없을 때 사용하는 기본값
DEFAULT_START_LOCATION = "현재 위치"
DEFAULT_END_LOCATION = "서울"
DEFAULT_TRAVEL_DAYS = "3"


class RouteRequestError(Exception):
    """Route recommendation failed; the caller should offer a manual retry."""

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class MissingTravelParamsError(RouteRequestError):
    """Leisure/experience type not set yet; the user must fill the trip form first."""
    pass


def build_route_request(saved: Optional[TravelParams]) -> RouteRequest:
    """
    저장된 여행 파라미터로 경로 추천 요청 생성

    Raises:
        MissingTravelParamsError: 여가/체험 유형이 저장되어 있지 않은 경우
    """
    if saved is None or not saved.leisure_type or not saved.experience_type:
        raise MissingTravelParamsError(
            "여행 정보가 없습니다. 홈 화면에서 설정해주세요.", kind="missing_params"
        )

    return RouteRequest(
        start_location=saved.start_location or DEFAULT_START_LOCATION,
        end_location=saved.end_location or DEFAULT_END_LOCATION,
        leisure_type=saved.leisure_type,
        experience_type=saved.experience_type,
        travel_days=saved.travel_days or DEFAULT_TRAVEL_DAYS,
    )


class RouteService:
    """여행 경로 추천 API 클라이언트 (실패는 RouteRequestError로 전달, 자동 재시도 없음)"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=settings.api_base_url)
        self.timeout = settings.route_timeout

    async def __aenter__(self) -> "RouteService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def request_route_response(self, params: RouteRequest) -> RouteResponse:
        """
        여행 경로 추천 요청 (응답 전체)

        Args:
            params: 출발지, 도착지, 여가/체험 유형, 여행 일수

        Returns:
            RouteResponse

        Raises:
            RouteRequestError: 전송 오류, 타임아웃, 서버 오류, success=false, 응답 형식 오류
        """
        logger.info(
            f"Requesting travel route: {params.start_location} -> {params.end_location}, "
            f"{params.travel_days} days ({params.leisure_type}, {params.experience_type})"
        )

        try:
            response = await self.client.post(
                "/recommend-route/travel-route",
                json=params.model_dump(by_alias=True),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = decode_json(response)
            result = RouteResponse.model_validate(data)
        except (httpx.HTTPError, ResponseDecodeError, ValidationError) as e:
            kind = log_http_error("여행 경로 불러오기", e, logger)
            raise RouteRequestError("여행 경로를 불러오는데 실패했습니다.", kind=kind) from e

        if not result.success:
            logger.error("여행 경로 불러오기 실패: success=false")
            raise RouteRequestError("여행 경로를 불러오는데 실패했습니다.", kind="unsuccessful")

        logger.info(f"Received travel route with {len(result.route_recommendation.days)} days")
        return result

    async def request_route(self, params: RouteRequest) -> TravelRoute:
        """여행 경로 추천 요청 (일정만 반환)"""
        result = await self.request_route_response(params)
        return result.route_recommendation
