import asyncio
import logging
from typing import Dict, List, Optional
from models.schemas import (
    PlaceDetail,
    ReconciledDay,
    ReconciledPlace,
    ReconciledRoute,
    TravelRoute,
)
from services.auth import AuthSession
from services.place_service import PlaceService

logger = logging.getLogger(__name__)


class RouteReconciler:
    """추천 일정의 장소명을 place_id로 해석하고 즐겨찾기 여부를 덧붙임"""

    def __init__(self, place_service: PlaceService):
        self.place_service = place_service

    async def resolve_place_ids(self, names: List[str]) -> Dict[str, str]:
        """
        장소명 → place_id 동시 해석

        모든 요청이 끝날 때까지 기다리며, 개별 실패는 무시하고 다른 요청을 취소하지 않는다.

        Args:
            names: 중복 없는 장소명 리스트

        Returns:
            {장소명: place_id} (해석에 실패한 이름은 포함되지 않음)
        """
        if not names:
            return {}

        results = await asyncio.gather(
            *(self.place_service.get_place_details_by_name(name) for name in names),
            return_exceptions=True,
        )

        resolved: Dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Place resolution failed for '{name}': {result!r}")
                continue
            if isinstance(result, PlaceDetail):
                resolved[name] = result.place_id

        logger.info(f"Resolved {len(resolved)}/{len(names)} place names")
        return resolved

    async def reconcile(self, route: TravelRoute, session: Optional[AuthSession]) -> ReconciledRoute:
        """
        일정 조정: 장소 ID 해석 후 즐겨찾기 목록을 한 번만 조회해 덮어씀

        원래 route 객체는 변경하지 않는다.

        Args:
            route: 서버에서 받은 추천 일정
            session: 로그인 세션 (없으면 즐겨찾기 표시 없음)

        Returns:
            place_id와 is_favorite가 추가된 일정 사본
        """
        resolved = await self.resolve_place_ids(route.place_names())

        favorites = await self.place_service.get_favorites(session) if session else []
        favorite_ids = {favorite.place_id for favorite in favorites}

        days = []
        for day in route.days:
            places = []
            for place in day.places:
                place_id = resolved.get(place.name)
                places.append(
                    ReconciledPlace(
                        **place.model_dump(),
                        place_id=place_id,
                        is_favorite=place_id is not None and place_id in favorite_ids,
                    )
                )
            days.append(ReconciledDay(day=day.day, places=places))

        return ReconciledRoute(title=route.title, description=route.description, days=days)
