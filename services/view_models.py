"""
Screen-level state holders for the rendering layer.

Each view model owns a ScreenScope; closing it cancels in-flight requests so a
response arriving after the screen went away never touches its state.
"""
import logging
import time
from datetime import date
from typing import List, Optional
from config import settings
from models.schemas import (
    Favorite,
    PlaceDetail,
    ReconciledRoute,
    Review,
    RouteRequest,
    RouteResponse,
)
from services.auth import AuthSession
from services.place_service import PlaceService
from services.reconciliation import RouteReconciler
from services.route_service import RouteRequestError, RouteService, build_route_request
from services.storage import TravelParamsStore
from utils.scope import ScopeClosedError, ScreenScope

logger = logging.getLogger(__name__)


def average_rating(reviews: List[Review]) -> float:
    """리뷰 평균 평점 (리뷰가 없으면 0)"""
    if not reviews:
        return 0.0
    return sum(review.rating for review in reviews) / len(reviews)


def build_local_review(place_id: str, place_name: str, user_name: str, rating: int, comment: str) -> Review:
    """서버 확인 전 화면에 먼저 보여줄 임시 리뷰 (다음 전체 조회 시 서버 데이터로 대체)"""
    return Review(
        id=f"temp-{int(time.time() * 1000)}",
        place_id=place_id,
        place_name=place_name,
        user_name=user_name,
        rating=rating,
        comment=comment,
        review_date=date.today().isoformat(),
        source="user",
    )


class ViewModel:
    def __init__(self, name: str):
        self.scope = ScreenScope(name)
        self.loading = False

    async def close(self) -> None:
        await self.scope.close()


class RouteListViewModel(ViewModel):
    """추천 경로 목록 화면 상태"""

    def __init__(
        self,
        route_service: RouteService,
        reconciler: RouteReconciler,
        store: TravelParamsStore,
        session: Optional[AuthSession] = None,
    ):
        super().__init__("route-list")
        self.route_service = route_service
        self.reconciler = reconciler
        self.store = store
        self.session = session
        self.response: Optional[RouteResponse] = None
        self.reconciled: Optional[ReconciledRoute] = None
        self.error: Optional[str] = None
        self._last_request: Optional[RouteRequest] = None

    async def load(self, request: Optional[RouteRequest] = None) -> bool:
        """
        경로 추천 요청 후 장소 ID/즐겨찾기 반영

        Args:
            request: 명시적 요청 파라미터 (없으면 저장된 파라미터 사용)

        Returns:
            성공 여부 (실패 시 error에 사용자 메시지)
        """
        self.loading = True
        self.error = None
        try:
            if request is None:
                request = build_route_request(self.store.load())
            self._last_request = request

            response = await self.scope.run(self.route_service.request_route_response(request))
            self.response = response
            self.reconciled = await self.scope.run(
                self.reconciler.reconcile(response.route_recommendation, self.session)
            )
            return True

        except RouteRequestError as e:
            logger.error(f"경로 화면 로드 실패: {str(e)}")
            self.error = str(e)
            return False
        except ScopeClosedError:
            logger.debug("Route list closed before load finished")
            return False
        finally:
            self.loading = False

    async def retry(self) -> bool:
        """마지막 요청으로 다시 시도 (없으면 저장된 파라미터 사용)"""
        return await self.load(self._last_request)


class PlaceDetailViewModel(ViewModel):
    """장소 상세 화면 상태: 상세 정보, 리뷰 페이지, 평균 평점, 즐겨찾기"""

    def __init__(
        self,
        place_service: PlaceService,
        session: Optional[AuthSession] = None,
        reviews_per_page: Optional[int] = None,
    ):
        super().__init__("place-detail")
        self.place_service = place_service
        self.session = session
        self.reviews_per_page = reviews_per_page or settings.reviews_per_page
        self.place: Optional[PlaceDetail] = None
        self.reviews: List[Review] = []
        self.average_rating = 0.0
        self.current_page = 0
        self.is_favorite = False

    async def load(self, place_name: str) -> bool:
        """이름으로 장소 상세 정보와 리뷰 첫 페이지 로드 (실패 시 기존 상태 유지)"""
        self.loading = True
        try:
            place = await self.scope.run(self.place_service.get_place_details_by_name(place_name))
            if place is None:
                logger.info(f"장소 상세 정보 없음: {place_name}")
                return False

            self.place = place
            self.reviews = place.reviews[: self.reviews_per_page]
            self.current_page = 1
            if place.average_rating is not None:
                self.average_rating = place.average_rating
            else:
                self.average_rating = average_rating(place.reviews)

            self.is_favorite = await self.scope.run(
                self.place_service.check_favorite_status(place.place_id, self.session)
            )
            return True

        except ScopeClosedError:
            return False
        finally:
            self.loading = False

    async def load_more_reviews(self) -> int:
        """
        다음 리뷰 페이지 로드

        빈 페이지(더 없음 또는 조회 실패)는 현재 페이지를 그대로 둔다.

        Returns:
            추가된 리뷰 수
        """
        if self.place is None:
            return 0

        next_page = self.current_page + 1
        try:
            page = await self.scope.run(
                self.place_service.get_reviews_by_place_id(
                    self.place.place_id,
                    self.reviews_per_page,
                    (next_page - 1) * self.reviews_per_page,
                )
            )
        except ScopeClosedError:
            return 0

        if page:
            self.reviews = self.reviews + page
            self.current_page = next_page
        return len(page)

    async def submit_review(self, user_name: str, rating: int, comment: str) -> bool:
        """
        리뷰 작성. 성공하면 임시 리뷰를 목록 맨 앞에 추가하고 평균 평점을 다시 계산

        Raises:
            ValueError: 이름이 비어 있거나 평점이 1~5 범위를 벗어난 경우
        """
        if self.place is None:
            return False
        if not user_name.strip():
            raise ValueError("이름을 입력해주세요.")
        if not 1 <= rating <= 5:
            raise ValueError("평점은 1~5 사이여야 합니다.")

        try:
            success = await self.scope.run(
                self.place_service.add_user_review(
                    self.place.place_id, self.place.name, user_name, rating, comment
                )
            )
        except ScopeClosedError:
            return False

        if not success:
            return False

        local_review = build_local_review(self.place.place_id, self.place.name, user_name, rating, comment)
        self.reviews = [local_review] + self.reviews
        self.average_rating = average_rating(self.reviews)
        return True

    async def toggle_favorite(self) -> bool:
        """즐겨찾기 추가/제거. 서버가 성공을 응답한 경우에만 상태를 바꾼다."""
        if self.place is None:
            return False

        if self.is_favorite:
            operation = self.place_service.remove_from_favorites(self.place.place_id, self.session)
        else:
            operation = self.place_service.add_to_favorites(self.place.place_id, self.session)

        try:
            success = await self.scope.run(operation)
        except ScopeClosedError:
            return False

        if success:
            self.is_favorite = not self.is_favorite
        return success


class FavoritesViewModel(ViewModel):
    """즐겨찾기 목록 화면 상태 (방문할 때마다 서버에서 다시 조회)"""

    def __init__(self, place_service: PlaceService, session: Optional[AuthSession] = None):
        super().__init__("favorites")
        self.place_service = place_service
        self.session = session
        self.favorites: List[Favorite] = []

    @property
    def is_empty(self) -> bool:
        return not self.favorites

    async def load(self) -> List[Favorite]:
        self.loading = True
        try:
            self.favorites = await self.scope.run(self.place_service.get_favorites(self.session))
        except ScopeClosedError:
            pass
        finally:
            self.loading = False
        return self.favorites
