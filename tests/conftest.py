"""
In-process fake of the travel backend.

The FastAPI app below mimics the real server's routes and records every request so
tests can assert which calls were (or were not) made. Clients reach it through
httpx.ASGITransport, no network involved.
"""
import time
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from models.schemas import Identity
from services.auth import AuthProviderError, AuthSession, NoSessionError
from services.place_service import PlaceService
from services.route_service import RouteService


class FavoriteBody(BaseModel):
    place_id: str


class FakeBackend:
    """장소/리뷰/즐겨찾기/경로 추천 서버 흉내"""

    def __init__(self):
        self.places: Dict[str, dict] = {}
        self.reviews: Dict[str, List[dict]] = {}
        self.favorites: Dict[str, List[dict]] = {}
        self.route_payload: Optional[dict] = None
        self.fail_search_for: set = set()
        self.fail_paths: set = set()
        self.calls: List[tuple] = []
        self.app = self._build_app()

    def add_place(self, name: str, place_id: str, reviews: Optional[List[dict]] = None, **extra):
        self.places[name] = {"place_id": place_id, "name": name, **extra}
        self.reviews[place_id] = reviews or []

    def calls_to(self, path_prefix: str) -> List[tuple]:
        return [call for call in self.calls if call[1].startswith(path_prefix)]

    def _place_by_id(self, place_id: str) -> Optional[dict]:
        for place in self.places.values():
            if place["place_id"] == place_id:
                return place
        return None

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def record(request: Request, call_next):
            backend.calls.append((request.method, request.url.path))
            if request.url.path in backend.fail_paths:
                return JSONResponse({"error": "boom"}, status_code=500)
            return await call_next(request)

        def user_of(authorization: Optional[str]) -> Optional[str]:
            if not authorization or not authorization.startswith("Bearer token-"):
                return None
            return authorization[len("Bearer token-"):]

        @app.post("/places/search")
        async def search(body: dict):
            name = body.get("placeName")
            if name in backend.fail_search_for:
                return JSONResponse({"success": False, "error": "internal"}, status_code=500)
            place = backend.places.get(name)
            if place is None:
                return {"success": False}
            return {
                "success": True,
                "placeId": place["place_id"],
                "name": place["name"],
                "address": place.get("address", ""),
            }

        @app.post("/places/sync-reviews")
        async def sync_reviews(body: dict):
            return {"success": True, "reviews": backend.reviews.get(body["placeId"], [])}

        @app.get("/places/favorites")
        async def list_favorites(authorization: Optional[str] = Header(default=None)):
            user = user_of(authorization)
            if user is None:
                return JSONResponse({"success": False}, status_code=401)
            return {"success": True, "favorites": backend.favorites.get(user, [])}

        @app.post("/places/favorites")
        async def add_favorite(body: FavoriteBody, authorization: Optional[str] = Header(default=None)):
            user = user_of(authorization)
            if user is None:
                return JSONResponse({"success": False}, status_code=401)
            place = backend._place_by_id(body.place_id) or {"name": body.place_id}
            backend.favorites.setdefault(user, []).insert(
                0, {"id": len(backend.favorites[user]) + 1, "place_id": body.place_id, "name": place["name"]}
            )
            return {"success": True}

        @app.delete("/places/favorites")
        async def remove_favorite(body: FavoriteBody, authorization: Optional[str] = Header(default=None)):
            user = user_of(authorization)
            if user is None:
                return JSONResponse({"success": False}, status_code=401)
            backend.favorites[user] = [
                f for f in backend.favorites.get(user, []) if f["place_id"] != body.place_id
            ]
            return {"success": True}

        @app.get("/places/favorites/{place_id}")
        async def check_favorite(place_id: str, authorization: Optional[str] = Header(default=None)):
            user = user_of(authorization)
            if user is None:
                return JSONResponse({"success": False}, status_code=401)
            ids = {f["place_id"] for f in backend.favorites.get(user, [])}
            return {"success": True, "isFavorite": place_id in ids}

        @app.get("/places/{place_id}/details")
        async def details(place_id: str):
            place = backend._place_by_id(place_id)
            if place is None:
                return JSONResponse({"success": False}, status_code=404)
            return {"success": True, **place, "reviews": backend.reviews.get(place_id, [])}

        @app.get("/reviews/{place_id}")
        async def list_reviews(place_id: str, limit: int = 10, offset: int = 0):
            reviews = backend.reviews.get(place_id, [])
            return {"success": True, "reviews": reviews[offset:offset + limit]}

        @app.post("/reviews")
        async def add_review(body: dict):
            place_id = body["placeId"]
            backend.reviews.setdefault(place_id, []).insert(0, {
                "id": 1000 + len(backend.reviews[place_id]),
                "place_id": place_id,
                "place_name": body["placeName"],
                "user_name": body["userName"],
                "rating": body["rating"],
                "comment": body["comment"],
                "review_date": "2025-01-01",
                "source": "user",
            })
            return {"success": True}

        @app.post("/recommend-route/travel-route")
        async def travel_route(body: dict):
            if backend.route_payload is None:
                return JSONResponse({"success": False, "error": "no route"}, status_code=500)
            return {
                "success": True,
                "startLocation": body["startLocation"],
                "endLocation": body["endLocation"],
                "preferences": {
                    "leisureType": body["leisureType"],
                    "experienceType": body["experienceType"],
                },
                "routeRecommendation": backend.route_payload,
            }

        return app


class FakeSession(AuthSession):
    """토큰 발급만 흉내 내는 세션 (uid가 없으면 로그아웃 상태)"""

    def __init__(self, uid: Optional[str] = None, broken: bool = False):
        identity = None
        if uid is not None:
            identity = Identity(uid=uid, id_token=f"token-{uid}", refresh_token="r", expires_at=time.time() + 3600)
        super().__init__(provider=None, identity=identity)
        self.broken = broken
        self.mint_count = 0

    async def mint_credential(self, force_refresh: bool = True) -> str:
        if self.identity is None:
            raise NoSessionError("no user")
        if self.broken:
            raise AuthProviderError("refresh failed")
        self.mint_count += 1
        return self.identity.id_token


def make_review(review_id, rating: int, source: str = "google", place_id: str = "p-1") -> dict:
    return {
        "id": review_id,
        "place_id": place_id,
        "place_name": "경복궁",
        "user_name": f"user{review_id}",
        "rating": rating,
        "comment": "좋아요",
        "review_date": "2024-05-01",
        "source": source,
    }


def three_day_route() -> dict:
    return {
        "title": "서울에서 부산까지 문화 여행",
        "description": "3일간의 역사 문화 탐방",
        "days": [
            {"day": 1, "places": [
                {"name": "경복궁", "description": "조선 왕궁", "activity": "궁궐 산책", "time": "09:00"},
                {"name": "국립중앙박물관", "description": "한국 최대 박물관", "activity": "전시 관람", "time": "14:00"},
            ]},
            {"day": 2, "places": [
                {"name": "불국사", "description": "신라 사찰", "activity": "사찰 탐방", "time": "10:00"},
                {"name": "경복궁", "description": "다시 방문", "activity": "야간 개장", "time": "19:00"},
            ]},
            {"day": 3, "places": [
                {"name": "해동용궁사", "description": "바닷가 사찰", "activity": "일출 감상", "time": "06:00"},
            ]},
        ],
    }


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def http_client(backend):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=backend.app), base_url="http://test") as client:
        yield client


@pytest.fixture
def place_service(http_client):
    return PlaceService(client=http_client, api_key="test-key")


@pytest.fixture
def route_service(http_client):
    return RouteService(client=http_client)
