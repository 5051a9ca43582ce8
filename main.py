#!/usr/bin/env python3
"""
Travel planner command-line client

Drives the data layer from a terminal: trip params, login, route recommendation,
place details and favorites.
"""
import argparse
import asyncio
import getpass
import logging
import sys
from config import settings
from services.auth import AuthProviderError, AuthSession, FirebaseAuthProvider, InvalidCredentialsError
from services.place_service import PlaceService
from services.reconciliation import RouteReconciler
from services.route_service import RouteService
from services.storage import FileKeyValueStorage, TravelParamsStore
from services.view_models import FavoritesViewModel, PlaceDetailViewModel, RouteListViewModel

# 로깅 설정
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PARAM_KEYS = ["startLocation", "endLocation", "leisureType", "experienceType", "travelDays"]


def cmd_params(args, storage: FileKeyValueStorage) -> int:
    store = TravelParamsStore(storage)

    if args.action == "set":
        store.update_field(args.key, args.value)
    elif args.action == "clear":
        store.clear()
        print("여행 정보가 삭제되었습니다.")
        return 0

    params = store.load()
    if params is None:
        print("저장된 여행 정보가 없습니다.")
        return 0
    for key, value in params.to_record().items():
        print(f"{key}: {value}")
    return 0


async def cmd_auth(args, storage: FileKeyValueStorage) -> int:
    provider = FirebaseAuthProvider()
    session = AuthSession.restore(provider, storage)
    try:
        if args.command == "logout":
            session.sign_out()
            if args.clear_params:
                TravelParamsStore(storage).clear()
            print("로그아웃 되었습니다.")
            return 0

        password = getpass.getpass("비밀번호: ")
        if args.command == "signup":
            if password != getpass.getpass("비밀번호 확인: "):
                print("비밀번호가 일치하지 않습니다.")
                return 1
            identity = await session.sign_up(args.email, password)
            print(f"회원가입이 완료되었습니다. ({identity.email})")
        else:
            identity = await session.sign_in(args.email, password)
            print(f"로그인 성공: {identity.email}")
        return 0
    except InvalidCredentialsError:
        print("이메일 또는 비밀번호가 올바르지 않습니다.")
        return 1
    except AuthProviderError as e:
        print(f"인증 서버 오류: {e}")
        return 1
    finally:
        await provider.aclose()


async def cmd_remote(args, storage: FileKeyValueStorage) -> int:
    provider = FirebaseAuthProvider()
    session = AuthSession.restore(provider, storage)
    place_service = PlaceService()
    route_service = RouteService()
    try:
        if args.command == "route":
            return await _show_route(route_service, place_service, storage, session)
        if args.command == "place":
            return await _show_place(place_service, session, args.name, args.more_pages)
        if args.command == "favorites":
            return await _show_favorites(place_service, session)
        if args.command == "favorite":
            return await _change_favorite(place_service, session, args.action, args.place_id)
        return 1
    finally:
        await place_service.aclose()
        await route_service.aclose()
        await provider.aclose()


async def _show_route(route_service, place_service, storage, session) -> int:
    view = RouteListViewModel(
        route_service,
        RouteReconciler(place_service),
        TravelParamsStore(storage),
        session if session.current_identity() else None,
    )
    try:
        if not await view.load():
            print(view.error)
            return 1

        response, route = view.response, view.reconciled
        print(f"# {route.title}")
        print(route.description)
        print(f"출발지: {response.start_location}  도착지: {response.end_location}")
        print(
            f"여행 스타일: {response.preferences.leisure_type}, {response.preferences.experience_type}"
        )
        for day in route.days:
            print(f"\nDay {day.day}")
            for place in day.places:
                heart = "♥" if place.is_favorite else " "
                print(f" {heart} {place.name} [{place.place_id or '-'}]")
                print(f"     {place.description}")
                print(f"     추천 활동: {place.activity} / 추천 시간: {place.time}")
        return 0
    finally:
        await view.close()


async def _show_place(place_service, session, name: str, more_pages: int) -> int:
    view = PlaceDetailViewModel(place_service, session)
    try:
        if not await view.load(name):
            print("장소 정보를 불러오는데 실패했습니다.")
            return 1
        for _ in range(more_pages):
            if not await view.load_more_reviews():
                break

        place = view.place
        print(f"# {place.name} ({place.place_id}){' ♥' if view.is_favorite else ''}")
        for label, value in (
            ("주소", place.address),
            ("전화", place.phone),
            ("영업시간", place.opening_hours),
            ("휴무일", place.closed_days),
        ):
            if value:
                print(f"{label}: {value}")
        print(f"평점: {view.average_rating:.1f} ({len(view.reviews)}개 리뷰 표시)")
        for review in view.reviews:
            print(f" - [{review.source}] {review.user_name} {review.rating}/5 {review.review_date}: {review.comment}")
        return 0
    finally:
        await view.close()


async def _show_favorites(place_service, session) -> int:
    view = FavoritesViewModel(place_service, session)
    try:
        favorites = await view.load()
        if view.is_empty:
            print("즐겨찾기한 장소가 없습니다.")
            return 0
        print(f"총 {len(favorites)}개의 즐겨찾기한 장소가 있습니다.")
        for favorite in favorites:
            print(f" - {favorite.name} ({favorite.place_id}) {favorite.address or ''}")
        return 0
    finally:
        await view.close()


async def _change_favorite(place_service, session, action: str, place_id: str) -> int:
    if action == "add":
        success = await place_service.add_to_favorites(place_id, session)
        message = "즐겨찾기에 추가되었습니다."
    else:
        success = await place_service.remove_from_favorites(place_id, session)
        message = "즐겨찾기에서 제거되었습니다."

    print(message if success else "즐겨찾기 처리 중 문제가 발생했습니다.")
    return 0 if success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="나만의 여행 플래너 CLI")
    parser.add_argument("--storage-dir", default=settings.storage_dir, help="로컬 저장소 디렉터리")
    sub = parser.add_subparsers(dest="command", required=True)

    params = sub.add_parser("params", help="저장된 여행 정보 보기/수정")
    params_sub = params.add_subparsers(dest="action", required=True)
    params_sub.add_parser("show")
    params_set = params_sub.add_parser("set")
    params_set.add_argument("key", choices=PARAM_KEYS)
    params_set.add_argument("value")
    params_sub.add_parser("clear")

    for name in ("login", "signup"):
        auth = sub.add_parser(name)
        auth.add_argument("email")
    logout = sub.add_parser("logout")
    logout.add_argument("--clear-params", action="store_true", help="저장된 여행 정보도 삭제")

    sub.add_parser("route", help="저장된 여행 정보로 추천 경로 조회")

    place = sub.add_parser("place", help="장소 상세 정보와 리뷰")
    place.add_argument("name")
    place.add_argument("--more-pages", type=int, default=0)

    sub.add_parser("favorites", help="즐겨찾기 목록")
    favorite = sub.add_parser("favorite", help="즐겨찾기 추가/제거")
    favorite.add_argument("action", choices=["add", "remove"])
    favorite.add_argument("place_id")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    storage = FileKeyValueStorage(args.storage_dir)

    if args.command == "params":
        return cmd_params(args, storage)
    if args.command in ("login", "signup", "logout"):
        return asyncio.run(cmd_auth(args, storage))
    return asyncio.run(cmd_remote(args, storage))


if __name__ == "__main__":
    sys.exit(main())
