import os
from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# 환경 변수로 환경 구분 (local 또는 prod)
env = os.getenv("ENV", "local")

# 환경에 따라 다른 .env 파일 로드
if env == "prod":
    env_file_path = ".env.prod"
else:
    env_file_path = ".env"

load_dotenv(dotenv_path=env_file_path)


class Settings(BaseSettings):
    # Backend API
    api_base_url: str = os.getenv("API_BASE_URL", "http://localhost:3000")
    google_maps_api_key: str = os.getenv("GOOGLE_MAPS_API_KEY", "")

    # Firebase Auth
    firebase_api_key: str = os.getenv("FIREBASE_API_KEY", "")
    firebase_identity_url: str = os.getenv(
        "FIREBASE_IDENTITY_URL", "https://identitytoolkit.googleapis.com/v1"
    )
    firebase_token_url: str = os.getenv(
        "FIREBASE_TOKEN_URL", "https://securetoken.googleapis.com/v1"
    )

    # Local storage
    storage_dir: str = os.getenv("STORAGE_DIR", os.path.expanduser("~/.travel_planner"))

    # Timeouts (seconds)
    search_timeout: float = Field(
        default=10.0,
        description="장소 검색 요청 타임아웃 (타임아웃은 검색 결과 없음과 동일하게 처리)"
    )
    request_timeout: float = Field(
        default=30.0,
        description="그 외 장소/리뷰/즐겨찾기 요청 타임아웃"
    )
    route_timeout: float = Field(
        default=60.0,
        description="여행 경로 추천 요청 타임아웃"
    )

    # Place detail
    reviews_per_page: int = Field(
        default=5,
        ge=1,
        description="장소 상세 화면의 리뷰 페이지 크기"
    )

    # Travel params store
    store_update_max_attempts: int = Field(
        default=3,
        ge=1,
        description="update_field compare-and-swap 최대 시도 횟수"
    )

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
