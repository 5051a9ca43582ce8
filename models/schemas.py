from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    """서버/저장소의 camelCase 필드명을 alias로 받는 기본 모델"""
    model_config = ConfigDict(populate_by_name=True)


class TravelParams(CamelModel):
    """사용자가 마지막으로 입력한 여행 파라미터 (기기당 하나)"""
    start_location: Optional[str] = Field(default=None, alias="startLocation", description="출발지")
    end_location: Optional[str] = Field(default=None, alias="endLocation", description="도착지")
    leisure_type: Optional[str] = Field(default=None, alias="leisureType", description="여가 유형")
    experience_type: Optional[str] = Field(default=None, alias="experienceType", description="체험 유형")
    travel_days: Optional[str] = Field(default=None, alias="travelDays", description="여행 일수 (숫자 문자열)")

    @field_validator("travel_days")
    @classmethod
    def _numeric_days(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.isdigit():
            raise ValueError(f"travelDays must be numeric, got {value!r}")
        return value

    def to_record(self) -> dict:
        """저장용 dict (값이 없는 필드는 제외)"""
        return self.model_dump(by_alias=True, exclude_none=True)


class Review(BaseModel):
    id: str
    place_id: Optional[str] = None
    place_name: Optional[str] = None
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    review_date: str = Field(..., description="ISO 날짜 문자열 (YYYY-MM-DD)")
    source: Literal["google", "user"]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("comment", mode="before")
    @classmethod
    def _null_comment(cls, value):
        return "" if value is None else value


class PlaceActivity(BaseModel):
    id: int
    place_id: str
    activity_type: str
    description: str
    recommended_time: str


class PlaceDetail(BaseModel):
    """서버에서 조회한 장소 상세 정보"""
    id: Optional[int] = None
    place_id: str
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[str] = None
    closed_days: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    average_rating: Optional[float] = None
    reviews: List[Review] = Field(default_factory=list)
    activities: List[PlaceActivity] = Field(default_factory=list)


class PlaceSearchResult(CamelModel):
    place_id: str = Field(..., alias="placeId")
    name: str
    address: Optional[str] = None


class Favorite(BaseModel):
    id: Optional[int] = None
    place_id: str
    name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[str] = None


class RoutePlace(BaseModel):
    name: str = Field(..., description="장소명")
    description: str = Field(default="", description="장소 설명")
    activity: str = Field(default="", description="추천 활동")
    time: str = Field(default="", description="추천 시간")

    @field_validator("description", "activity", "time", mode="before")
    @classmethod
    def _null_text(cls, value):
        # null은 빈 문자열로 취급
        return "" if value is None else value


class RouteDay(BaseModel):
    day: int = Field(..., ge=1, description="일차")
    places: List[RoutePlace] = Field(default_factory=list)


class TravelRoute(BaseModel):
    title: str
    description: str = ""
    days: List[RouteDay] = Field(..., description="일별 추천 장소")

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, value):
        return "" if value is None else value

    def place_names(self) -> List[str]:
        """모든 일차의 장소명 (첫 등장 순서, 정확히 일치하는 이름은 한 번만)"""
        return list(dict.fromkeys(place.name for day in self.days for place in day.places))


class RouteRequest(CamelModel):
    start_location: str = Field(..., alias="startLocation")
    end_location: str = Field(..., alias="endLocation")
    leisure_type: str = Field(..., alias="leisureType")
    experience_type: str = Field(..., alias="experienceType")
    travel_days: str = Field(..., alias="travelDays")


class RoutePreferences(CamelModel):
    leisure_type: str = Field(..., alias="leisureType")
    experience_type: str = Field(..., alias="experienceType")


class RouteResponse(CamelModel):
    success: bool
    start_location: str = Field(..., alias="startLocation")
    end_location: str = Field(..., alias="endLocation")
    preferences: RoutePreferences
    route_recommendation: TravelRoute = Field(..., alias="routeRecommendation")


class ReconciledPlace(RoutePlace):
    """place_id와 즐겨찾기 여부가 덧붙은 일정 장소 (메모리 전용)"""
    place_id: Optional[str] = None
    is_favorite: bool = False


class ReconciledDay(BaseModel):
    day: int
    places: List[ReconciledPlace]


class ReconciledRoute(BaseModel):
    title: str
    description: str
    days: List[ReconciledDay]


class Identity(BaseModel):
    uid: str
    email: Optional[str] = None
    id_token: str
    refresh_token: str
    expires_at: float = Field(..., description="id_token 만료 시각 (epoch seconds)")
