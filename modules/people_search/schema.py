"""People Search 모듈 데이터 스키마 정의

Pydantic v2를 사용한 데이터 계약 정의
파이썬 속성은 snake_case, 엔진/호출자 표현은 camelCase (alias)
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

EMBEDDING_DIMENSION = 1024
DEFAULT_SEARCH_LIMIT = 10


def _validate_vector_dimension(v: Optional[List[float]]) -> Optional[List[float]]:
    if v is not None and len(v) != EMBEDDING_DIMENSION:
        raise ValueError(
            f"벡터 차원은 {EMBEDDING_DIMENSION}이어야 합니다 (입력: {len(v)})"
        )
    return v


def _parse_json_string(v: Any) -> Any:
    """JSON 문자열로 전달된 값을 파싱 (빈 문자열은 None)"""
    if isinstance(v, str):
        if not v.strip():
            return None
        return json.loads(v)
    return v


class CamelModel(BaseModel):
    """camelCase alias 공통 베이스"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class RankingStrategy(str, Enum):
    """랭킹 전략 (엔진 랭킹 프로파일 이름과 동일)

    DEFAULT: 어휘 매칭 기본 랭킹
    SEMANTIC: 벡터 최근접 이웃만 사용
    HYBRID: 어휘 매칭 + 벡터 최근접 이웃 합집합
    EXPERIENCE_FOCUSED: 경력 가중 랭킹
    SKILLS_FOCUSED: 스킬 가중 랭킹
    """
    DEFAULT = "default"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    EXPERIENCE_FOCUSED = "experience_focused"
    SKILLS_FOCUSED = "skills_focused"

    @property
    def needs_vector(self) -> bool:
        """질의 벡터를 사용하는 전략인지 여부"""
        return self in (RankingStrategy.SEMANTIC, RankingStrategy.HYBRID)


class SearchFilters(CamelModel):
    """검색 필터 옵션"""
    industry: Optional[str] = Field(None, description="산업 일치 필터")
    min_experience: Optional[int] = Field(None, ge=0, description="최소 경력 연수 (포함)")
    max_experience: Optional[int] = Field(None, ge=0, description="최대 경력 연수 (포함)")
    skills: List[str] = Field(default_factory=list, description="스킬 중 하나 이상 일치")

    @field_validator('max_experience')
    @classmethod
    def validate_experience_range(cls, v: Optional[int], info) -> Optional[int]:
        """최대 경력이 최소 경력 이상인지 검증"""
        minimum = info.data.get('min_experience')
        if v is not None and minimum is not None and v < minimum:
            raise ValueError("최대 경력은 최소 경력보다 작을 수 없습니다")
        return v

    @field_validator('skills', mode='before')
    @classmethod
    def validate_skills(cls, v: Any) -> Any:
        if v is None:
            return []
        return v


class ProfileSource(CamelModel):
    """호출자가 전달하는 사용자 프로필 (모든 필드 선택)"""
    full_name: Optional[str] = Field(None, description="이름")
    email: Optional[str] = Field(None, description="이메일")
    job_role: Optional[str] = Field(None, description="직무")
    company_name: Optional[str] = Field(None, description="회사명")
    industry: Optional[str] = Field(None, description="산업")
    years_of_experience: Optional[int] = Field(None, ge=0, description="경력 연수")
    education: Optional[str] = Field(None, description="학력")
    about: Optional[str] = Field(None, description="자기소개")
    skills: Optional[List[str]] = Field(None, description="스킬 목록")
    interests: Optional[List[str]] = Field(None, description="관심사 목록")
    profile_picture_url: Optional[str] = Field(None, description="프로필 사진 URL")
    is_onboarding_complete: Optional[bool] = Field(None, description="온보딩 완료 여부")
    profile_vector: Optional[List[float]] = Field(None, description="미리 계산된 프로필 벡터")

    class Config:
        extra = "ignore"


class SearchableProfile(CamelModel):
    """검색 엔진에 색인되는 사용자 문서"""
    user_id: str = Field(..., min_length=1, description="사용자 ID")
    full_name: Optional[str] = Field(None, description="이름")
    email: Optional[str] = Field(None, description="이메일")
    job_role: Optional[str] = Field(None, description="직무")
    company_name: Optional[str] = Field(None, description="회사명")
    industry: Optional[str] = Field(None, description="산업")
    years_of_experience: Optional[int] = Field(None, ge=0, description="경력 연수")
    education: Optional[str] = Field(None, description="학력")
    about: Optional[str] = Field(None, description="자기소개")
    skills: List[str] = Field(default_factory=list, description="스킬 목록")
    interests: List[str] = Field(default_factory=list, description="관심사 목록")
    profile_picture_url: Optional[str] = Field(None, description="프로필 사진 URL")
    searchable_content: str = Field(default="", description="파생 검색 텍스트")
    profile_vector: Optional[List[float]] = Field(None, description="프로필 임베딩 벡터")
    is_onboarding_complete: bool = Field(default=False, description="온보딩 완료 여부")
    created_at: Optional[int] = Field(None, description="생성 시각 (epoch ms)")
    updated_at: Optional[int] = Field(None, description="수정 시각 (epoch ms)")

    @field_validator('profile_vector')
    @classmethod
    def validate_profile_vector(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _validate_vector_dimension(v)

    def to_document_fields(self) -> Dict[str, Any]:
        """엔진 문서 필드 (camelCase, 값 없는 필드 제외)"""
        return self.model_dump(by_alias=True, exclude_none=True)


class ProfileView(CamelModel):
    """검색 결과로 반환되는 프로필 (엔진에 저장된 필드만 포함)"""
    user_id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    job_role: Optional[str] = None
    company_name: Optional[str] = None
    industry: Optional[str] = None
    years_of_experience: Optional[int] = None
    education: Optional[str] = None
    about: Optional[str] = None
    skills: Optional[List[str]] = None
    interests: Optional[List[str]] = None
    profile_picture_url: Optional[str] = None
    is_onboarding_complete: Optional[bool] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_fields(cls, fields: Dict[str, Any]) -> "ProfileView":
        """엔진 필드에서 생성

        형식이 맞지 않는 필드는 기본값으로 채우지 않고 제외한다.
        """
        data = {k: v for k, v in fields.items() if v is not None}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            invalid = set()
            for err in e.errors():
                if not err.get("loc"):
                    continue
                name = err["loc"][0]
                invalid.add(name)
                if name in cls.model_fields:
                    invalid.add(cls.model_fields[name].alias)
            return cls.model_validate({k: v for k, v in data.items() if k not in invalid})


class SearchRequest(CamelModel):
    """검색 요청 데이터"""
    query: Optional[str] = Field(None, description="검색 질의 텍스트")
    query_vector: Optional[List[float]] = Field(None, description="미리 계산된 질의 벡터")
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1, description="결과 개수 제한")
    ranking_strategy: RankingStrategy = Field(default=RankingStrategy.DEFAULT, description="랭킹 전략")
    filters: SearchFilters = Field(default_factory=SearchFilters, description="검색 필터")
    include_component_scores: bool = Field(default=False, description="하이브리드 구성 점수 포함 여부")

    @field_validator('query_vector')
    @classmethod
    def validate_query_vector(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        return _validate_vector_dimension(v)

    @field_validator('filters', mode='before')
    @classmethod
    def validate_filters(cls, v: Any) -> Any:
        if v is None:
            return SearchFilters()
        return v

    @property
    def query_text(self) -> str:
        """공백 제거된 질의 텍스트 (없으면 빈 문자열)"""
        return (self.query or "").strip()


class HybridScore(CamelModel):
    """하이브리드 점수 구성 (구성 점수를 얻을 수 없으면 None)"""
    semantic: Optional[float] = Field(None, description="의미 유사도 점수")
    keyword: Optional[float] = Field(None, description="키워드 점수")
    combined: float = Field(..., description="결합 점수")


class SearchResult(CamelModel):
    """개별 검색 결과"""
    user_id: str = Field(..., description="사용자 ID")
    score: float = Field(..., description="관련성 점수 (엔진 스케일)")
    profile: ProfileView = Field(..., description="프로필")
    hybrid_score: Optional[HybridScore] = Field(None, description="하이브리드 점수 구성")


class SearchResponse(CamelModel):
    """호출자 응답 봉투"""
    success: bool = Field(..., description="성공 여부")
    results: Optional[List[SearchResult]] = Field(None, description="검색 결과 목록")
    total: Optional[int] = Field(None, ge=0, description="전체 결과 개수")
    error: Optional[str] = Field(None, description="에러 메시지")

    @classmethod
    def ok(
        cls,
        results: Optional[List[SearchResult]] = None,
        total: Optional[int] = None
    ) -> "SearchResponse":
        return cls(success=True, results=results, total=total)

    @classmethod
    def failure(cls, error: str) -> "SearchResponse":
        return cls(success=False, error=error)

    def to_payload(self) -> Dict[str, Any]:
        """camelCase 딕셔너리 (None 필드 제외)"""
        return self.model_dump(by_alias=True, exclude_none=True)


# === 호출자 액션 (action 값으로 구분되는 태그드 유니온) ===

class _ActionBase(CamelModel):

    class Config:
        extra = "ignore"


class _ProfileActionMixin(BaseModel):

    @field_validator('user_profile', mode='before', check_fields=False)
    @classmethod
    def parse_user_profile(cls, v: Any) -> Any:
        return _parse_json_string(v)


class _SearchActionMixin(BaseModel):

    @field_validator('filters', 'query_vector', mode='before', check_fields=False)
    @classmethod
    def parse_json_fields(cls, v: Any) -> Any:
        return _parse_json_string(v)


class SearchUsersAction(_SearchActionMixin, _ActionBase):
    """일반 검색 (랭킹 프로파일 선택)"""
    action: Literal["search_users"] = "search_users"
    query: Optional[str] = None
    query_vector: Optional[List[float]] = None
    limit: Optional[int] = None
    filters: Optional[SearchFilters] = None
    ranking_profile: RankingStrategy = RankingStrategy.DEFAULT
    include_component_scores: bool = False


class SemanticSearchAction(_SearchActionMixin, _ActionBase):
    """순수 벡터 검색"""
    action: Literal["semantic_search"] = "semantic_search"
    query_vector: List[float]
    query: Optional[str] = None
    limit: Optional[int] = None
    filters: Optional[SearchFilters] = None


class HybridSearchAction(_SearchActionMixin, _ActionBase):
    """어휘 + 벡터 하이브리드 검색"""
    action: Literal["hybrid_search"] = "hybrid_search"
    query: str
    query_vector: Optional[List[float]] = None
    limit: Optional[int] = None
    filters: Optional[SearchFilters] = None
    include_component_scores: bool = False


class IndexUserAction(_ProfileActionMixin, _ActionBase):
    action: Literal["index_user"] = "index_user"
    user_id: str
    user_profile: ProfileSource


class UpdateUserAction(_ProfileActionMixin, _ActionBase):
    action: Literal["update_user"] = "update_user"
    user_id: str
    user_profile: ProfileSource


class GetUserAction(_ActionBase):
    action: Literal["get_user"] = "get_user"
    user_id: str


class DeleteUserAction(_ActionBase):
    action: Literal["delete_user"] = "delete_user"
    user_id: str


PeopleSearchAction = Annotated[
    Union[
        SearchUsersAction,
        SemanticSearchAction,
        HybridSearchAction,
        IndexUserAction,
        UpdateUserAction,
        GetUserAction,
        DeleteUserAction,
    ],
    Field(discriminator="action"),
]

ACTION_MODELS: Dict[str, type] = {
    "search_users": SearchUsersAction,
    "semantic_search": SemanticSearchAction,
    "hybrid_search": HybridSearchAction,
    "index_user": IndexUserAction,
    "update_user": UpdateUserAction,
    "get_user": GetUserAction,
    "delete_user": DeleteUserAction,
}


# === 대량 색인 / 헬스체크 ===

class BulkIndexFailure(CamelModel):
    user_id: str = Field(..., description="사용자 ID")
    error: str = Field(..., description="실패 사유")


class BulkIndexReport(CamelModel):
    """대량 색인 결과"""
    indexed: int = Field(default=0, ge=0, description="색인 성공 수")
    skipped: int = Field(default=0, ge=0, description="건너뛴 수")
    errored: int = Field(default=0, ge=0, description="실패 수")
    batches: int = Field(default=0, ge=0, description="처리한 배치 수")
    failures: List[BulkIndexFailure] = Field(default_factory=list, description="실패 상세")

    @property
    def processed(self) -> int:
        return self.indexed + self.skipped + self.errored


class HealthStatus(BaseModel):
    """헬스체크 상태"""
    service: str = Field(default="people_search", description="서비스 이름")
    status: str = Field(..., description="상태 (healthy/degraded/unhealthy)")
    timestamp: datetime = Field(default_factory=datetime.now, description="체크 시간")
    version: str = Field(default="1.0.0", description="서비스 버전")
    dependencies: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="의존성 상태")
    metrics: Dict[str, Any] = Field(default_factory=dict, description="성능 메트릭")

    class Config:
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }
