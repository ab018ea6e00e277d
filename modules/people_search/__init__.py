"""People Search 모듈 공개 인터페이스

이 모듈은 사람 검색 기능을 제공합니다.
자유 텍스트 질의와 필터를 받아 어휘 매칭과 벡터 유사도를 결합한
엔진 질의를 만들고, 결과를 랭킹하여 반환합니다.

주요 기능:
- 질의/프로필 텍스트 임베딩 생성 (실패 시 제로 벡터 폴백)
- 랭킹 전략별 엔진 질의 생성 (default, semantic, hybrid, experience_focused, skills_focused)
- 사용자 검색 문서 색인/업데이트/조회/삭제
- 하이브리드 점수 결합 및 결과 정리
- 배치 단위 대량 재색인

사용 예시:
    from modules.people_search import create_people_search_orchestrator

    orchestrator = await create_people_search_orchestrator()

    response = await orchestrator.handle_payload({
        "action": "search_users",
        "query": "React developer",
        "limit": 10,
    })
"""

# 버전 정보
__version__ = "1.0.0"

from .errors import (
    AuthenticationNotConfiguredError,
    ConfigurationError,
    EmbeddingError,
    EngineRequestError,
    EngineTransportError,
    InvalidRequestError,
    PeopleSearchError,
)
from .orchestrator import (
    PeopleSearchOrchestrator,
    create_people_search_orchestrator,
    parse_action,
)
from .schema import (
    BulkIndexReport,
    HealthStatus,
    ProfileSource,
    ProfileView,
    RankingStrategy,
    SearchableProfile,
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from .search_bulk_indexer import SearchBulkIndexer
from .search_engine_config import EngineConfig, EngineConfigProvider

# 공개 API 목록
__all__ = [
    # 오케스트레이터
    "PeopleSearchOrchestrator",
    "create_people_search_orchestrator",
    "parse_action",
    "SearchBulkIndexer",
    # 엔진 설정
    "EngineConfig",
    "EngineConfigProvider",
    # 데이터 모델
    "RankingStrategy",
    "SearchFilters",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "SearchableProfile",
    "ProfileSource",
    "ProfileView",
    "BulkIndexReport",
    "HealthStatus",
    # 예외
    "PeopleSearchError",
    "ConfigurationError",
    "AuthenticationNotConfiguredError",
    "EmbeddingError",
    "EngineRequestError",
    "EngineTransportError",
    "InvalidRequestError",
    # 버전
    "__version__",
]
