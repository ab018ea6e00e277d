"""Search 결과 랭킹/병합 서비스

엔진 히트를 검색 결과로 변환하는 후처리 담당
- 필드 → 프로필 매핑
- 중복 제거, 노출 조건 재확인
- 하이브리드 점수 결합 및 재정렬
- 결과 개수 제한
"""

from typing import List, Optional, Set

import structlog

from infra.config import get_settings

from .schema import HybridScore, ProfileView, RankingStrategy, SearchRequest, SearchResult
from .search_gateway_client import RawHit, RawHits

logger = structlog.get_logger(__name__)


class SearchResultRanker:
    """엔진 히트 후처리기"""

    def __init__(
        self,
        semantic_weight: Optional[float] = None,
        keyword_weight: Optional[float] = None,
        semantic_feature: Optional[str] = None,
        keyword_feature: Optional[str] = None
    ):
        config = get_settings()
        self.semantic_weight = semantic_weight if semantic_weight is not None else config.search_semantic_weight
        self.keyword_weight = keyword_weight if keyword_weight is not None else config.search_keyword_weight
        self.semantic_feature = semantic_feature or config.search_semantic_feature
        self.keyword_feature = keyword_feature or config.search_keyword_feature

    # === 메인 처리 함수 ===

    def rank(self, raw: RawHits, request: SearchRequest) -> List[SearchResult]:
        """엔진 히트를 검색 결과로 변환

        Args:
            raw: 엔진 원본 결과 (관련도 내림차순)
            request: 원본 검색 요청

        Returns:
            limit 이하의 검색 결과
        """
        results: List[SearchResult] = []
        seen: Set[str] = set()
        dropped = 0

        blend = (
            request.ranking_strategy == RankingStrategy.HYBRID
            and request.include_component_scores
        )

        for hit in raw.hits:
            user_id = hit.fields.get("userId")
            if not user_id:
                logger.warning("userId 없는 히트 제외", relevance=hit.relevance)
                dropped += 1
                continue

            # 온보딩 미완료 프로필은 어떤 경로로도 노출하지 않음
            if hit.fields.get("isOnboardingComplete") is False:
                logger.warning("온보딩 미완료 프로필 히트 제외", user_id=user_id)
                dropped += 1
                continue

            if user_id in seen:
                dropped += 1
                continue
            seen.add(user_id)

            results.append(SearchResult(
                user_id=str(user_id),
                score=hit.relevance,
                profile=ProfileView.from_fields(hit.fields),
                hybrid_score=self._hybrid_score(hit) if blend else None,
            ))

        if blend and results and all(
            r.hybrid_score.semantic is not None and r.hybrid_score.keyword is not None
            for r in results
        ):
            # 결합 점수 내림차순 재정렬 (동점은 엔진 순서 유지)
            results.sort(key=lambda r: r.hybrid_score.combined, reverse=True)

        truncated = results[:request.limit]

        logger.debug(
            "검색 결과 랭킹 완료",
            raw_hits=len(raw.hits),
            dropped=dropped,
            returned=len(truncated),
            blended=blend
        )
        return truncated

    # === 내부 헬퍼 함수 ===

    def _hybrid_score(self, hit: RawHit) -> HybridScore:
        """구성 점수가 모두 있을 때만 가중합 계산"""
        semantic = hit.features.get(self.semantic_feature)
        keyword = hit.features.get(self.keyword_feature)

        if semantic is None or keyword is None:
            return HybridScore(semantic=None, keyword=None, combined=hit.relevance)

        combined = self.semantic_weight * semantic + self.keyword_weight * keyword
        return HybridScore(semantic=semantic, keyword=keyword, combined=combined)
