"""Search 질의 생성 서비스

검색 요청을 술어(predicate) 트리로 구성한 뒤 엔진 질의 언어(YQL)로 렌더링
따옴표 이스케이프는 render()에서만 수행
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import structlog

from infra.config import get_settings

from .errors import InvalidRequestError
from .schema import RankingStrategy, SearchFilters, SearchRequest

logger = structlog.get_logger(__name__)

# 어휘 매칭 대상 필드
LEXICAL_FIELDS: Tuple[str, ...] = (
    "fullName",
    "jobRole",
    "skills",
    "about",
    "companyName",
    "education",
    "interests",
    "searchableContent",
)

# 하이브리드 검색의 어휘 매칭 필드 (파생 텍스트 제외)
HYBRID_LEXICAL_FIELDS: Tuple[str, ...] = LEXICAL_FIELDS[:-1]

VECTOR_FIELD = "profileVector"
QUERY_VECTOR_PARAM = "queryVector"
VISIBILITY_FIELD = "isOnboardingComplete"

Scalar = Union[str, int, float, bool]


# === 술어 노드 ===

@dataclass(frozen=True)
class TrueNode:
    """무조건 참 (전체 조회)"""


@dataclass(frozen=True)
class Contains:
    field: str
    value: str


@dataclass(frozen=True)
class LexicalMatch:
    """여러 필드 중 하나라도 텍스트를 포함하면 참"""
    fields: Tuple[str, ...]
    text: str


@dataclass(frozen=True)
class NearestNeighbor:
    field: str
    query_param: str
    target_hits: int


@dataclass(frozen=True)
class Equals:
    field: str
    value: Scalar


@dataclass(frozen=True)
class Range:
    field: str
    op: str
    value: Union[int, float]

    def __post_init__(self):
        if self.op not in (">=", "<=", ">", "<"):
            raise ValueError(f"지원하지 않는 범위 연산자: {self.op}")


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]


Predicate = Union[TrueNode, Contains, LexicalMatch, NearestNeighbor, Equals, Range, And, Or]


def quote(value: str) -> str:
    """문자열 리터럴 (역슬래시, 큰따옴표 이스케이프)"""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _literal(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return quote(value)


def render(node: Predicate) -> str:
    """술어 트리를 YQL 조건식으로 렌더링"""
    if isinstance(node, TrueNode):
        return "true"

    if isinstance(node, Contains):
        return f"{node.field} contains {quote(node.value)}"

    if isinstance(node, LexicalMatch):
        terms = " OR ".join(f"{f} contains {quote(node.text)}" for f in node.fields)
        return f"({terms})"

    if isinstance(node, NearestNeighbor):
        return (
            f"({{targetHits:{node.target_hits}}}"
            f"nearestNeighbor({node.field}, {node.query_param}))"
        )

    if isinstance(node, Equals):
        return f"{node.field} = {_literal(node.value)}"

    if isinstance(node, Range):
        return f"{node.field} {node.op} {_literal(node.value)}"

    if isinstance(node, Or):
        return "(" + " OR ".join(render(child) for child in node.children) + ")"

    if isinstance(node, And):
        parts = []
        for child in node.children:
            rendered = render(child)
            parts.append(f"({rendered})" if isinstance(child, And) else rendered)
        return " AND ".join(parts)

    raise TypeError(f"알 수 없는 술어 노드: {type(node).__name__}")


def contains_node(node: Predicate, node_type: type) -> bool:
    """트리 안에 특정 타입 노드가 있는지 확인"""
    if isinstance(node, node_type):
        return True
    if isinstance(node, (And, Or)):
        return any(contains_node(child, node_type) for child in node.children)
    return False


@dataclass(frozen=True)
class EngineQuery:
    """엔진에 전달할 질의"""
    yql: str
    hits: int
    ranking: str
    timeout: str
    predicate: Predicate
    query_vector: Optional[List[float]] = field(default=None, repr=False)

    def to_params(self) -> Dict[str, str]:
        """/search/ 쿼리 파라미터"""
        params = {
            "yql": self.yql,
            "hits": str(self.hits),
            "ranking": self.ranking,
            "format": "json",
            "timeout": self.timeout,
        }
        if self.query_vector is not None:
            params[f"input.query({QUERY_VECTOR_PARAM})"] = json.dumps(
                self.query_vector, separators=(",", ":")
            )
        return params


class SearchQueryBuilder:
    """검색 요청 → 엔진 질의 변환기"""

    def __init__(self, source: Optional[str] = None, timeout: Optional[str] = None):
        config = get_settings()
        self.source = source or config.search_engine_document_type
        self.timeout = timeout or config.search_engine_query_timeout

    # === 메인 처리 함수 ===

    def build(self, request: SearchRequest) -> EngineQuery:
        """검색 요청으로 엔진 질의 생성

        Raises:
            InvalidRequestError: semantic 전략에 질의 벡터가 없을 때
        """
        base, uses_vector = self._build_base_predicate(request)

        clauses: List[Predicate] = [base]
        clauses.extend(self._build_filter_clauses(request.filters))
        # 노출 조건은 항상 마지막에 추가
        clauses.append(Equals(VISIBILITY_FIELD, True))

        predicate = And(tuple(clauses))
        yql = f"select * from sources {self.source} where {render(predicate)}"

        logger.debug(
            "엔진 질의 생성 완료",
            ranking=request.ranking_strategy.value,
            uses_vector=uses_vector,
            hits=request.limit
        )

        return EngineQuery(
            yql=yql,
            hits=request.limit,
            ranking=request.ranking_strategy.value,
            timeout=self.timeout,
            predicate=predicate,
            query_vector=request.query_vector if uses_vector else None,
        )

    # === 내부 헬퍼 함수 ===

    def _build_base_predicate(self, request: SearchRequest) -> Tuple[Predicate, bool]:
        """전략별 기본 술어 선택 (우선순위 순서)"""
        strategy = request.ranking_strategy
        text = request.query_text
        vector = request.query_vector

        if strategy == RankingStrategy.SEMANTIC:
            if vector is None:
                raise InvalidRequestError("semantic 검색에는 queryVector가 필요합니다")
            return self._nearest_neighbor(request.limit), True

        if strategy == RankingStrategy.HYBRID and vector is not None:
            if text:
                lexical = LexicalMatch(HYBRID_LEXICAL_FIELDS, text)
                return Or((lexical, self._nearest_neighbor(request.limit))), True
            return self._nearest_neighbor(request.limit), True

        if text:
            return LexicalMatch(LEXICAL_FIELDS, text), False

        return TrueNode(), False

    def _nearest_neighbor(self, limit: int) -> NearestNeighbor:
        return NearestNeighbor(VECTOR_FIELD, QUERY_VECTOR_PARAM, target_hits=limit)

    def _build_filter_clauses(self, filters: Optional[SearchFilters]) -> List[Predicate]:
        """필터를 AND 결합용 절 목록으로 변환"""
        if filters is None:
            return []

        clauses: List[Predicate] = []

        if filters.industry:
            clauses.append(Equals("industry", filters.industry))

        if filters.min_experience is not None:
            clauses.append(Range("yearsOfExperience", ">=", filters.min_experience))

        if filters.max_experience is not None:
            clauses.append(Range("yearsOfExperience", "<=", filters.max_experience))

        skills = [s for s in filters.skills if s and s.strip()]
        if skills:
            clauses.append(Or(tuple(Contains("skills", s) for s in skills)))

        return clauses
