"""People Search 오케스트레이터

검색/색인 요청을 받아 각 서비스를 순서대로 호출하는 진입점
모든 예외는 이 경계에서만 {success: false, error} 응답으로 변환
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from infra.config import Settings, get_settings
from infra.embedding_provider import (
    OpenAIEmbeddingProvider,
    connect_to_openai,
    get_openai_client,
)
from infra.parameter_store import ParameterStore, create_parameter_store

from .errors import EngineRequestError, InvalidRequestError
from .schema import (
    ACTION_MODELS,
    DeleteUserAction,
    GetUserAction,
    HealthStatus,
    HybridSearchAction,
    IndexUserAction,
    PeopleSearchAction,
    ProfileSource,
    ProfileView,
    RankingStrategy,
    SearchableProfile,
    SearchFilters,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SearchUsersAction,
    SemanticSearchAction,
    UpdateUserAction,
)
from .search_document_composer import SearchDocumentComposer
from .search_embedding_service import SearchEmbeddingService
from .search_engine_config import EngineConfigProvider
from .search_gateway_client import SearchGatewayClient
from .search_query_builder import SearchQueryBuilder
from .search_result_ranker import SearchResultRanker

logger = structlog.get_logger(__name__)

FiltersInput = Union[SearchFilters, Dict[str, Any], None]
ProfileInput = Union[ProfileSource, Dict[str, Any]]

# 항상 다시 계산되어 업데이트에 포함되는 파생 필드
DERIVED_UPDATE_FIELDS = ("searchableContent", "profileVector", "updatedAt")


def _now_ms() -> int:
    return int(time.time() * 1000)


def format_error(error: Exception) -> str:
    """예외를 호출자용 에러 문자열로 변환"""
    if isinstance(error, ValidationError):
        details = []
        for err in error.errors():
            location = ".".join(str(p) for p in err.get("loc", ()))
            details.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
        return "; ".join(details) or str(error)
    return str(error) or type(error).__name__


def parse_action(payload: Dict[str, Any]) -> PeopleSearchAction:
    """원시 요청 딕셔너리를 액션 모델로 변환

    Raises:
        InvalidRequestError: 알 수 없는 action, 필수 필드 누락, 형식 오류
    """
    name = payload.get("action")
    model = ACTION_MODELS.get(name) if isinstance(name, str) else None
    if model is None:
        raise InvalidRequestError(f"Unknown action: {name}")

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        missing = [err for err in e.errors() if err.get("type") == "missing"]
        if missing:
            field_name = ".".join(str(p) for p in missing[0]["loc"])
            raise InvalidRequestError(
                f"'{name}' 액션에 필수 필드 '{field_name}'가 없습니다"
            ) from e
        raise InvalidRequestError(f"'{name}' 액션 요청 형식 오류: {format_error(e)}") from e


class PeopleSearchOrchestrator:
    """People Search 프로세스 오케스트레이터

    하위 서비스는 생성 시점에 주입받으며, 하위 서비스는 타입 있는 예외를 던지고
    이 클래스만 예외를 응답 봉투로 변환한다.
    """

    def __init__(
        self,
        embedding_service: SearchEmbeddingService,
        gateway: SearchGatewayClient,
        composer: Optional[SearchDocumentComposer] = None,
        query_builder: Optional[SearchQueryBuilder] = None,
        ranker: Optional[SearchResultRanker] = None
    ):
        self.embedding_service = embedding_service
        self.gateway = gateway
        self.composer = composer or SearchDocumentComposer()
        self.query_builder = query_builder or SearchQueryBuilder()
        self.ranker = ranker or SearchResultRanker()

        self._action_handlers: Dict[type, Callable[[Any], Awaitable[SearchResponse]]] = {
            SearchUsersAction: self._handle_search_users,
            SemanticSearchAction: self._handle_semantic_search,
            HybridSearchAction: self._handle_hybrid_search,
            IndexUserAction: self._handle_index_user,
            UpdateUserAction: self._handle_update_user,
            GetUserAction: self._handle_get_user,
            DeleteUserAction: self._handle_delete_user,
        }
        unhandled = set(ACTION_MODELS.values()) - set(self._action_handlers)
        if unhandled:
            raise RuntimeError(
                f"처리기가 없는 액션 모델: {sorted(m.__name__ for m in unhandled)}"
            )

        # 통계 추적
        self._total_requests = 0
        self._total_searches = 0
        self._total_errors = 0
        self._average_response_time = 0.0

    # === 검색 ===

    async def search(
        self,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        filters: FiltersInput = None,
        ranking_strategy: Union[RankingStrategy, str] = RankingStrategy.DEFAULT,
        query_vector: Optional[List[float]] = None,
        include_component_scores: bool = False
    ) -> SearchResponse:
        """검색 프로세스 전체 조율

        벡터가 필요한 전략인데 벡터가 없으면 질의를 먼저 임베딩한다.
        임베딩 실패 시 제로 벡터로 계속 진행한다.
        """
        start_time = time.time()

        try:
            request = self._build_search_request(
                query=query,
                limit=limit,
                filters=filters,
                ranking_strategy=ranking_strategy,
                query_vector=query_vector,
                include_component_scores=include_component_scores,
            )

            logger.info(
                "검색 프로세스 시작",
                query_text=request.query_text[:50],
                ranking=request.ranking_strategy.value,
                limit=request.limit,
                has_vector=request.query_vector is not None
            )

            if (
                request.ranking_strategy.needs_vector
                and request.query_vector is None
                and request.query_text
            ):
                vector = await self.embedding_service.embed(request.query_text)
                request = request.model_copy(update={"query_vector": vector})

            engine_query = self.query_builder.build(request)
            raw = await self.gateway.query(engine_query)
            results = self.ranker.rank(raw, request)
            total = raw.total_count or len(results)

            elapsed = self._measure_time(start_time)
            self._update_statistics(elapsed, success=True, is_search=True)

            logger.info(
                "검색 프로세스 완료",
                ranking=request.ranking_strategy.value,
                result_count=len(results),
                total=total,
                search_time_ms=elapsed
            )
            return SearchResponse.ok(results=results, total=total)

        except Exception as e:
            return self._failure("search", e, start_time, is_search=True)

    async def semantic_search(
        self,
        query_vector: List[float],
        limit: Optional[int] = None,
        filters: FiltersInput = None,
        query: Optional[str] = None
    ) -> SearchResponse:
        """벡터 최근접 이웃 검색"""
        return await self.search(
            query=query,
            limit=limit,
            filters=filters,
            ranking_strategy=RankingStrategy.SEMANTIC,
            query_vector=query_vector,
        )

    async def hybrid_search(
        self,
        query: str,
        query_vector: Optional[List[float]] = None,
        limit: Optional[int] = None,
        filters: FiltersInput = None,
        include_component_scores: bool = False
    ) -> SearchResponse:
        """어휘 + 벡터 하이브리드 검색"""
        return await self.search(
            query=query,
            limit=limit,
            filters=filters,
            ranking_strategy=RankingStrategy.HYBRID,
            query_vector=query_vector,
            include_component_scores=include_component_scores,
        )

    # === 문서 수명주기 ===

    async def index_user(self, user_id: str, profile: ProfileInput) -> SearchResponse:
        """사용자 검색 문서 생성

        문서 구성 → 임베딩 (유효한 벡터가 전달되면 재사용) → put
        """
        start_time = time.time()

        try:
            self._require_user_id(user_id)
            document = await self._compose_with_vector(user_id, self._coerce_profile(profile))

            now = _now_ms()
            document = document.model_copy(update={"created_at": now, "updated_at": now})
            await self.gateway.put(document)

            self._update_statistics(self._measure_time(start_time), success=True)
            logger.info("사용자 색인 완료", user_id=user_id)
            return SearchResponse.ok()

        except Exception as e:
            return self._failure("index_user", e, start_time, user_id=user_id)

    async def update_user(self, user_id: str, profile: ProfileInput) -> SearchResponse:
        """사용자 검색 문서 부분 업데이트

        저장된 문서에 전달된 필드를 덮어쓴 전체 프로필로 파생 필드를 다시 계산한다.
        assign 대상은 전달된 프로필 필드와 파생 필드뿐이며 나머지 엔진 필드는 유지한다.
        """
        start_time = time.time()

        try:
            self._require_user_id(user_id)
            source = self._coerce_profile(profile)

            stored = await self.gateway.get(user_id)
            if stored is None:
                raise EngineRequestError("update", 404, "Not Found")

            merged = self._merge_profile(stored, source)
            document = await self._compose_with_vector(user_id, merged)

            document_fields = document.model_dump(by_alias=True)
            fields: Dict[str, Any] = {}
            for name in sorted(source.model_fields_set - {"profile_vector"}):
                alias = SearchableProfile.model_fields[name].alias or name
                value = document_fields.get(alias)
                if value is not None:
                    fields[alias] = value

            fields["searchableContent"] = document.searchable_content
            fields["profileVector"] = document.profile_vector
            fields["updatedAt"] = _now_ms()

            await self.gateway.update(user_id, fields)

            self._update_statistics(self._measure_time(start_time), success=True)
            logger.info(
                "사용자 문서 업데이트 완료",
                user_id=user_id,
                assigned_fields=[f for f in fields if f not in DERIVED_UPDATE_FIELDS]
            )
            return SearchResponse.ok()

        except Exception as e:
            return self._failure("update_user", e, start_time, user_id=user_id)

    async def get_user(self, user_id: str) -> SearchResponse:
        """사용자 검색 문서 조회 (없으면 빈 결과)"""
        start_time = time.time()

        try:
            self._require_user_id(user_id)
            fields = await self.gateway.get(user_id)

            self._update_statistics(self._measure_time(start_time), success=True)
            if fields is None:
                return SearchResponse.ok(results=[], total=0)

            result = SearchResult(
                user_id=str(fields.get("userId") or user_id),
                score=1.0,
                profile=ProfileView.from_fields(fields),
            )
            return SearchResponse.ok(results=[result], total=1)

        except Exception as e:
            return self._failure("get_user", e, start_time, user_id=user_id)

    async def delete_user(self, user_id: str) -> SearchResponse:
        """사용자 검색 문서 삭제 (멱등)"""
        start_time = time.time()

        try:
            self._require_user_id(user_id)
            await self.gateway.delete(user_id)

            self._update_statistics(self._measure_time(start_time), success=True)
            logger.info("사용자 문서 삭제 완료", user_id=user_id)
            return SearchResponse.ok()

        except Exception as e:
            return self._failure("delete_user", e, start_time, user_id=user_id)

    # === 액션 디스패치 ===

    async def handle(self, action: PeopleSearchAction) -> SearchResponse:
        """액션 모델 타입별 처리"""
        handler = self._action_handlers.get(type(action))
        if handler is None:
            name = getattr(action, "action", type(action).__name__)
            return SearchResponse.failure(f"Unknown action: {name}")
        return await handler(action)

    async def handle_payload(self, payload: Dict[str, Any]) -> SearchResponse:
        """원시 요청 딕셔너리 처리"""
        try:
            action = parse_action(payload)
        except InvalidRequestError as e:
            self._total_errors += 1
            logger.warning("잘못된 요청", action=payload.get("action"), error=str(e))
            return SearchResponse.failure(str(e))
        return await self.handle(action)

    async def _handle_search_users(self, action: SearchUsersAction) -> SearchResponse:
        return await self.search(
            query=action.query,
            limit=action.limit,
            filters=action.filters,
            ranking_strategy=action.ranking_profile,
            query_vector=action.query_vector,
            include_component_scores=action.include_component_scores,
        )

    async def _handle_semantic_search(self, action: SemanticSearchAction) -> SearchResponse:
        return await self.semantic_search(
            query_vector=action.query_vector,
            limit=action.limit,
            filters=action.filters,
            query=action.query,
        )

    async def _handle_hybrid_search(self, action: HybridSearchAction) -> SearchResponse:
        return await self.hybrid_search(
            query=action.query,
            query_vector=action.query_vector,
            limit=action.limit,
            filters=action.filters,
            include_component_scores=action.include_component_scores,
        )

    async def _handle_index_user(self, action: IndexUserAction) -> SearchResponse:
        return await self.index_user(action.user_id, action.user_profile)

    async def _handle_update_user(self, action: UpdateUserAction) -> SearchResponse:
        return await self.update_user(action.user_id, action.user_profile)

    async def _handle_get_user(self, action: GetUserAction) -> SearchResponse:
        return await self.get_user(action.user_id)

    async def _handle_delete_user(self, action: DeleteUserAction) -> SearchResponse:
        return await self.delete_user(action.user_id)

    # === 헬스체크 ===

    async def health_check(self) -> HealthStatus:
        """서비스 헬스체크"""
        embedding_stats = await self.embedding_service.get_stats()
        gateway_stats = self.gateway.get_stats()

        dependencies = {
            "search_engine": {
                "healthy": gateway_stats["auth_scheme"] is not None,
                "endpoint": self.gateway.config.endpoint,
                **gateway_stats,
            },
            "embedding": {
                "healthy": embedding_stats["api_calls"] == 0 or embedding_stats["api_error_rate"] < 1.0,
                **embedding_stats,
            },
        }

        if not dependencies["search_engine"]["healthy"]:
            status = "unhealthy"
        elif not dependencies["embedding"]["healthy"]:
            status = "degraded"
        else:
            status = "healthy"

        return HealthStatus(
            status=status,
            version=get_settings().app_version,
            dependencies=dependencies,
            metrics={
                "total_requests": self._total_requests,
                "total_searches": self._total_searches,
                "total_errors": self._total_errors,
                "average_response_time_ms": round(self._average_response_time, 2),
            },
        )

    async def close(self) -> None:
        await self.gateway.close()

    # === 내부 조율 함수 ===

    def _build_search_request(self, **kwargs) -> SearchRequest:
        data = {k: v for k, v in kwargs.items() if v is not None}
        return SearchRequest(**data)

    def _coerce_profile(self, profile: ProfileInput) -> ProfileSource:
        if isinstance(profile, ProfileSource):
            return profile
        if not isinstance(profile, dict):
            raise InvalidRequestError("userProfile은 객체여야 합니다")
        return ProfileSource.model_validate(profile)

    def _merge_profile(self, stored: Dict[str, Any], source: ProfileSource) -> ProfileSource:
        """저장된 엔진 필드 위에 전달된 필드(null 제외)를 덮어쓴 프로필

        저장된 벡터는 버리므로 전달된 벡터가 없으면 병합된 텍스트로 다시 임베딩된다.
        """
        base = ProfileView.from_fields(stored).model_dump(exclude_none=True)
        updates = {
            name: getattr(source, name)
            for name in source.model_fields_set
            if getattr(source, name) is not None
        }
        return ProfileSource.model_validate({**base, **updates})

    def _require_user_id(self, user_id: Optional[str]) -> None:
        if not user_id or not str(user_id).strip():
            raise InvalidRequestError("userId가 비어 있습니다")

    async def _compose_with_vector(self, user_id: str, profile: ProfileSource) -> SearchableProfile:
        """문서 구성 후 프로필 벡터 설정"""
        vector = profile.profile_vector
        if vector is not None and len(vector) != self.embedding_service.dimension:
            logger.warning(
                "전달된 프로필 벡터 차원 불일치 - 다시 임베딩",
                user_id=user_id,
                dimension=len(vector)
            )
            profile = profile.model_copy(update={"profile_vector": None})

        document = self.composer.compose(user_id, profile)

        if document.profile_vector is None:
            vector = await self.embedding_service.embed(document.searchable_content)
            document = document.model_copy(update={"profile_vector": vector})

        return document

    def _failure(
        self,
        operation: str,
        error: Exception,
        start_time: float,
        is_search: bool = False,
        **context
    ) -> SearchResponse:
        elapsed = self._measure_time(start_time)
        self._update_statistics(elapsed, success=False, is_search=is_search)

        message = format_error(error)
        logger.error(
            "요청 처리 실패",
            operation=operation,
            error=message,
            error_type=type(error).__name__,
            **context
        )
        return SearchResponse.failure(message)

    def _measure_time(self, start_time: float) -> int:
        """소요 시간 (밀리초)"""
        return int((time.time() - start_time) * 1000)

    def _update_statistics(self, response_time_ms: float, success: bool, is_search: bool = False) -> None:
        """통계 업데이트"""
        self._total_requests += 1
        if is_search:
            self._total_searches += 1

        if not success:
            self._total_errors += 1

        # 지수 이동 평균 (EMA)
        if self._average_response_time == 0:
            self._average_response_time = response_time_ms
        else:
            alpha = 0.1  # 평활 계수
            self._average_response_time = (
                alpha * response_time_ms +
                (1 - alpha) * self._average_response_time
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_requests": self._total_requests,
            "total_searches": self._total_searches,
            "total_errors": self._total_errors,
            "average_response_time_ms": round(self._average_response_time, 2),
        }


async def create_people_search_orchestrator(
    config: Optional[Settings] = None,
    parameter_store: Optional[ParameterStore] = None,
    embedding_provider: Optional[Any] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> PeopleSearchOrchestrator:
    """설정으로부터 오케스트레이터 구성

    엔진 설정은 여기서 한 번 해석되어 게이트웨이 클라이언트에 주입된다.

    Raises:
        ConfigurationError: 엔진 엔드포인트 누락
    """
    config = config or get_settings()

    store = parameter_store or create_parameter_store(config)
    engine_config = await EngineConfigProvider(store, config).get()

    if embedding_provider is None:
        try:
            get_openai_client()
        except RuntimeError:
            await connect_to_openai(config)
        embedding_provider = OpenAIEmbeddingProvider(
            model=config.openai_embedding_model,
            dimension=config.embedding_dimension
        )

    embedding_service = SearchEmbeddingService(
        provider=embedding_provider,
        dimension=config.embedding_dimension,
        max_chars=config.embedding_max_input_chars,
        max_retries=config.embedding_max_retries,
        retry_delay=config.embedding_retry_delay,
    )

    gateway = SearchGatewayClient(
        engine_config,
        namespace=config.search_engine_namespace,
        document_type=config.search_engine_document_type,
        request_timeout=config.search_engine_request_timeout,
        transport=transport,
    )

    orchestrator = PeopleSearchOrchestrator(
        embedding_service=embedding_service,
        gateway=gateway,
        composer=SearchDocumentComposer(),
        query_builder=SearchQueryBuilder(
            source=config.search_engine_document_type,
            timeout=config.search_engine_query_timeout
        ),
        ranker=SearchResultRanker(
            semantic_weight=config.search_semantic_weight,
            keyword_weight=config.search_keyword_weight,
            semantic_feature=config.search_semantic_feature,
            keyword_feature=config.search_keyword_feature,
        ),
    )

    logger.info(
        "PeopleSearchOrchestrator 초기화 완료",
        endpoint=engine_config.endpoint,
        auth_scheme=engine_config.auth_scheme
    )
    return orchestrator
