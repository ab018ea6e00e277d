"""API 게이트웨이

People Search 단일 액션 엔드포인트, 프로필 대량 재색인, 헬스체크
오케스트레이터는 앱 시작 시 한 번 구성되어 app.state 에 보관
"""

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
import structlog

from infra.config import get_settings
from infra.database import connect_to_mongodb, disconnect_from_mongodb, get_profile_store
from infra.embedding_provider import disconnect_from_openai
from infra.logging import setup_logging
from modules.people_search import (
    PeopleSearchOrchestrator,
    SearchBulkIndexer,
    create_people_search_orchestrator,
)
from modules.people_search.errors import ConfigurationError
from modules.people_search.repository import ProfileRepository

logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 수명 주기 관리

    엔진 설정 해석 실패(ConfigurationError)는 시작 실패로 처리
    """
    setup_logging(settings)
    logger.info("API Gateway 시작", environment=settings.app_environment)

    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = await create_people_search_orchestrator(settings)

    yield

    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.close()
    await disconnect_from_openai()
    await disconnect_from_mongodb()
    logger.info("API Gateway 종료")


app = FastAPI(
    title="People Search API",
    description="하이브리드 의미/키워드 사람 검색 서비스",
    version=settings.app_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> PeopleSearchOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="People Search 서비스가 초기화되지 않았습니다"
        )
    return orchestrator


# === 예외 처리 핸들러 ===

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """검색 엔진 설정 오류 - 서비스 사용 불가"""
    logger.error("검색 엔진 설정 오류", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Search engine not configured", "detail": str(exc)}
    )


@app.exception_handler(PyMongoError)
async def profile_store_error_handler(request: Request, exc: PyMongoError):
    """프로필 저장소 오류"""
    logger.error("프로필 저장소 오류", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Profile store unavailable", "detail": str(exc)}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("처리되지 않은 예외", error=str(exc), error_type=type(exc).__name__, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "detail": "An unexpected error occurred"}
    )


# === People Search 엔드포인트 ===

@app.get("/")
async def root():
    return {
        "service": "People Search API",
        "version": settings.app_version,
        "actions": [
            "search_users", "semantic_search", "hybrid_search",
            "index_user", "update_user", "get_user", "delete_user",
        ],
    }


@app.post("/api/v1/people-search", summary="People Search 액션 실행")
async def people_search_endpoint(
    request: Request,
    payload: Dict[str, Any] = Body(...)
) -> Dict[str, Any]:
    """단일 액션 진입점

    실패도 HTTP 200 과 {success: false, error} 봉투로 반환합니다.
    """
    response = await get_orchestrator(request).handle_payload(payload)

    logger.info(
        "People Search 응답",
        action=payload.get("action"),
        success=response.success,
        result_count=len(response.results) if response.results is not None else None
    )
    return response.to_payload()


@app.post("/api/v1/people-search/reindex", summary="프로필 대량 재색인")
async def reindex_endpoint(request: Request) -> Dict[str, Any]:
    """프로필 저장소의 온보딩 완료 프로필 전체 재색인

    Returns:
        색인/건너뜀/실패 건수 보고서 (camelCase)
    """
    orchestrator = get_orchestrator(request)
    await connect_to_mongodb(settings)

    report = await SearchBulkIndexer(orchestrator).reindex_from_repository(ProfileRepository())
    return report.model_dump(by_alias=True)


@app.get("/api/v1/people-search/health", summary="서비스 헬스체크")
async def people_search_health_check(request: Request):
    """헬스체크 (unhealthy 일 때만 503)"""
    health_status = await get_orchestrator(request).health_check()
    health_status.dependencies["profile_store"] = await get_profile_store().ping()

    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if health_status.status == "unhealthy"
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=health_status.model_dump(mode="json"))


@app.get("/health", summary="프로세스 헬스체크")
async def general_health_check():
    return {"status": "healthy", "service": "people_search_api", "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main.api_gateway:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.app_log_level.lower()
    )
