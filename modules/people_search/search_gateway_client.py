"""Search 엔진 게이트웨이 클라이언트

검색 엔진과의 인증된 HTTP 통신 담당
- 질의 실행 (/search/)
- 문서 put/update/get/delete (/document/v1/)
- 전송/상태 오류를 타입 있는 예외로 변환
"""

import os
import ssl
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from infra.config import get_settings

from .errors import (
    AuthenticationNotConfiguredError,
    EngineRequestError,
    EngineTransportError,
)
from .schema import SearchableProfile
from .search_engine_config import AUTH_SCHEME_MTLS, EngineConfig
from .search_query_builder import EngineQuery

logger = structlog.get_logger(__name__)

FEATURE_KEYS = ("matchfeatures", "summaryfeatures")


@dataclass
class RawHit:
    """엔진 원본 히트"""
    fields: Dict[str, Any]
    relevance: float
    features: Dict[str, float] = field(default_factory=dict)


@dataclass
class RawHits:
    """엔진 원본 질의 결과"""
    hits: List[RawHit]
    total_count: Optional[int] = None


def _build_ssl_context(cert_pem: str, key_pem: str) -> ssl.SSLContext:
    """PEM 문자열로 클라이언트 인증서 SSL 컨텍스트 생성

    ssl 모듈은 파일 경로만 받으므로 임시 파일에 기록 후 즉시 삭제한다.
    """
    context = ssl.create_default_context()
    paths = []
    try:
        for pem in (cert_pem, key_pem):
            with tempfile.NamedTemporaryFile("w", suffix=".pem", delete=False) as handle:
                handle.write(pem)
                paths.append(handle.name)
        context.load_cert_chain(certfile=paths[0], keyfile=paths[1])
    finally:
        for path in paths:
            os.unlink(path)
    return context


def _parse_hit(child: Dict[str, Any]) -> RawHit:
    fields = dict(child.get("fields") or {})

    features: Dict[str, float] = {}
    for key in FEATURE_KEYS:
        source = fields.pop(key, None) or child.get(key) or {}
        for name, value in source.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                features.setdefault(name, float(value))

    relevance = child.get("relevance")
    if not isinstance(relevance, (int, float)):
        relevance = 0.0

    return RawHit(fields=fields, relevance=float(relevance), features=features)


class SearchGatewayClient:
    """검색 엔진 HTTP 클라이언트"""

    def __init__(
        self,
        config: EngineConfig,
        namespace: Optional[str] = None,
        document_type: Optional[str] = None,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            config: 해석된 엔진 설정
            namespace: 문서 네임스페이스
            document_type: 문서 타입
            request_timeout: HTTP 요청 타임아웃(초)
            transport: httpx 전송 계층 (테스트용 주입)
        """
        settings = get_settings()
        self.config = config
        self.namespace = namespace or settings.search_engine_namespace
        self.document_type = document_type or settings.search_engine_document_type
        self.request_timeout = request_timeout or settings.search_engine_request_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        # 통계
        self._requests = 0
        self._failures = 0

    # === 연결 관리 ===

    def _ensure_auth(self) -> str:
        """인증 방식 확인 (없으면 네트워크 호출 전에 실패)"""
        scheme = self.config.auth_scheme
        if scheme is None:
            raise AuthenticationNotConfiguredError()
        return scheme

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client

        scheme = self._ensure_auth()
        headers = {"Content-Type": "application/json"}
        verify: Any = True

        if scheme == AUTH_SCHEME_MTLS:
            verify = _build_ssl_context(self.config.cert_pem, self.config.key_pem)
        else:
            headers["Authorization"] = f"Bearer {self.config.token}"

        self._client = httpx.AsyncClient(
            base_url=self.config.endpoint,
            headers=headers,
            timeout=self.request_timeout,
            verify=verify,
            transport=self._transport,
        )
        logger.info("검색 엔진 클라이언트 생성", endpoint=self.config.endpoint, auth_scheme=scheme)
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 해제"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("검색 엔진 클라이언트 해제")

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        self._ensure_auth()
        client = self._get_client()
        self._requests += 1

        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            self._failures += 1
            logger.error("검색 엔진 통신 실패", operation=operation, url=url, error=str(e))
            raise EngineTransportError(operation, str(e) or type(e).__name__) from e

    def _raise_for_status(self, operation: str, response: httpx.Response) -> None:
        if response.is_success:
            return
        self._failures += 1
        logger.error(
            "검색 엔진 요청 실패",
            operation=operation,
            status_code=response.status_code,
            reason=response.reason_phrase,
            body_preview=response.text[:200]
        )
        raise EngineRequestError(operation, response.status_code, response.reason_phrase)

    # === 문서 경로 ===

    def document_path(self, user_id: str) -> str:
        return (
            f"/document/v1/{self.namespace}/{self.document_type}"
            f"/docid/{quote(user_id, safe='')}"
        )

    def document_id(self, user_id: str) -> str:
        return f"id:{self.namespace}:{self.document_type}::{user_id}"

    # === 메인 처리 함수 ===

    async def query(self, engine_query: EngineQuery) -> RawHits:
        """질의 실행

        Raises:
            EngineRequestError: 2xx 이외의 응답
            EngineTransportError: 네트워크 오류
        """
        response = await self._request("query", "GET", "/search/", params=engine_query.to_params())
        self._raise_for_status("query", response)

        root = response.json().get("root") or {}
        hits = [_parse_hit(child) for child in root.get("children") or []]
        total_count = (root.get("fields") or {}).get("totalCount")

        logger.debug(
            "검색 엔진 질의 완료",
            ranking=engine_query.ranking,
            hit_count=len(hits),
            total_count=total_count
        )
        return RawHits(hits=hits, total_count=total_count)

    async def put(self, document: SearchableProfile) -> None:
        """문서 생성/교체"""
        body = {
            "put": self.document_id(document.user_id),
            "fields": document.to_document_fields(),
        }
        response = await self._request("put", "POST", self.document_path(document.user_id), json=body)
        self._raise_for_status("put", response)
        logger.info("검색 문서 저장 완료", user_id=document.user_id)

    async def update(self, user_id: str, fields: Dict[str, Any]) -> None:
        """부분 업데이트 (필드별 assign)"""
        body = {
            "update": self.document_id(user_id),
            "fields": {name: {"assign": value} for name, value in fields.items()},
        }
        response = await self._request("update", "PUT", self.document_path(user_id), json=body)
        self._raise_for_status("update", response)
        logger.info("검색 문서 업데이트 완료", user_id=user_id, fields=sorted(fields))

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """문서 조회 (없으면 None)"""
        response = await self._request("get", "GET", self.document_path(user_id))
        if response.status_code == 404:
            logger.debug("검색 문서 없음", user_id=user_id)
            return None
        self._raise_for_status("get", response)
        return response.json().get("fields") or {}

    async def delete(self, user_id: str) -> None:
        """문서 삭제 (이미 없으면 성공으로 취급)"""
        response = await self._request("delete", "DELETE", self.document_path(user_id))
        if response.status_code == 404:
            logger.debug("삭제할 검색 문서 없음", user_id=user_id)
            return
        self._raise_for_status("delete", response)
        logger.info("검색 문서 삭제 완료", user_id=user_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests": self._requests,
            "failures": self._failures,
            "auth_scheme": self.config.auth_scheme,
        }
