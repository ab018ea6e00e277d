"""People Search 테스트 공용 픽스처

- FakeEmbeddingProvider: 결정적 단위 벡터를 반환하는 임베딩 프로바이더
- FakeSearchEngine: httpx.MockTransport 위에서 동작하는 메모리 검색 엔진
"""

import json
import re
import zlib
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from modules.people_search.orchestrator import PeopleSearchOrchestrator
from modules.people_search.schema import EMBEDDING_DIMENSION
from modules.people_search.search_document_composer import SearchDocumentComposer
from modules.people_search.search_embedding_service import SearchEmbeddingService
from modules.people_search.search_engine_config import EngineConfig
from modules.people_search.search_gateway_client import SearchGatewayClient
from modules.people_search.search_query_builder import SearchQueryBuilder
from modules.people_search.search_result_ranker import SearchResultRanker

LEXICAL_TERM = re.compile(r'fullName contains "((?:[^"\\]|\\.)*)"')
INDUSTRY_TERM = re.compile(r'industry = "((?:[^"\\]|\\.)*)"')
MIN_EXPERIENCE = re.compile(r"yearsOfExperience >= (\d+)")
MAX_EXPERIENCE = re.compile(r"yearsOfExperience <= (\d+)")


def _unescape(value: str) -> str:
    return value.replace('\\"', '"').replace("\\\\", "\\")


def unit_vector(text: str) -> List[float]:
    """텍스트별로 결정적인 단위 벡터"""
    vector = [0.0] * EMBEDDING_DIMENSION
    vector[zlib.crc32(text.encode("utf-8")) % EMBEDDING_DIMENSION] = 1.0
    return vector


class FakeEmbeddingProvider:
    """결정적 임베딩 프로바이더"""

    def __init__(self):
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.response: Optional[Any] = None

    async def create_embedding(self, text: str) -> Any:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response
        return unit_vector(text)


class FakeSearchEngine:
    """메모리 기반 검색 엔진

    /search/ 는 노출 조건, 산업/경력 필터, fullName contains 로 표시된
    어휘 질의를 해석하여 searchableContent 에서 대소문자 무시 매칭한다.
    """

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.match_features: Dict[str, Dict[str, float]] = {}
        self.fail_status: Optional[int] = None
        self.honor_hits = True

    @property
    def search_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/search/"]

    def seed(self, user_id: str, **fields) -> None:
        """검색 문서 직접 저장"""
        document = {"userId": user_id, "isOnboardingComplete": True}
        document.update(fields)
        self.documents[user_id] = document

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "engine failure"})

        path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        if path == "/search/":
            return self._search(request)

        if path.startswith("/document/v1/"):
            user_id = unquote(path.split("/docid/", 1)[1])
            return self._document(request, user_id)

        return httpx.Response(404)

    def _document(self, request: httpx.Request, user_id: str) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            self.documents[user_id] = dict(body["fields"])
            return httpx.Response(200, json={"id": body["put"]})

        if request.method == "PUT":
            if user_id not in self.documents:
                return httpx.Response(404, json={"message": "not found"})
            body = json.loads(request.content)
            for name, operation in body["fields"].items():
                self.documents[user_id][name] = operation["assign"]
            return httpx.Response(200, json={"id": body["update"]})

        if request.method == "GET":
            if user_id not in self.documents:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json={"fields": dict(self.documents[user_id])})

        if request.method == "DELETE":
            if self.documents.pop(user_id, None) is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json={})

        return httpx.Response(405)

    def _search(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        yql = params["yql"]
        hits = int(params["hits"])

        term_match = LEXICAL_TERM.search(yql)
        term = _unescape(term_match.group(1)).lower() if term_match else None
        industry_match = INDUSTRY_TERM.search(yql)
        min_match = MIN_EXPERIENCE.search(yql)
        max_match = MAX_EXPERIENCE.search(yql)
        vector_search = "nearestNeighbor" in yql

        matched = []
        for user_id, document in self.documents.items():
            if "isOnboardingComplete = true" in yql and document.get("isOnboardingComplete") is not True:
                continue
            if industry_match and document.get("industry") != _unescape(industry_match.group(1)):
                continue
            years = document.get("yearsOfExperience")
            if min_match and (years is None or years < int(min_match.group(1))):
                continue
            if max_match and (years is None or years > int(max_match.group(1))):
                continue

            score = 0.0
            if term is not None:
                score = float(document.get("searchableContent", "").lower().count(term))
            if vector_search:
                score += 0.5
            if term is not None and score == 0:
                continue
            if term is None and not vector_search:
                score = 1.0

            matched.append((score, user_id, document))

        matched.sort(key=lambda item: item[0], reverse=True)
        selected = matched[:hits] if self.honor_hits else matched

        children = []
        for score, user_id, document in selected:
            fields = {k: v for k, v in document.items() if k != "profileVector"}
            if user_id in self.match_features:
                fields["matchfeatures"] = dict(self.match_features[user_id])
            children.append({
                "id": f"id:user_profile:user_profile::{user_id}",
                "relevance": score,
                "fields": fields,
            })

        return httpx.Response(200, json={
            "root": {
                "fields": {"totalCount": len(matched)},
                "children": children,
            }
        })


@pytest.fixture
def fake_engine() -> FakeSearchEngine:
    return FakeSearchEngine()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(endpoint="https://vespa.test", token="test-token")


@pytest.fixture
async def gateway(fake_engine, engine_config):
    client = SearchGatewayClient(
        engine_config,
        namespace="user_profile",
        document_type="user_profile",
        request_timeout=5.0,
        transport=httpx.MockTransport(fake_engine.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider) -> SearchEmbeddingService:
    return SearchEmbeddingService(
        provider=embedding_provider,
        dimension=EMBEDDING_DIMENSION,
        max_chars=8000,
        max_retries=3,
        retry_delay=0.0,
    )


@pytest.fixture
def orchestrator(embedding_service, gateway) -> PeopleSearchOrchestrator:
    return PeopleSearchOrchestrator(
        embedding_service=embedding_service,
        gateway=gateway,
        composer=SearchDocumentComposer(),
        query_builder=SearchQueryBuilder(source="user_profile", timeout="5s"),
        ranker=SearchResultRanker(
            semantic_weight=0.6,
            keyword_weight=0.4,
            semantic_feature="closeness(field,profileVector)",
            keyword_feature="nativeRank",
        ),
    )


@pytest.fixture
def react_profile() -> Dict[str, Any]:
    return {
        "fullName": "Jane Kim",
        "jobRole": "React Developer",
        "companyName": "Acme",
        "industry": "Technology",
        "yearsOfExperience": 5,
        "education": "KAIST",
        "about": "Frontend engineer who loves UI",
        "skills": ["React", "TypeScript"],
        "interests": ["Design systems"],
        "isOnboardingComplete": True,
    }
