"""PeopleSearchOrchestrator 테스트

액션별 흐름, 경계 에러 변환, 액션 파싱 검증
"""

import json

import pytest

from modules.people_search.errors import InvalidRequestError
from modules.people_search.orchestrator import parse_action
from modules.people_search.schema import (
    ACTION_MODELS,
    EMBEDDING_DIMENSION,
    GetUserAction,
    RankingStrategy,
    SearchUsersAction,
)

VECTOR = [0.02] * EMBEDDING_DIMENSION


class TestSearch:

    async def test_default_search_returns_matching_profiles(self, orchestrator, fake_engine):
        # Given
        fake_engine.seed("u1", jobRole="React Developer", searchableContent="Jane React Developer")
        fake_engine.seed("u2", jobRole="Designer", searchableContent="Min Designer")
        fake_engine.seed(
            "u3",
            jobRole="React Developer",
            searchableContent="Hidden React Developer",
            isOnboardingComplete=False,
        )

        # When
        response = await orchestrator.search(query="React developer")

        # Then
        assert response.success is True
        assert [r.user_id for r in response.results] == ["u1"]
        assert response.results[0].score > 0
        assert response.total == 1

    async def test_filter_conjunction(self, orchestrator, fake_engine):
        fake_engine.seed("junior", yearsOfExperience=1, searchableContent="python")
        fake_engine.seed("senior", yearsOfExperience=7, searchableContent="python")
        fake_engine.seed("unknown", searchableContent="python")

        response = await orchestrator.search(query="python", filters={"minExperience": 4})

        assert response.success is True
        assert [r.user_id for r in response.results] == ["senior"]
        for result in response.results:
            assert result.profile.years_of_experience >= 4
            assert result.profile.is_onboarding_complete is True

    async def test_semantic_strategy_embeds_query(self, orchestrator, fake_engine, embedding_provider):
        fake_engine.seed("u1", searchableContent="ml engineer")

        response = await orchestrator.search(query="ml engineer", ranking_strategy="semantic")

        assert response.success is True
        assert embedding_provider.calls == ["ml engineer"]
        params = fake_engine.search_requests[0].url.params
        assert params["ranking"] == "semantic"
        assert len(json.loads(params["input.query(queryVector)"])) == EMBEDDING_DIMENSION

    async def test_supplied_vector_skips_embedding(self, orchestrator, fake_engine, embedding_provider):
        response = await orchestrator.semantic_search(query_vector=VECTOR)

        assert response.success is True
        assert embedding_provider.calls == []
        assert response.results == []
        assert response.total == 0

    async def test_wrong_vector_length_rejected_before_network(self, orchestrator, fake_engine, embedding_provider):
        response = await orchestrator.semantic_search(query_vector=[0.1] * 512)

        assert response.success is False
        assert "1024" in response.error
        assert fake_engine.requests == []
        assert embedding_provider.calls == []

    async def test_semantic_without_vector_or_query_fails(self, orchestrator, fake_engine):
        response = await orchestrator.search(ranking_strategy=RankingStrategy.SEMANTIC)

        assert response.success is False
        assert "queryVector" in response.error
        assert fake_engine.requests == []

    async def test_hybrid_proceeds_with_zero_vector_on_embedding_failure(
        self, orchestrator, fake_engine, embedding_provider
    ):
        # Given: 임베딩 실패
        fake_engine.seed("u1", searchableContent="data scientist")
        embedding_provider.error = RuntimeError("provider down")

        # When
        response = await orchestrator.hybrid_search(query="data scientist")

        # Then: 제로 벡터로 계속 진행
        assert response.success is True
        params = fake_engine.search_requests[0].url.params
        assert json.loads(params["input.query(queryVector)"]) == [0.0] * EMBEDDING_DIMENSION
        assert [r.user_id for r in response.results] == ["u1"]

    async def test_limit_above_hundred_is_accepted_and_truncates(self, orchestrator, fake_engine):
        # Given: 엔진이 hits 보다 많이 반환
        for i in range(160):
            fake_engine.seed(f"u{i}", searchableContent="python")
        fake_engine.honor_hits = False

        # When
        response = await orchestrator.search(query="python", limit=150)

        # Then
        assert response.success is True
        assert len(response.results) == 150
        assert response.total == 160
        assert fake_engine.search_requests[0].url.params["hits"] == "150"

    async def test_engine_failure_becomes_error_string(self, orchestrator, fake_engine):
        fake_engine.fail_status = 500

        response = await orchestrator.search(query="anything")

        assert response.success is False
        assert "500" in response.error
        assert response.results is None


class TestDocumentLifecycle:

    async def test_index_then_get_round_trip(self, orchestrator, react_profile):
        # When
        indexed = await orchestrator.index_user("user-1", react_profile)
        fetched = await orchestrator.get_user("user-1")

        # Then
        assert indexed.success is True
        assert fetched.success is True
        assert fetched.total == 1
        result = fetched.results[0]
        assert result.user_id == "user-1"
        assert result.score == 1.0
        assert result.profile.industry == "Technology"
        assert result.profile.years_of_experience == 5
        assert result.profile.company_name == "Acme"
        assert result.profile.education == "KAIST"
        assert result.profile.skills == ["React", "TypeScript"]
        assert result.profile.created_at is not None

    async def test_index_embeds_searchable_content(self, orchestrator, fake_engine, embedding_provider, react_profile):
        await orchestrator.index_user("user-1", react_profile)

        document = fake_engine.documents["user-1"]
        assert embedding_provider.calls == [document["searchableContent"]]
        assert len(document["profileVector"]) == EMBEDDING_DIMENSION
        assert document["createdAt"] == document["updatedAt"]

    async def test_index_reuses_valid_supplied_vector(self, orchestrator, fake_engine, embedding_provider, react_profile):
        react_profile["profileVector"] = VECTOR

        await orchestrator.index_user("user-1", react_profile)

        assert embedding_provider.calls == []
        assert fake_engine.documents["user-1"]["profileVector"] == VECTOR

    async def test_index_reembeds_wrong_length_vector(self, orchestrator, embedding_provider, react_profile):
        react_profile["profileVector"] = [0.1] * 3

        response = await orchestrator.index_user("user-1", react_profile)

        assert response.success is True
        assert len(embedding_provider.calls) == 1

    async def test_get_missing_user_is_empty_success(self, orchestrator):
        response = await orchestrator.get_user("nobody")

        assert response.success is True
        assert response.results == []
        assert response.total == 0

    async def test_delete_is_idempotent(self, orchestrator, react_profile):
        await orchestrator.index_user("user-1", react_profile)

        first = await orchestrator.delete_user("user-1")
        second = await orchestrator.delete_user("user-1")

        assert first.success is True
        assert second.success is True

    async def test_update_assigns_only_supplied_fields(
        self, orchestrator, fake_engine, embedding_provider, react_profile
    ):
        # Given
        await orchestrator.index_user("user-1", react_profile)
        created_at = fake_engine.documents["user-1"]["createdAt"]

        # When
        response = await orchestrator.update_user("user-1", {"jobRole": "Staff Engineer"})

        # Then
        assert response.success is True
        body = json.loads(fake_engine.requests[-1].content)
        assert set(body["fields"]) == {"jobRole", "searchableContent", "profileVector", "updatedAt"}

        document = fake_engine.documents["user-1"]
        assert document["jobRole"] == "Staff Engineer"
        assert document["fullName"] == "Jane Kim"
        assert document["industry"] == "Technology"
        assert document["createdAt"] == created_at
        assert document["updatedAt"] >= created_at
        assert "Jane Kim" in document["searchableContent"]
        assert embedding_provider.calls[-1] == document["searchableContent"]

    async def test_update_recomputes_derived_fields_from_merged_profile(
        self, orchestrator, fake_engine, embedding_provider, react_profile
    ):
        # Given
        await orchestrator.index_user("user-1", react_profile)

        # When: 직무만 변경
        response = await orchestrator.update_user("user-1", {"jobRole": "Staff Engineer"})

        # Then: 저장된 나머지 필드가 검색 텍스트와 임베딩에 그대로 반영
        assert response.success is True
        document = fake_engine.documents["user-1"]
        assert document["searchableContent"] == (
            "Jane Kim Staff Engineer Acme Frontend engineer who loves UI "
            "KAIST React TypeScript Design systems"
        )
        assert embedding_provider.calls[-1] == document["searchableContent"]
        assert fake_engine.requests[-2].method == "GET"

    async def test_update_with_supplied_vector_skips_embedding(
        self, orchestrator, fake_engine, embedding_provider, react_profile
    ):
        await orchestrator.index_user("user-1", react_profile)

        response = await orchestrator.update_user("user-1", {"about": "Platform lead", "profileVector": VECTOR})

        assert response.success is True
        assert len(embedding_provider.calls) == 1
        document = fake_engine.documents["user-1"]
        assert document["profileVector"] == VECTOR
        assert "Jane Kim" in document["searchableContent"]
        assert "Platform lead" in document["searchableContent"]
        assert "Frontend engineer" not in document["searchableContent"]

    async def test_update_missing_document_fails(self, orchestrator, fake_engine):
        response = await orchestrator.update_user("ghost", {"jobRole": "x"})

        assert response.success is False
        assert "404" in response.error
        assert [r.method for r in fake_engine.requests] == ["GET"]

    async def test_empty_user_id_is_rejected(self, orchestrator, fake_engine):
        response = await orchestrator.get_user("  ")

        assert response.success is False
        assert fake_engine.requests == []


class TestActionPayload:

    async def test_unknown_action(self, orchestrator):
        response = await orchestrator.handle_payload({"action": "explode"})

        assert response.success is False
        assert response.error == "Unknown action: explode"

    async def test_missing_required_field_names_field_and_action(self, orchestrator):
        response = await orchestrator.handle_payload({"action": "get_user"})

        assert response.success is False
        assert "userId" in response.error
        assert "get_user" in response.error

    async def test_json_string_fields_are_parsed(self, orchestrator, fake_engine):
        fake_engine.seed("senior", yearsOfExperience=9, searchableContent="golang")
        fake_engine.seed("junior", yearsOfExperience=1, searchableContent="golang")

        response = await orchestrator.handle_payload({
            "action": "search_users",
            "query": "golang",
            "limit": 5,
            "filters": json.dumps({"minExperience": 5}),
            "rankingProfile": "experience_focused",
        })

        assert response.success is True
        assert [r.user_id for r in response.results] == ["senior"]
        assert fake_engine.search_requests[0].url.params["ranking"] == "experience_focused"

    async def test_index_user_payload_with_json_profile(self, orchestrator, fake_engine, react_profile):
        response = await orchestrator.handle_payload({
            "action": "index_user",
            "userId": "user-9",
            "userProfile": json.dumps(react_profile),
        })

        assert response.success is True
        assert fake_engine.documents["user-9"]["jobRole"] == "React Developer"

    async def test_response_payload_is_camel_case(self, orchestrator, fake_engine):
        fake_engine.seed("u1", fullName="Jane", searchableContent="jane")

        response = await orchestrator.handle_payload({"action": "search_users", "query": "jane"})
        payload = response.to_payload()

        assert payload["success"] is True
        assert payload["results"][0]["userId"] == "u1"
        assert payload["results"][0]["profile"]["fullName"] == "Jane"
        assert "error" not in payload

    def test_every_action_model_has_handler(self, orchestrator):
        assert set(orchestrator._action_handlers) == set(ACTION_MODELS.values())

    async def test_every_action_name_dispatches(self, orchestrator):
        payloads = {
            "search_users": {},
            "semantic_search": {"queryVector": VECTOR},
            "hybrid_search": {"query": "x"},
            "index_user": {"userId": "u", "userProfile": {"fullName": "A"}},
            "update_user": {"userId": "u", "userProfile": {"jobRole": "B"}},
            "get_user": {"userId": "u"},
            "delete_user": {"userId": "u"},
        }
        assert set(payloads) == set(ACTION_MODELS)

        for name, fields in payloads.items():
            response = await orchestrator.handle_payload({"action": name, **fields})
            assert response.success is True, name

    def test_parse_action_returns_typed_models(self):
        assert isinstance(parse_action({"action": "get_user", "userId": "u"}), GetUserAction)
        action = parse_action({"action": "search_users"})
        assert isinstance(action, SearchUsersAction)
        assert action.ranking_profile == RankingStrategy.DEFAULT

    def test_parse_action_rejects_bad_ranking_profile(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_action({"action": "search_users", "rankingProfile": "random"})

        assert "search_users" in str(exc_info.value)


class TestHealth:

    async def test_health_check_reports_counters(self, orchestrator, fake_engine):
        await orchestrator.search(query="x")
        fake_engine.fail_status = 500
        await orchestrator.search(query="x")

        health = await orchestrator.health_check()

        assert health.status == "healthy"
        assert health.dependencies["search_engine"]["auth_scheme"] == "bearer"
        assert health.metrics["total_searches"] == 2
        assert health.metrics["total_errors"] == 1
