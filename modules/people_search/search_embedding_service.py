"""Search 임베딩 생성 서비스

임베딩 프로바이더를 사용하여 텍스트를 고정 차원 벡터로 변환
재시도 로직 및 제로 벡터 폴백 포함 (호출자에게 예외를 전파하지 않음)
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog
from openai import APIConnectionError, APIError, APITimeoutError, RateLimitError

from infra.config import get_settings

from .errors import EmbeddingError
from .schema import EMBEDDING_DIMENSION

logger = structlog.get_logger(__name__)


class SearchEmbeddingService:
    """임베딩 생성 전용 서비스"""

    def __init__(
        self,
        provider: Any,
        dimension: int = EMBEDDING_DIMENSION,
        max_chars: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None
    ):
        """
        Args:
            provider: create_embedding(text) 코루틴을 제공하는 프로바이더
            dimension: 기대 벡터 차원
            max_chars: 입력 최대 문자 수 (초과분은 잘라냄)
            max_retries: 최대 시도 횟수
            retry_delay: 재시도 기본 대기시간(초)
        """
        config = get_settings()
        self.provider = provider
        self.dimension = dimension
        self.max_chars = max_chars if max_chars is not None else config.embedding_max_input_chars
        self.max_retries = max_retries if max_retries is not None else config.embedding_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else config.embedding_retry_delay

        # 통계
        self._requests = 0
        self._api_calls = 0
        self._api_errors = 0
        self._fallbacks = 0

    # === 메인 처리 함수 ===

    async def embed(self, text: Optional[str]) -> List[float]:
        """텍스트를 임베딩으로 변환

        실패 시 예외 대신 제로 벡터를 반환한다.

        Args:
            text: 임베딩할 텍스트

        Returns:
            길이가 dimension인 벡터
        """
        self._requests += 1
        normalized_text = self.normalize_text(text)

        if not normalized_text:
            logger.warning("빈 텍스트 - 제로 벡터 반환")
            self._fallbacks += 1
            return self.zero_vector()

        try:
            embedding = await self._create_embedding_with_retry(normalized_text)
            self._validate_embedding(embedding)
        except EmbeddingError as e:
            self._fallbacks += 1
            logger.error(
                "임베딩 생성 실패 - 제로 벡터로 대체",
                text_preview=normalized_text[:50],
                error=str(e),
                api_error_rate=self._get_api_error_rate()
            )
            return self.zero_vector()

        logger.debug(
            "임베딩 생성 완료",
            text_length=len(normalized_text),
            embedding_dimension=len(embedding)
        )
        return [float(v) for v in embedding]

    def zero_vector(self) -> List[float]:
        """폴백용 제로 벡터"""
        return [0.0] * self.dimension

    def normalize_text(self, text: Optional[str]) -> str:
        """공백 정규화 후 최대 길이로 앞부분만 자름"""
        if not text:
            return ""

        normalized = ' '.join(text.split())

        if len(normalized) > self.max_chars:
            logger.debug(
                "텍스트 길이 초과로 잘림",
                original_length=len(normalized),
                max_chars=self.max_chars
            )
            normalized = normalized[:self.max_chars]

        return normalized

    # === 내부 헬퍼 함수 ===

    def _validate_embedding(self, embedding: Any) -> None:
        """임베딩 형태 검증

        Raises:
            EmbeddingError: 리스트가 아니거나 차원/값 형식이 맞지 않을 때
        """
        if not isinstance(embedding, list):
            raise EmbeddingError(f"임베딩 응답 형식 오류: {type(embedding).__name__}")

        if len(embedding) != self.dimension:
            raise EmbeddingError(
                f"임베딩 차원 불일치: expected={self.dimension}, actual={len(embedding)}"
            )

        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in embedding):
            raise EmbeddingError("임베딩에 숫자가 아닌 값이 포함되어 있습니다")

    async def _create_embedding_with_retry(self, text: str) -> Any:
        """재시도 로직을 포함한 임베딩 생성

        Raises:
            EmbeddingError: 모든 시도 실패
        """
        last_error: Optional[Exception] = None
        attempts = 0

        for attempt in range(self.max_retries):
            # 지수 백오프
            if attempt > 0:
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.debug("임베딩 재시도 대기", delay=delay, attempt=attempt + 1)
                await asyncio.sleep(delay)

            attempts += 1
            try:
                self._api_calls += 1
                return await self.provider.create_embedding(text)

            except RateLimitError as e:
                self._api_errors += 1
                last_error = e
                logger.warning("임베딩 API 속도 제한", attempt=attempt + 1, error=str(e))

            except (APITimeoutError, APIConnectionError) as e:
                self._api_errors += 1
                last_error = e
                logger.warning("임베딩 API 연결/타임아웃 오류", attempt=attempt + 1, error=str(e))

            except APIError as e:
                # API 오류는 재시도하지 않음
                self._api_errors += 1
                last_error = e
                logger.error("임베딩 API 오류", attempt=attempt + 1, error=str(e))
                break

            except Exception as e:
                self._api_errors += 1
                last_error = e
                logger.error("임베딩 생성 중 예상치 못한 오류", attempt=attempt + 1, error=str(e))
                break

        raise EmbeddingError(f"임베딩 생성 실패 (시도 {attempts}회): {last_error}")

    def _get_api_error_rate(self) -> float:
        """API 오류율 계산"""
        if self._api_calls == 0:
            return 0.0
        return self._api_errors / self._api_calls

    async def get_stats(self) -> Dict[str, Any]:
        """서비스 통계 반환"""
        return {
            "requests": self._requests,
            "api_calls": self._api_calls,
            "api_errors": self._api_errors,
            "api_error_rate": self._get_api_error_rate(),
            "fallbacks": self._fallbacks,
            "dimension": self.dimension,
        }
