"""
People Search 임베딩 프로바이더 연결 관리

OpenAI 임베딩 API 클라이언트 연결 및 원시 임베딩 호출 제공
infra 아키텍쳐 지침: 연결, 초기화, 설정 및 공통 호출 담당
"""

from typing import Any, List, Optional

import openai
import structlog

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)

# 전역 클라이언트 인스턴스
_openai_client: Optional[openai.AsyncOpenAI] = None


async def connect_to_openai(config: Optional[Settings] = None) -> None:
    """OpenAI API 클라이언트를 초기화합니다."""
    global _openai_client
    config = config or get_settings()

    try:
        logger.info("OpenAI API 클라이언트를 초기화합니다", model=config.openai_embedding_model)

        if not config.openai_api_key:
            logger.warning("OpenAI API 키가 설정되지 않았습니다")
            return

        _openai_client = openai.AsyncOpenAI(
            api_key=config.openai_api_key,
            timeout=config.openai_timeout
        )

        logger.info("OpenAI API 클라이언트 초기화가 완료되었습니다")

    except Exception as e:
        logger.error("OpenAI API 클라이언트 초기화 중 오류가 발생했습니다", error=str(e))
        raise


async def disconnect_from_openai() -> None:
    """OpenAI 클라이언트를 해제합니다."""
    global _openai_client

    if _openai_client:
        logger.info("OpenAI 클라이언트를 해제합니다")
        await _openai_client.close()
        _openai_client = None
        logger.info("OpenAI 클라이언트가 해제되었습니다")


def get_openai_client() -> openai.AsyncOpenAI:
    """OpenAI 클라이언트를 반환합니다."""
    if not _openai_client:
        raise RuntimeError("OpenAI 클라이언트가 초기화되지 않았습니다. connect_to_openai()를 먼저 호출하세요.")
    return _openai_client


class OpenAIEmbeddingProvider:
    """OpenAI 임베딩 호출 래퍼

    응답 형태 검증과 실패 복구는 상위 임베딩 서비스가 담당하며,
    여기서는 API 예외를 그대로 전파한다.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None
    ):
        config = get_settings()
        self._client = client
        self.model = model or config.openai_embedding_model
        self.dimension = dimension or config.embedding_dimension

    @property
    def client(self) -> Any:
        """OpenAI 클라이언트 반환"""
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def create_embedding(self, text: str) -> List[float]:
        """텍스트를 벡터로 변환"""
        logger.debug("임베딩 생성 요청", text_length=len(text), model=self.model)

        response = await self.client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self.dimension,
            encoding_format="float"
        )

        return response.data[0].embedding
