"""
People Search 시크릿 파라미터 스토어

검색 엔진 엔드포인트/자격 증명을 배포 스택 단위 경로에서 조회
- SSMParameterStore: AWS Systems Manager Parameter Store (boto3)
- StaticParameterStore: 설정값 기반 (로컬 개발/테스트)
"""

import asyncio
from typing import Any, Dict, Optional

import boto3
import structlog
from botocore.exceptions import ClientError

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)


class ParameterStore:
    """파라미터 스토어 인터페이스"""

    async def get_parameter(self, name: str) -> Optional[str]:
        """파라미터 값 조회

        Args:
            name: 파라미터 전체 경로

        Returns:
            파라미터 값, 존재하지 않으면 None
        """
        raise NotImplementedError


class SSMParameterStore(ParameterStore):
    """AWS SSM Parameter Store 구현

    boto3 클라이언트는 동기식이므로 이벤트 루프를 막지 않도록
    워커 스레드에서 호출한다.
    """

    def __init__(self, region_name: str, client: Any = None):
        self.region_name = region_name
        self._client = client

    @property
    def client(self) -> Any:
        """SSM 클라이언트 (지연 생성)"""
        if self._client is None:
            self._client = boto3.client("ssm", region_name=self.region_name)
        return self._client

    async def get_parameter(self, name: str) -> Optional[str]:
        try:
            response = await asyncio.to_thread(
                self.client.get_parameter,
                Name=name,
                WithDecryption=True,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                logger.debug("SSM 파라미터 없음", name=name)
                return None
            raise

        return response.get("Parameter", {}).get("Value")


class StaticParameterStore(ParameterStore):
    """메모리 딕셔너리 기반 파라미터 스토어"""

    def __init__(self, values: Optional[Dict[str, Optional[str]]] = None):
        self.values: Dict[str, Optional[str]] = dict(values or {})

    async def get_parameter(self, name: str) -> Optional[str]:
        return self.values.get(name)


def engine_parameter_name(config: Settings, key: str) -> str:
    """검색 엔진 파라미터 경로 생성 (예: /loopn/<stack>/vespa/endpoint)"""
    prefix = config.search_engine_parameter_prefix.rstrip("/")
    return f"{prefix}/{config.search_engine_stack_id}/vespa/{key}"


def create_parameter_store(config: Optional[Settings] = None) -> ParameterStore:
    """설정에 맞는 파라미터 스토어 생성"""
    config = config or get_settings()

    if config.search_engine_parameter_source == "ssm":
        logger.info(
            "SSM 파라미터 스토어 사용",
            region=config.aws_region,
            stack_id=config.search_engine_stack_id
        )
        return SSMParameterStore(region_name=config.aws_region)

    logger.info("환경 설정 기반 파라미터 스토어 사용", stack_id=config.search_engine_stack_id)
    return StaticParameterStore({
        engine_parameter_name(config, "endpoint"): config.search_engine_endpoint,
        engine_parameter_name(config, "token"): config.search_engine_token,
        engine_parameter_name(config, "cert"): config.search_engine_cert,
        engine_parameter_name(config, "key"): config.search_engine_key,
    })
