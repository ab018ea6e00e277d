"""Search 엔진 설정 해석

파라미터 스토어에서 엔드포인트/토큰/인증서/개인키를 조회하여
불변 EngineConfig를 만든다. 프로세스당 한 번만 해석하고 재사용한다.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from infra.config import Settings, get_settings
from infra.parameter_store import ParameterStore, engine_parameter_name

from .errors import ConfigurationError

logger = structlog.get_logger(__name__)

ENGINE_PARAMETER_KEYS = ("endpoint", "token", "cert", "key")

AUTH_SCHEME_MTLS = "mtls"
AUTH_SCHEME_BEARER = "bearer"


@dataclass(frozen=True)
class EngineConfig:
    """검색 엔진 접속 정보 (해석 이후 불변)"""
    endpoint: str
    token: Optional[str] = None
    cert_pem: Optional[str] = None
    key_pem: Optional[str] = None

    @property
    def auth_scheme(self) -> Optional[str]:
        """활성 인증 방식

        인증서와 개인키가 모두 있으면 mTLS, 아니면 토큰이 있을 때 Bearer.
        둘 다 없으면 None.
        """
        if self.cert_pem and self.key_pem:
            return AUTH_SCHEME_MTLS
        if self.token:
            return AUTH_SCHEME_BEARER
        return None

    def __repr__(self) -> str:
        return f"EngineConfig(endpoint={self.endpoint!r}, auth_scheme={self.auth_scheme!r})"


def _is_placeholder(value: Optional[str]) -> bool:
    return not value or not value.strip() or "placeholder" in value.lower()


async def resolve_engine_config(
    store: ParameterStore,
    config: Optional[Settings] = None
) -> EngineConfig:
    """파라미터 스토어에서 엔진 설정 해석

    네 개의 파라미터를 병렬로 조회하며, 개별 조회 실패는 로그만 남기고
    값이 없는 것으로 취급한다. 엔드포인트가 없으면 항상 치명적 오류.

    Raises:
        ConfigurationError: 엔드포인트 누락 또는 플레이스홀더 값
    """
    config = config or get_settings()
    names = {key: engine_parameter_name(config, key) for key in ENGINE_PARAMETER_KEYS}

    fetched = await asyncio.gather(
        *(store.get_parameter(name) for name in names.values()),
        return_exceptions=True
    )

    values: Dict[str, Optional[str]] = {}
    for (key, name), result in zip(names.items(), fetched):
        if isinstance(result, Exception):
            logger.warning("엔진 파라미터 조회 실패", parameter=name, error=str(result))
            values[key] = None
        elif _is_placeholder(result):
            if result:
                logger.warning("엔진 파라미터가 플레이스홀더 값입니다", parameter=name)
            values[key] = None
        else:
            values[key] = result

    if not values["endpoint"]:
        raise ConfigurationError(
            f"검색 엔진 엔드포인트가 설정되지 않았습니다: {names['endpoint']}"
        )

    engine_config = EngineConfig(
        endpoint=values["endpoint"].strip().rstrip("/"),
        token=values["token"],
        cert_pem=values["cert"],
        key_pem=values["key"],
    )

    if engine_config.auth_scheme is None:
        logger.warning(
            "검색 엔진 인증 정보 없음 - 모든 엔진 호출이 실패합니다",
            token_parameter=names["token"],
            cert_parameter=names["cert"]
        )

    logger.info(
        "검색 엔진 설정 해석 완료",
        endpoint=engine_config.endpoint,
        auth_scheme=engine_config.auth_scheme
    )
    return engine_config


class EngineConfigProvider:
    """엔진 설정 레이지 캐시

    최초 호출자가 해석을 수행하고, 동시에 들어온 호출자는 같은 해석 결과를 기다린다.
    해석에 실패하면 캐시하지 않으므로 다음 호출에서 다시 시도한다.
    """

    def __init__(self, store: ParameterStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or get_settings()
        self._engine_config: Optional[EngineConfig] = None
        self._lock = asyncio.Lock()
        self._resolve_count = 0

    @property
    def resolve_count(self) -> int:
        """실제 해석 수행 횟수"""
        return self._resolve_count

    async def get(self) -> EngineConfig:
        """캐시된 엔진 설정 반환 (없으면 해석)"""
        if self._engine_config is not None:
            return self._engine_config

        async with self._lock:
            if self._engine_config is not None:  # Double-check
                return self._engine_config

            self._resolve_count += 1
            self._engine_config = await resolve_engine_config(self.store, self.config)
            return self._engine_config
