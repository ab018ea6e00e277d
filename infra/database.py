"""
사용자 프로필 원본 저장소 (MongoDB) 연결 관리

재색인 시에만 필요하므로 첫 사용 시점에 연결하는 레이지 싱글톤
검색 서비스는 프로필을 읽기만 하므로 secondary 우선 읽기로 연결
"""

import asyncio
from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReadPreference
from pymongo.errors import PyMongoError

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)


class ProfileStoreConnection:
    """프로필 저장소 연결 관리자 - 레이지 싱글톤"""

    _instance: Optional['ProfileStoreConnection'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.client = None
            cls._instance.database = None
            cls._instance._lock = asyncio.Lock()
        return cls._instance

    @property
    def is_connected(self) -> bool:
        return self.database is not None

    async def ensure_connected(self, config: Optional[Settings] = None) -> AsyncIOMotorDatabase:
        """연결 보장 후 데이터베이스 반환"""
        if self.database is not None:
            return self.database

        async with self._lock:
            if self.database is None:  # Double-check
                await self._connect(config or get_settings())
        return self.database

    async def _connect(self, config: Settings) -> None:
        logger.info("프로필 저장소 연결 시작", database=config.mongodb_database)

        client = AsyncIOMotorClient(
            config.mongodb_url,
            minPoolSize=config.mongodb_min_pool_size,
            maxPoolSize=config.mongodb_max_pool_size,
            read_preference=ReadPreference.SECONDARY_PREFERRED,
            appname=config.app_name,
            serverSelectionTimeoutMS=5000,
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            client.close()
            logger.error("프로필 저장소 연결 실패", error=str(e))
            raise

        self.client = client
        self.database = client[config.mongodb_database]
        logger.info("프로필 저장소 연결 성공", database=config.mongodb_database)

    async def ping(self) -> Dict[str, Any]:
        """연결 상태 (연결 전이면 not_connected)"""
        if self.client is None:
            return {"status": "not_connected"}
        try:
            await self.client.admin.command("ping")
            return {"status": "healthy"}
        except PyMongoError as e:
            return {"status": "unhealthy", "error": str(e)}

    async def disconnect(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("프로필 저장소 연결 해제")
        self.client = None
        self.database = None


def get_profile_store() -> ProfileStoreConnection:
    return ProfileStoreConnection()


async def connect_to_mongodb(config: Optional[Settings] = None) -> AsyncIOMotorDatabase:
    """프로필 저장소에 연결합니다."""
    return await get_profile_store().ensure_connected(config)


async def disconnect_from_mongodb() -> None:
    """프로필 저장소 연결을 해제합니다."""
    await get_profile_store().disconnect()


def get_database() -> AsyncIOMotorDatabase:
    """현재 데이터베이스를 반환합니다.

    Raises:
        RuntimeError: connect_to_mongodb() 호출 전
    """
    database = get_profile_store().database
    if database is None:
        raise RuntimeError("프로필 저장소가 연결되지 않았습니다. connect_to_mongodb()를 먼저 호출하세요.")
    return database
