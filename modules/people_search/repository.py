"""People Search 모듈 리포지토리 계층

MongoDB 사용자 프로필 컬렉션 읽기 전용 접근
대량 재색인 시 프로필 원본을 스트리밍으로 제공
"""

from typing import Any, AsyncIterator, Dict, Optional, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from infra.config import get_settings
from infra.database import get_database

from .schema import ProfileSource

logger = structlog.get_logger(__name__)


class ProfileRepository:
    """사용자 프로필 데이터 접근 계층 (읽기 전용)"""

    def __init__(
        self,
        db: Optional[AsyncIOMotorDatabase] = None,
        collection_name: Optional[str] = None
    ):
        self.db = db
        self.collection_name = collection_name or get_settings().mongodb_profile_collection
        self._initialized = db is not None

    async def _ensure_initialized(self) -> None:
        """리포지토리 초기화 확인"""
        if not self._initialized:
            self.db = get_database()
            self._initialized = True
            logger.info("ProfileRepository 초기화 완료", collection=self.collection_name)

    def _build_query(self, only_onboarded: bool) -> Dict[str, Any]:
        return {"isOnboardingComplete": True} if only_onboarded else {}

    # === 프로필 조회 ===

    async def count_profiles(self, only_onboarded: bool = True) -> int:
        """프로필 수 조회"""
        await self._ensure_initialized()

        try:
            return await self.db[self.collection_name].count_documents(self._build_query(only_onboarded))
        except PyMongoError as e:
            logger.error("프로필 수 조회 실패", error=str(e))
            raise

    async def iter_profiles(
        self,
        only_onboarded: bool = True,
        batch_size: int = 100
    ) -> AsyncIterator[Tuple[Optional[str], ProfileSource]]:
        """프로필 스트리밍 조회

        Yields:
            (userId, ProfileSource) - 형식이 잘못된 문서는 로그 후 건너뜀
        """
        await self._ensure_initialized()

        cursor = self.db[self.collection_name].find(
            self._build_query(only_onboarded)
        ).batch_size(batch_size)

        try:
            async for document in cursor:
                user_id = document.get("userId") or (
                    str(document["_id"]) if document.get("_id") is not None else None
                )
                try:
                    profile = ProfileSource.model_validate(document)
                except ValidationError as e:
                    logger.warning("프로필 문서 형식 오류 - 건너뜀", user_id=user_id, error=str(e))
                    continue
                yield user_id, profile
        except PyMongoError as e:
            logger.error("프로필 조회 실패", error=str(e))
            raise
