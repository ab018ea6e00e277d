"""Search 대량 색인 서비스

여러 사용자 프로필을 작은 배치 단위로 검색 엔진에 색인 (백필)
배치 내부는 동시 처리, 배치 사이에는 잠시 대기하여 외부 서비스 부하를 제한
"""

import asyncio
from typing import Any, AsyncIterator, Iterable, List, Optional, Tuple, Union

import structlog

from infra.config import get_settings

from .schema import BulkIndexFailure, BulkIndexReport, ProfileSource

logger = structlog.get_logger(__name__)

ProfileItem = Tuple[Optional[str], ProfileSource]
ProfileStream = Union[Iterable[ProfileItem], AsyncIterator[ProfileItem]]


async def _iterate(profiles: ProfileStream) -> AsyncIterator[ProfileItem]:
    if hasattr(profiles, "__aiter__"):
        async for item in profiles:
            yield item
    else:
        for item in profiles:
            yield item


class SearchBulkIndexer:
    """배치 단위 대량 색인기"""

    def __init__(
        self,
        orchestrator: Any,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None
    ):
        """
        Args:
            orchestrator: index_user(user_id, profile)를 제공하는 오케스트레이터
            batch_size: 배치 크기
            batch_delay: 배치 사이 대기시간(초)
        """
        config = get_settings()
        self.orchestrator = orchestrator
        self.batch_size = batch_size or config.bulk_index_batch_size
        self.batch_delay = batch_delay if batch_delay is not None else config.bulk_index_batch_delay

        if self.batch_size < 1:
            raise ValueError("batch_size는 1 이상이어야 합니다")

    # === 메인 처리 함수 ===

    async def index_profiles(self, profiles: ProfileStream) -> BulkIndexReport:
        """프로필 목록 색인

        온보딩 미완료 또는 ID 없는 프로필은 건너뛰고,
        실패는 사용자/배치 단위로 격리하여 나머지 처리를 계속한다.
        """
        report = BulkIndexReport()
        batch: List[Tuple[str, ProfileSource]] = []

        logger.info("대량 색인 시작", batch_size=self.batch_size, batch_delay=self.batch_delay)

        async for user_id, profile in _iterate(profiles):
            if not user_id or not profile.is_onboarding_complete:
                report.skipped += 1
                logger.debug("색인 대상 아님 - 건너뜀", user_id=user_id)
                continue

            batch.append((user_id, profile))
            if len(batch) >= self.batch_size:
                if report.batches > 0:
                    await asyncio.sleep(self.batch_delay)
                await self._process_batch(batch, report)
                batch = []

        if batch:
            if report.batches > 0:
                await asyncio.sleep(self.batch_delay)
            await self._process_batch(batch, report)

        logger.info(
            "대량 색인 완료",
            indexed=report.indexed,
            skipped=report.skipped,
            errored=report.errored,
            batches=report.batches
        )
        return report

    async def reindex_from_repository(self, repository: Any, page_size: int = 100) -> BulkIndexReport:
        """프로필 저장소의 온보딩 완료 프로필 전체 재색인"""
        total = await repository.count_profiles(only_onboarded=True)
        logger.info("저장소 기반 재색인 시작", total_profiles=total)

        return await self.index_profiles(
            repository.iter_profiles(only_onboarded=True, batch_size=page_size)
        )

    # === 내부 헬퍼 함수 ===

    async def _process_batch(
        self,
        batch: List[Tuple[str, ProfileSource]],
        report: BulkIndexReport
    ) -> None:
        report.batches += 1
        batch_number = report.batches

        try:
            responses = await asyncio.gather(
                *(self.orchestrator.index_user(user_id, profile) for user_id, profile in batch),
                return_exceptions=True
            )
        except Exception as e:
            logger.error("배치 처리 실패", batch=batch_number, error=str(e))
            for user_id, _ in batch:
                report.errored += 1
                report.failures.append(BulkIndexFailure(user_id=user_id, error=str(e)))
            return

        for (user_id, _), response in zip(batch, responses):
            if isinstance(response, BaseException):
                error = str(response) or type(response).__name__
            elif not response.success:
                error = response.error or "알 수 없는 오류"
            else:
                report.indexed += 1
                continue

            report.errored += 1
            report.failures.append(BulkIndexFailure(user_id=user_id, error=error))

        logger.info(
            "배치 처리 완료",
            batch=batch_number,
            size=len(batch),
            indexed=report.indexed,
            errored=report.errored
        )
