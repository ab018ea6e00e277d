"""Search 문서 구성 서비스

사용자 프로필에서 검색 엔진에 색인할 문서를 생성
외부 호출 없는 순수 매핑 (임베딩은 오케스트레이터가 순서대로 호출)
"""

from typing import List, Optional

import structlog

from .schema import ProfileSource, SearchableProfile

logger = structlog.get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class SearchDocumentComposer:
    """프로필 → 검색 문서 변환기"""

    def build_searchable_content(self, profile: ProfileSource) -> str:
        """검색용 텍스트 생성

        이름, 직무, 회사, 자기소개, 학력, 스킬 전체, 관심사 전체 순서로
        비어 있는 값을 제외하고 공백 하나로 연결한다.
        """
        parts: List[Optional[str]] = [
            profile.full_name,
            profile.job_role,
            profile.company_name,
            profile.about,
            profile.education,
        ]
        parts.extend(profile.skills or [])
        parts.extend(profile.interests or [])

        return " ".join(p for p in (_clean(part) for part in parts) if p)

    def compose(self, user_id: str, profile: ProfileSource) -> SearchableProfile:
        """검색 문서 생성

        Args:
            user_id: 사용자 ID
            profile: 호출자 프로필

        Returns:
            색인용 SearchableProfile (타임스탬프 미설정)
        """
        document = SearchableProfile(
            user_id=user_id,
            full_name=profile.full_name,
            email=profile.email,
            job_role=profile.job_role,
            company_name=profile.company_name,
            industry=profile.industry,
            years_of_experience=profile.years_of_experience,
            education=profile.education,
            about=profile.about,
            skills=list(profile.skills or []),
            interests=list(profile.interests or []),
            profile_picture_url=profile.profile_picture_url,
            searchable_content=self.build_searchable_content(profile),
            profile_vector=profile.profile_vector,
            is_onboarding_complete=bool(profile.is_onboarding_complete),
        )

        logger.debug(
            "검색 문서 구성 완료",
            user_id=user_id,
            content_length=len(document.searchable_content),
            has_vector=document.profile_vector is not None
        )
        return document
