"""People Search 예외 정의

내부 컴포넌트는 아래 타입의 예외를 발생시키고,
오케스트레이터 경계에서만 문자열 에러로 변환한다.
"""

from typing import Optional


class PeopleSearchError(Exception):
    """People Search 모듈 공통 예외"""


class ConfigurationError(PeopleSearchError):
    """검색 엔진 설정 누락/오류 (운영자 조치 필요)"""


class AuthenticationNotConfiguredError(ConfigurationError):
    """검색 엔진 인증 수단이 하나도 설정되지 않음"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "검색 엔진 인증이 설정되지 않았습니다 (no authentication configured: mTLS 인증서/키 또는 Bearer 토큰 필요)"
        )


class EmbeddingError(PeopleSearchError):
    """임베딩 생성 실패 (임베딩 서비스 내부에서만 사용, 제로 벡터로 복구)"""


class EngineTransportError(PeopleSearchError):
    """검색 엔진 네트워크 통신 실패"""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"검색 엔진 {operation} 통신 실패: {detail}")


class EngineRequestError(PeopleSearchError):
    """검색 엔진이 2xx 이외의 상태 코드로 응답"""

    def __init__(self, operation: str, status_code: int, reason: str):
        self.operation = operation
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"검색 엔진 {operation} 요청 실패: {status_code} {reason}")


class InvalidRequestError(PeopleSearchError):
    """잘못된 호출자 입력 (알 수 없는 action, 필수 필드 누락 등)"""
