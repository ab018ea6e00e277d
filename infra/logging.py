"""
People Search 로깅 설정 및 초기화

structlog 기반 구조화 로깅 (개발: 컬러 콘솔, 운영: JSON)
검색 엔진 인증서/토큰 같은 민감 값은 렌더링 전에 마스킹
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

import colorama
import structlog
from colorama import Fore, Style
from structlog.processors import JSONRenderer
from structlog.stdlib import LoggerFactory

from .config import Settings, get_settings

colorama.init(autoreset=True)

# 값이 로그에 남으면 안 되는 키 (부분 일치, 소문자)
SENSITIVE_KEYS = ("token", "secret", "password", "api_key", "cert_pem", "key_pem", "authorization")
MASK = "***"

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*(KB|MB|GB)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {None: 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}

_EXTERNAL_LOG_LEVELS = {
    "motor": logging.WARNING,
    "pymongo": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "boto3": logging.WARNING,
    "botocore": logging.WARNING,
    "uvicorn": logging.INFO,
}


def setup_logging(config: Optional[Settings] = None) -> None:
    """로깅 시스템 초기화 (애플리케이션 시작 시 1회)"""
    config = config or get_settings()
    log_level = getattr(logging, config.app_log_level.upper())

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=_get_handlers(config),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_sensitive_values,
            _get_renderer(config),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    for logger_name, level in _EXTERNAL_LOG_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)

    structlog.get_logger(__name__).info(
        "로깅 시스템 초기화 완료",
        log_level=config.app_log_level,
        log_format=config.log_format,
        log_file=config.log_file_path
    )


def redact_sensitive_values(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """민감 키의 값을 마스킹하는 structlog 프로세서"""
    for key in list(event_dict):
        lowered = key.lower()
        if any(marker in lowered for marker in SENSITIVE_KEYS) and event_dict[key]:
            event_dict[key] = MASK
    return event_dict


def parse_size(size_str: str) -> int:
    """크기 문자열 (예: 10MB)을 바이트로 변환

    Raises:
        ValueError: 형식 오류
    """
    match = _SIZE_PATTERN.match(size_str)
    if not match:
        raise ValueError(f"잘못된 크기 형식: {size_str}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit.upper() if unit else None]


def _get_handlers(config: Settings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    if config.log_file_path:
        Path(config.log_file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            filename=config.log_file_path,
            maxBytes=parse_size(config.log_file_max_size),
            backupCount=config.log_file_backup_count,
            encoding="utf-8"
        ))

    if config.log_console_enabled:
        handlers.append(logging.StreamHandler(sys.stdout))

    return handlers


def _get_renderer(config: Settings):
    if config.log_format == "json":
        return JSONRenderer(ensure_ascii=False)
    return ColoredConsoleRenderer()


class ColoredConsoleRenderer:
    """개발 환경용 컬러 콘솔 렌더러

    요청 추적에 쓰이는 키(operation, action, user_id)는 강조하고
    나머지 컨텍스트는 키 순서대로 출력
    """

    LEVEL_COLORS = {
        "debug": Fore.CYAN,
        "info": Fore.GREEN,
        "warning": Fore.YELLOW,
        "error": Fore.RED,
        "critical": Fore.MAGENTA + Style.BRIGHT,
    }
    HIGHLIGHT_KEYS = ("operation", "action", "user_id")
    RESERVED_KEYS = ("timestamp", "logger", "level", "event")

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
        level = str(event_dict.get("level", method_name)).lower()
        color = self.LEVEL_COLORS.get(level, "")

        parts = []
        timestamp = event_dict.get("timestamp")
        if timestamp:
            parts.append(f"{Fore.BLUE}{str(timestamp)[:19]}{Style.RESET_ALL}")
        if event_dict.get("logger"):
            parts.append(f"{Fore.MAGENTA}{event_dict['logger']}{Style.RESET_ALL}")
        parts.append(f"{color}[{level.upper():<8}]{Style.RESET_ALL}")
        parts.append(f"{color}{event_dict.get('event', '')}{Style.RESET_ALL}")

        line = " | ".join(parts)

        highlighted = [
            f"{Style.BRIGHT}{key}={event_dict[key]}{Style.RESET_ALL}"
            for key in self.HIGHLIGHT_KEYS if key in event_dict
        ]
        rest = [
            f"{key}={event_dict[key]}"
            for key in sorted(event_dict)
            if key not in self.RESERVED_KEYS and key not in self.HIGHLIGHT_KEYS
        ]
        if highlighted or rest:
            line += " " + " ".join(highlighted + [f"{Fore.WHITE}{item}{Style.RESET_ALL}" for item in rest])

        return line
