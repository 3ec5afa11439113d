"""
데몬 / 워커 프로세스 로깅 설정

워커는 spawn으로 시작되어 핸들러가 없는 상태이므로 _worker_main에서 다시 호출합니다.
레코드마다 pid와 프로세스 이름(multiflexi-job-<job>)이 붙어 워커 로그를 구분할 수 있습니다.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

# 드라이버 디버그 로그는 WARNING 이상만
QUIET_LOGGERS = ('asyncio', 'aiosqlite', 'asyncmy', 'asyncpg', 'aioodbc')

TEXT_FORMAT = '%(asctime)s - %(process)d/%(processName)s - %(name)s - %(levelname)s - %(message)s'


class ProcessJsonFormatter(jsonlogger.JsonFormatter):
    """JSON 포매터 (pid / 프로세스 이름 포함)"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = self.formatTime(record)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['pid'] = record.process
        log_record['process'] = record.processName


def setup_logging(settings=None) -> None:
    """
    루트 로거 설정

    Args:
        settings: DaemonSettings (None이면 INFO, JSON, stdout). 설정 로드 실패 시에도 로그를 남기기 위함.
    """
    level = settings.effective_log_level if settings else "INFO"
    json_format = settings.log_json if settings else True
    log_file = settings.log_file if settings else None

    if json_format:
        formatter = ProcessJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=getattr(logging, level), handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_banner(logger: logging.Logger, text: str) -> None:
    """시작/종료 배너 로그"""
    line = '=' * max(len(text), 40)
    logger.info(line)
    logger.info(text)
    logger.info(line)
