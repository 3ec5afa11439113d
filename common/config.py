"""
데몬 설정 로드

환경변수 스타일 키(DB_CONNECTION, MULTIFLEXI_CYCLE_PAUSE 등)를 pydantic 모델로 검증합니다.

우선순위 (낮음 -> 높음):
    기본값 < config/daemon.yaml < .env < 프로세스 환경변수
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent / "config" / "daemon.yaml"


class DatabaseSettings(BaseModel):
    """스케줄 저장소 접속 설정"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    connection: str = Field(default="mysql", alias="DB_CONNECTION")
    host: str = Field(default="localhost", alias="DB_HOST")
    port: int | None = Field(default=None, alias="DB_PORT")
    database: str | None = Field(default=None, alias="DB_DATABASE")
    username: str | None = Field(default=None, alias="DB_USERNAME")
    password: str | None = Field(default=None, alias="DB_PASSWORD")
    persistent: bool = Field(default=False, alias="DB_PERSISTENT")
    connect_timeout: float = Field(default=10.0, gt=0, alias="DB_CONNECT_TIMEOUT")
    read_timeout: int = Field(default=30, gt=0, alias="DB_READ_TIMEOUT")
    write_timeout: int = Field(default=30, gt=0, alias="DB_WRITE_TIMEOUT")
    charset: str = Field(default="utf8mb4", alias="DB_CHARSET")
    odbc_driver: str = Field(default="ODBC Driver 18 for SQL Server", alias="DB_ODBC_DRIVER")


class DaemonSettings(BaseModel):
    """Dispatch 루프 / 워커 감독자 설정"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    daemonize: bool = Field(default=True, alias="MULTIFLEXI_DAEMONIZE")
    cycle_pause: float = Field(default=10.0, ge=0, alias="MULTIFLEXI_CYCLE_PAUSE")
    max_parallel: int = Field(default=0, alias="MULTIFLEXI_MAX_PARALLEL")  # 0 이하: 무제한
    memory_limit_mb: int = Field(default=0, ge=0, alias="MULTIFLEXI_MEMORY_LIMIT_MB")  # 0: 비활성

    process_isolation: bool = Field(default=True, alias="MULTIFLEXI_PROCESS_ISOLATION")
    start_method: str = Field(default="spawn", alias="MULTIFLEXI_START_METHOD")
    job_runner: str = Field(default="command", alias="MULTIFLEXI_JOB_RUNNER")

    reconnect_attempts: int = Field(default=10, ge=1, alias="MULTIFLEXI_RECONNECT_ATTEMPTS")
    reconnect_delay: float = Field(default=30.0, ge=0, alias="MULTIFLEXI_RECONNECT_DELAY")
    retry_delay: float = Field(default=1.0, ge=0, alias="MULTIFLEXI_RETRY_DELAY")
    retry_jitter: float = Field(default=0.5, ge=0, alias="MULTIFLEXI_RETRY_JITTER")
    slot_poll_interval: float = Field(default=0.1, gt=0, alias="MULTIFLEXI_SLOT_POLL_INTERVAL")
    shutdown_timeout: float = Field(default=30.0, ge=0, alias="MULTIFLEXI_SHUTDOWN_TIMEOUT")

    purge_missing_jobs: bool = Field(default=False, alias="MULTIFLEXI_PURGE_MISSING_JOBS")
    suppress_type_warning: bool = Field(default=False, alias="MULTIFLEXI_SUPPRESS_TYPE_WARNING")

    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "DaemonSettings":
        """평탄한 키/값 매핑에서 설정 생성 (빈 문자열은 미설정으로 취급)"""
        cleaned = {k: v for k, v in values.items() if v is not None and v != ""}
        database = DatabaseSettings.model_validate(cleaned)
        return cls.model_validate({**cleaned, "database": database})

    @property
    def effective_log_level(self) -> str:
        """APP_DEBUG가 켜져 있으면 DEBUG"""
        return "DEBUG" if self.app_debug else self.log_level.upper()


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object in config file: {path}")
    return {str(k): v for k, v in data.items()}


def load_settings(
    config_file: str | Path | None = None,
    env_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> DaemonSettings:
    """
    설정 로드

    Args:
        config_file: YAML 설정 파일 (None이면 config/daemon.yaml이 있을 때만 사용)
        env_file: .env 파일 경로 (없으면 무시)
        environ: 환경변수 매핑 (None이면 os.environ)

    Returns:
        검증된 DaemonSettings

    Raises:
        pydantic.ValidationError: 설정 값이 유효하지 않은 경우
    """
    values: dict[str, Any] = {}

    yaml_path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    if yaml_path.exists():
        values.update(_load_yaml(yaml_path))
        logger.debug(f"Loaded config file: {yaml_path}")
    elif config_file:
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    if env_file and Path(env_file).exists():
        values.update(dotenv_values(env_file))
        logger.debug(f"Loaded env file: {env_file}")

    values.update(os.environ if environ is None else environ)
    return DaemonSettings.from_mapping(values)
