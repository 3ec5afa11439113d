"""
DB 엔진 패밀리와 방언(Dialect)

지원 엔진은 닫힌 열거형(EngineFamily)으로 관리하고,
엔진별 차이(연결, 종료, 생존 확인, aiosql 드라이버, 타임스탬프 바인딩)는 Dialect 구현이 담당합니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosql
from aiosql.queries import Queries

from database.exception import UnsupportedEngineError

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class EngineFamily(str, Enum):
    """지원 엔진 패밀리"""
    MYSQL = "mysql"
    POSTGRES = "postgres"
    SQLITE = "sqlite"
    SQLSRV = "sqlsrv"

    @classmethod
    def parse(cls, name: str) -> "EngineFamily":
        """DB_CONNECTION 값 -> EngineFamily (별칭 허용)"""
        family = _ALIASES.get((name or "").strip().lower())
        if family is None:
            raise UnsupportedEngineError(name)
        return family


_ALIASES = {
    "mysql": EngineFamily.MYSQL,
    "mariadb": EngineFamily.MYSQL,
    "pgsql": EngineFamily.POSTGRES,
    "postgres": EngineFamily.POSTGRES,
    "postgresql": EngineFamily.POSTGRES,
    "sqlite": EngineFamily.SQLITE,
    "sqlite3": EngineFamily.SQLITE,
    "sqlsrv": EngineFamily.SQLSRV,
    "mssql": EngineFamily.SQLSRV,
    "sqlserver": EngineFamily.SQLSRV,
}


class Dialect(ABC):
    """엔진별 기능 인터페이스"""

    family: EngineFamily
    aiosql_driver: str

    @abstractmethod
    async def connect(self, settings) -> Any:
        """드라이버 연결 생성 (비영속, 오류는 예외로 보고)"""
        ...

    @abstractmethod
    async def close(self, raw: Any) -> None:
        """드라이버 연결 종료"""
        ...

    @abstractmethod
    async def ping(self, raw: Any) -> None:
        """왕복 쿼리 (실패 시 예외)"""
        ...

    def timestamp_param(self, when: datetime) -> Any:
        """타임스탬프 바인딩 값 (기본: datetime 그대로)"""
        return when

    def load_queries(self, sql_path: Path) -> Queries:
        """aiosql로 SQL 파일 로드"""
        return aiosql.from_path(str(sql_path), self.aiosql_driver)

    def describe(self, settings) -> str:
        """로그용 접속 대상 설명 (비밀번호 제외)"""
        port = f":{settings.port}" if settings.port else ""
        return f"{self.family.value}://{settings.username or ''}@{settings.host}{port}/{settings.database or ''}"


def get_dialect(family: EngineFamily | str) -> Dialect:
    """
    엔진 패밀리에 해당하는 Dialect 반환

    드라이버 모듈은 해당 엔진이 선택된 경우에만 import 합니다.

    Raises:
        UnsupportedEngineError: 지원하지 않는 엔진
    """
    if not isinstance(family, EngineFamily):
        family = EngineFamily.parse(family)

    if family is EngineFamily.SQLITE:
        from database.sqlite3.connection import SQLiteDialect
        return SQLiteDialect()
    if family is EngineFamily.MYSQL:
        from database.mysql.connection import MySQLDialect
        return MySQLDialect()
    if family is EngineFamily.POSTGRES:
        from database.postgres.connection import PostgresDialect
        return PostgresDialect()
    if family is EngineFamily.SQLSRV:
        from database.sqlsrv.connection import SQLServerDialect
        return SQLServerDialect()
    raise UnsupportedEngineError(str(family))
