"""
SQL Server 방언 모듈

aioodbc(pyodbc)로 비영속 연결을 생성합니다. ODBC 레벨 풀링은 끕니다.
"""

import logging

import aioodbc
import pyodbc

# aiosql에 aioodbc 어댑터 등록 (import 부수효과)
from database import aiosql_adapter  # noqa: F401
from database.engine import Dialect, EngineFamily

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1433

# 연결 재사용 금지: ODBC 드라이버 매니저 풀링 비활성
pyodbc.pooling = False


def build_dsn(settings) -> str:
    """ODBC 연결 문자열 생성"""
    parts = [
        f"DRIVER={{{settings.odbc_driver}}}",
        f"SERVER={settings.host},{settings.port or DEFAULT_PORT}",
        "TrustServerCertificate=yes",
    ]
    if settings.database:
        parts.append(f"DATABASE={settings.database}")
    if settings.username:
        parts.append(f"UID={settings.username}")
    if settings.password:
        parts.append(f"PWD={settings.password}")
    return ';'.join(parts)


class SQLServerDialect(Dialect):
    """
    SQL Server 구현

    시각 비교는 DATEDIFF(second, '1970-01-01', ...) 로 DB 내부에서 수행
    """

    family = EngineFamily.SQLSRV
    aiosql_driver = 'aioodbc'

    async def connect(self, settings) -> aioodbc.Connection:
        """새로운 SQL Server 연결 생성"""
        conn = await aioodbc.connect(
            dsn=build_dsn(settings),
            autocommit=True,
            timeout=int(settings.connect_timeout),
        )
        logger.debug(f"New SQL Server connection created: {self.describe(settings)}")
        return conn

    async def close(self, raw: aioodbc.Connection) -> None:
        await raw.close()

    async def ping(self, raw: aioodbc.Connection) -> None:
        async with raw.cursor() as cursor:
            await cursor.execute("SELECT 1")
            await cursor.fetchone()
