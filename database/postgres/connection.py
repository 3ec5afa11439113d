"""
PostgreSQL 방언 모듈

asyncpg로 비영속 연결을 생성합니다.
asyncpg는 서버측 파라미터 바인딩을 사용하며 오류는 항상 예외로 보고합니다.
"""

import logging

import asyncpg

from database.engine import Dialect, EngineFamily

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432


class PostgresDialect(Dialect):
    """
    PostgreSQL 구현

    시각 비교는 EXTRACT(EPOCH FROM ...) < EXTRACT(EPOCH FROM NOW()) 로 DB 내부에서 수행
    """

    family = EngineFamily.POSTGRES
    aiosql_driver = 'asyncpg'

    async def connect(self, settings) -> asyncpg.Connection:
        """새로운 PostgreSQL 연결 생성"""
        conn = await asyncpg.connect(
            host=settings.host,
            port=settings.port or DEFAULT_PORT,
            database=settings.database,
            user=settings.username,
            password=settings.password,
            timeout=settings.connect_timeout,
            command_timeout=settings.read_timeout,
        )
        logger.debug(f"New PostgreSQL connection created: {self.describe(settings)}")
        return conn

    async def close(self, raw: asyncpg.Connection) -> None:
        await raw.close()

    async def ping(self, raw: asyncpg.Connection) -> None:
        await raw.fetchval("SELECT 1")
