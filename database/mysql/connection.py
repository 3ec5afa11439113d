"""
MySQL / MariaDB 방언 모듈

asyncmy로 비영속 연결을 생성합니다.
- autocommit: 스케줄 기록과 삭제는 각각 즉시 반영
- charset: 세션 문자셋 (기본 utf8mb4)
- init_command: 서버측 read/write 타임아웃
"""

import logging

import asyncmy

# aiosql에 asyncmy 어댑터 등록 (import 부수효과)
from database import aiosql_adapter  # noqa: F401
from database.engine import Dialect, EngineFamily

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306


class MySQLDialect(Dialect):
    """
    MySQL 구현

    시각 비교는 UNIX_TIMESTAMP(...) < UNIX_TIMESTAMP(NOW()) 로 DB 내부에서 수행
    """

    family = EngineFamily.MYSQL
    aiosql_driver = 'asyncmy'

    async def connect(self, settings) -> asyncmy.Connection:
        """새로운 MySQL 연결 생성"""
        init_command = (
            f"SET SESSION net_read_timeout = {int(settings.read_timeout)}, "
            f"SESSION net_write_timeout = {int(settings.write_timeout)}"
        )
        conn = await asyncmy.connect(
            host=settings.host,
            port=settings.port or DEFAULT_PORT,
            db=settings.database,
            user=settings.username,
            password=settings.password or '',
            charset=settings.charset,
            autocommit=True,
            connect_timeout=settings.connect_timeout,
            init_command=init_command,
        )
        logger.debug(f"New MySQL connection created: {self.describe(settings)}")
        return conn

    async def close(self, raw: asyncmy.Connection) -> None:
        await raw.ensure_closed()

    async def ping(self, raw: asyncmy.Connection) -> None:
        async with raw.cursor() as cursor:
            await cursor.execute("SELECT 1")
            await cursor.fetchone()
