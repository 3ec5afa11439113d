"""
SQLite3 방언 모듈

aiosqlite로 비영속 연결을 생성합니다. 커넥션풀은 사용하지 않습니다.
(워커마다 별도 프로세스이므로 연결을 공유하거나 상속하지 않음)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from database.engine import Dialect, EngineFamily, TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ':memory:'


@dataclass
class SqliteOptions:
    """SQLite 연결 옵션"""
    busy_timeout: int = 5000
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'
    foreign_keys: bool = True


class SQLiteDialect(Dialect):
    """
    SQLite 구현

    - isolation_level=None (autocommit): 각 쓰기는 즉시 반영
    - 시각 비교는 strftime('%s', ...) 로 DB 내부에서 수행
    """

    family = EngineFamily.SQLITE
    aiosql_driver = 'aiosqlite'

    def __init__(self, options: SqliteOptions | None = None):
        self._options = options or SqliteOptions()

    async def connect(self, settings) -> aiosqlite.Connection:
        """새로운 SQLite 연결 생성"""
        path = settings.database or MEMORY_DATABASE
        if path != MEMORY_DATABASE:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(
            path,
            timeout=settings.connect_timeout,
            isolation_level=None,
        )
        conn.row_factory = aiosqlite.Row

        await conn.execute(f"PRAGMA busy_timeout={self._options.busy_timeout}")
        if path != MEMORY_DATABASE:
            await conn.execute(f"PRAGMA journal_mode={self._options.journal_mode}")
        await conn.execute(f"PRAGMA synchronous={self._options.synchronous}")
        await conn.execute(f"PRAGMA foreign_keys={'ON' if self._options.foreign_keys else 'OFF'}")

        logger.debug(f"New SQLite connection created: {path}")
        return conn

    async def close(self, raw: aiosqlite.Connection) -> None:
        await raw.close()

    async def ping(self, raw: aiosqlite.Connection) -> None:
        async with raw.execute("SELECT 1") as cursor:
            await cursor.fetchone()

    def timestamp_param(self, when: datetime) -> str:
        """SQLite는 UTC TEXT로 저장 (strftime('now')는 UTC 기준)"""
        return when.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)

    def describe(self, settings) -> str:
        return f"sqlite://{settings.database or MEMORY_DATABASE}"
