"""
Connection Factory

프로세스마다 새 DB 연결을 생성합니다.

규칙:
- 영속/풀 연결은 사용하지 않음 (DB_PERSISTENT 설정과 무관)
- 연결은 생성한 프로세스(pid)에서만 사용 가능
- 사용 전 생존 확인, 끊긴 연결은 버리고 새로 연결 (lazy reconnect)
"""

import logging
import os
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from database.engine import Dialect, get_dialect
from database.exception import (
    ConnectionOpenError,
    ForeignConnectionError,
)

logger = logging.getLogger(__name__)

# 현재 프로세스 메모리에 존재하는 연결 (fork로 상속된 것 포함)
_tracked: "weakref.WeakSet[Connection]" = weakref.WeakSet()


@dataclass(eq=False)
class Connection:
    """드라이버 연결 + 소유 프로세스 정보"""
    raw: Any
    dialect: Dialect
    owner_pid: int = field(default_factory=os.getpid)
    opened_at: datetime = field(default_factory=datetime.now)

    @property
    def is_open(self) -> bool:
        return self.raw is not None

    @property
    def is_foreign(self) -> bool:
        """다른 프로세스가 연 연결인지"""
        return self.owner_pid != os.getpid()

    def driver(self) -> Any:
        """드라이버 연결 반환 (다른 프로세스 소유면 예외)"""
        if self.is_foreign:
            raise ForeignConnectionError(self.owner_pid, os.getpid())
        return self.raw


def release_inherited() -> int:
    """
    상속된 연결 해제

    격리 워커 진입 직후 호출합니다. 부모 프로세스가 연 연결은 닫지 않고(부모 소켓 보호)
    참조만 끊습니다.

    Returns:
        해제한 연결 수
    """
    released = 0
    for conn in list(_tracked):
        if conn.is_foreign:
            conn.raw = None
            _tracked.discard(conn)
            released += 1
    if released:
        logger.debug(f"Released {released} inherited connection(s)")
    return released


class ConnectionFactory:
    """
    DB 연결 생성기

    사용 예시:
        factory = ConnectionFactory(settings.database)
        conn = await factory.open()
        conn = await factory.ensure(conn)  # 끊겼으면 재연결
        await factory.close(conn)
    """

    def __init__(self, settings):
        """
        Args:
            settings: DatabaseSettings

        Raises:
            UnsupportedEngineError: 지원하지 않는 엔진 (즉시, 재시도 안 함)
        """
        self._settings = settings
        self._dialect = get_dialect(settings.connection)

        if settings.persistent:
            logger.warning("DB_PERSISTENT is enabled but ignored: connections are never persistent")

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    async def open(self) -> Connection:
        """
        새 연결 생성

        Raises:
            ConnectionOpenError: 네트워크/인증 실패 (원인 예외는 __cause__)
        """
        try:
            raw = await self._dialect.connect(self._settings)
        except Exception as e:
            logger.error(f"Failed to create database connection: {e}")
            raise ConnectionOpenError(self._dialect.family.value, str(e)) from e

        conn = Connection(raw=raw, dialect=self._dialect)
        _tracked.add(conn)
        logger.debug(f"Connection opened: {self._dialect.describe(self._settings)}")
        return conn

    async def is_alive(self, conn: Connection | None) -> bool:
        """왕복 쿼리로 생존 확인"""
        if conn is None or not conn.is_open or conn.is_foreign:
            return False
        try:
            await self._dialect.ping(conn.raw)
            return True
        except Exception as e:
            logger.warning(f"Connection validation failed: {e}")
            return False

    async def ensure(self, conn: Connection | None) -> Connection:
        """살아 있으면 그대로, 아니면 버리고 새 연결"""
        if await self.is_alive(conn):
            return conn
        if conn is not None and conn.is_open:
            logger.info("Reconnecting to database...")
            await self.close(conn)
        return await self.open()

    async def close(self, conn: Connection | None) -> None:
        """연결 종료 (다른 프로세스 소유면 참조만 해제)"""
        if conn is None or not conn.is_open:
            return
        raw, conn.raw = conn.raw, None
        _tracked.discard(conn)
        if conn.is_foreign:
            return
        try:
            await self._dialect.close(raw)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
