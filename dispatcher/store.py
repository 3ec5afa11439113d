"""
Schedule Store

schedule 테이블에 대한 엔진별 쿼리(aiosql)를 감싸는 저장소입니다.

- due(): 실행 시점이 지난 엔트리 (비교는 DB 엔진 시계로 DB 내부에서 수행)
- add(): runtemplate.last_schedule 기록 후 엔트리 삽입
- remove(): 엔트리 삭제 (멱등)
- check_schema(): 컬럼 구성 진단 (로그만, 스키마 변경 없음)

사용 예시:
    store = await ScheduleStore.connect(ConnectionFactory(settings.database))
    try:
        for entry in await store.due():
            ...
    finally:
        await store.close()
"""

import logging
from datetime import datetime
from pathlib import Path

from aiosql.queries import Queries

from database import Connection, ConnectionFactory, ErrorKind, classify_error
from dispatcher.model.dispatcher import ScheduleEntry

logger = logging.getLogger(__name__)

SQL_DIR = Path(__file__).parent / "sql"

# 구버전 코드가 가정하는 선택 컬럼
OPTIONAL_COLUMNS = ("type",)

# 프로세스 수명 동안 1회만 경고
_warned_columns: set[str] = set()

_queries_cache: dict[str, Queries] = {}


def _load_queries(connections: ConnectionFactory) -> Queries:
    """엔진 패밀리별 schedule 쿼리 로드 (프로세스 내 캐시)"""
    dialect = connections.dialect
    family = dialect.family.value
    if family not in _queries_cache:
        _queries_cache[family] = dialect.load_queries(SQL_DIR / f"schedule_{family}.sql")
    return _queries_cache[family]


def _rowcount(result) -> int:
    """aiosql 드라이버별 영향 행 수 표현 정규화 (asyncpg는 'DELETE 1' 형태)"""
    if isinstance(result, int):
        return result
    if isinstance(result, str) and result.split():
        tail = result.split()[-1]
        return int(tail) if tail.isdigit() else 0
    return 0


class ScheduleStore:
    """
    schedule 테이블 저장소

    연결 하나를 소유합니다. 끊긴 연결은 다음 호출 시 버리고 새로 엽니다.
    """

    def __init__(
        self,
        connections: ConnectionFactory,
        connection: Connection | None = None,
        suppress_type_warning: bool = False,
    ):
        """
        Args:
            connections: 이 저장소 전용 ConnectionFactory
            connection: 이미 열린 연결 (없으면 첫 호출 시 연결)
            suppress_type_warning: 선택 컬럼 누락 경고 비활성
        """
        self._connections = connections
        self._connection = connection
        self._suppress_type_warning = suppress_type_warning
        self._queries = _load_queries(connections)
        self._schema_checked = False

    @classmethod
    async def connect(cls, connections: ConnectionFactory, **kwargs) -> "ScheduleStore":
        """새 연결을 열어 저장소 생성"""
        connection = await connections.open()
        return cls(connections, connection, **kwargs)

    async def _conn(self):
        self._connection = await self._connections.ensure(self._connection)
        return self._connection.driver()

    async def ping(self) -> None:
        """왕복 쿼리 (실패 시 예외)"""
        await self._queries.ping(await self._conn())

    async def due(self) -> list[ScheduleEntry]:
        """
        실행 시점이 지난 엔트리 목록 (after 오름차순, 같은 시각은 id 순)

        Raises:
            Exception: 드라이버 오류 (분류는 호출자가 classify_error로 수행)
        """
        if not self._schema_checked:
            await self.check_schema()

        rows = await self._queries.get_due_entries(await self._conn())
        return [
            ScheduleEntry(id=row["id"], job=row["job"], after=row["after"])
            for row in rows
        ]

    async def add(self, job_ref: int, after: datetime) -> int:
        """
        job을 after 이후 실행하도록 등록

        runtemplate.last_schedule을 먼저 기록하고 엔트리를 삽입합니다.
        두 번째 쓰기가 실패해도 첫 번째 쓰기는 되돌리지 않습니다.

        Returns:
            생성된 엔트리 id
        """
        conn = await self._conn()
        when = self._connections.dialect.timestamp_param(after)

        await self._queries.update_last_schedule(conn, job=job_ref, after=when)
        entry_id = await self._queries.insert_entry(conn, job=job_ref, after=when)

        logger.info(f"Scheduled job {job_ref} after {after} (entry={entry_id})")
        return int(entry_id)

    async def remove(self, entry_id: int) -> bool:
        """
        엔트리 삭제 (멱등)

        Returns:
            실제로 삭제되었는지 여부 (이미 없으면 False)
        """
        result = await self._queries.delete_entry(await self._conn(), id=entry_id)
        deleted = _rowcount(result) > 0
        if not deleted:
            logger.debug(f"Schedule entry {entry_id} already removed")
        return deleted

    async def check_schema(self) -> None:
        """
        schedule 테이블 컬럼 진단

        선택 컬럼이 없으면 프로세스당 1회 경고만 남깁니다.
        인증 계열(PERMANENT) 오류는 연결 자체가 쓸 수 없다는 뜻이므로 다시 발생시킵니다.
        """
        self._schema_checked = True
        try:
            rows = await self._queries.list_schedule_columns(await self._conn())
            columns = {str(row["name"]).lower() for row in rows}
        except Exception as e:
            if classify_error(e) is ErrorKind.PERMANENT:
                raise
            logger.warning(f"Schema verification failed: {e}")
            return

        for column in OPTIONAL_COLUMNS:
            if column in columns or column in _warned_columns:
                continue
            _warned_columns.add(column)
            if not self._suppress_type_warning:
                logger.warning(
                    f'Schedule table has no "{column}" column; code will avoid its usage.'
                )

    async def close(self) -> None:
        """소유한 연결 종료"""
        await self._connections.close(self._connection)
        self._connection = None
