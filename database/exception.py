"""
데이터베이스 관련 예외 및 오류 분류

드라이버가 보고한 오류를 영구(PERMANENT) / 일시(TRANSIENT) / 미분류(UNKNOWN)로 분류합니다.
오류 코드와 메시지 시그니처 문자열은 이 모듈의 테이블에만 존재합니다.
"""

import asyncio
from enum import Enum


class DatabaseError(Exception):
    """Database 기본 예외"""
    pass


class UnsupportedEngineError(DatabaseError):
    """지원하지 않는 DB 엔진 (설정 오류, 재시도 안 함)"""
    def __init__(self, engine: str):
        self.engine = engine
        self.message = f"Unsupported DB_CONNECTION type: {engine}"
        super().__init__(self.message)


class ConnectionOpenError(DatabaseError):
    """연결 생성 실패 (원인 예외는 __cause__)"""
    def __init__(self, engine: str, reason: str):
        self.engine = engine
        self.reason = reason
        self.message = f"Failed to open {engine} connection: {reason}"
        super().__init__(self.message)


class ForeignConnectionError(DatabaseError):
    """다른 프로세스가 연 연결을 사용하려 함"""
    def __init__(self, owner_pid: int, current_pid: int):
        self.owner_pid = owner_pid
        self.current_pid = current_pid
        self.message = (
            f"Connection opened by pid {owner_pid} cannot be used in pid {current_pid}"
        )
        super().__init__(self.message)


class ErrorKind(str, Enum):
    """
    오류 분류 결과

    UNKNOWN 처리:
        워커: 재시도 없이 실패 (엔트리는 due로 남음)
        Dispatcher: AWAITING_STORE로 전환. 재연결 시도 횟수가 제한되어 있으므로
        계속 실패하면 exit 1 (한 번의 미분류 오류로는 데몬을 멈추지 않음)
    """
    PERMANENT = "permanent"  # 인증 실패, DB 없음: 재시도 무의미
    TRANSIENT = "transient"  # 연결 끊김, 연결 수 초과, 락 대기 타임아웃
    UNKNOWN = "unknown"


# MySQL 숫자 코드, SQLSTATE (PostgreSQL / ODBC)
PERMANENT_CODES = frozenset({
    1044,  # access denied for user to database
    1045,  # access denied (bad credentials)
    1049,  # unknown database
    "28000",  # invalid authorization specification
    "28P01",  # invalid password
    "3D000",  # invalid catalog name
    "42000",  # ODBC: cannot open database requested by the login
})

TRANSIENT_CODES = frozenset({
    1040,  # too many connections
    1205,  # lock wait timeout exceeded
    1213,  # deadlock found
    2002,  # can't connect through socket
    2003,  # can't connect to server
    2006,  # server has gone away
    2013,  # lost connection during query
    2014,  # commands out of sync
    2027,  # malformed packet
    "08000", "08001", "08003", "08004", "08006", "08S01",  # connection exception
    "40001",  # serialization failure
    "53300",  # too many connections
    "55P03",  # lock not available
    "57P01",  # admin shutdown
    "HYT00",  # ODBC timeout expired
})

PERMANENT_SIGNATURES = (
    "access denied",
    "authentication",
    "login failed",
    "unknown database",
    "does not exist",
    "cannot open database",
    "unable to open database file",
)

TRANSIENT_SIGNATURES = (
    "server has gone away",
    "lost connection",
    "packets out of order",
    "connection refused",
    "connection reset",
    "connection was closed",
    "connection is closed",
    "server closed the connection",
    "terminating connection",
    "too many connections",
    "too many clients",
    "lock wait timeout",
    "deadlock",
    "database is locked",
    "communication link failure",
    "timeout expired",
)


def _exception_chain(exc: BaseException):
    """__cause__ / __context__ 를 따라 예외 체인 순회"""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def _error_codes(exc: BaseException) -> set:
    """드라이버 오류 코드 추출 (asyncpg sqlstate, MySQL/ODBC args[0])"""
    codes = set()
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate:
        codes.add(str(sqlstate))
    if exc.args:
        first = exc.args[0]
        if isinstance(first, int) and not isinstance(first, bool):
            codes.add(first)
        elif isinstance(first, str) and len(first) == 5:
            codes.add(first)
    return codes


def classify_error(exc: BaseException) -> ErrorKind:
    """
    오류 분류

    영구 시그니처를 먼저 검사하고, 그 다음 일시 시그니처를 검사합니다.

    Args:
        exc: 드라이버 또는 래핑된 예외

    Returns:
        ErrorKind
    """
    chain = list(_exception_chain(exc))

    for err in chain:
        if isinstance(err, UnsupportedEngineError):
            return ErrorKind.PERMANENT
        if _error_codes(err) & PERMANENT_CODES:
            return ErrorKind.PERMANENT
        message = str(err).lower()
        if any(sig in message for sig in PERMANENT_SIGNATURES):
            return ErrorKind.PERMANENT

    for err in chain:
        if isinstance(err, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
            return ErrorKind.TRANSIENT
        if _error_codes(err) & TRANSIENT_CODES:
            return ErrorKind.TRANSIENT
        message = str(err).lower()
        if any(sig in message for sig in TRANSIENT_SIGNATURES):
            return ErrorKind.TRANSIENT

    return ErrorKind.UNKNOWN


def is_retryable(exc: BaseException) -> bool:
    """일시 오류 여부"""
    return classify_error(exc) is ErrorKind.TRANSIENT
