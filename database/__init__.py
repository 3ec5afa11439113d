"""
데이터베이스 패키지

사용 예시:
    from database import ConnectionFactory, classify_error, ErrorKind

    factory = ConnectionFactory(settings.database)
    conn = await factory.open()
    try:
        ...
    except Exception as e:
        if classify_error(e) is ErrorKind.TRANSIENT:
            ...
    finally:
        await factory.close(conn)
"""

from database.engine import Dialect, EngineFamily, get_dialect
from database.exception import (
    ConnectionOpenError,
    DatabaseError,
    ErrorKind,
    ForeignConnectionError,
    UnsupportedEngineError,
    classify_error,
    is_retryable,
)
from database.factory import Connection, ConnectionFactory, release_inherited

__all__ = [
    'Connection',
    'ConnectionFactory',
    'release_inherited',
    'Dialect',
    'EngineFamily',
    'get_dialect',
    'DatabaseError',
    'UnsupportedEngineError',
    'ConnectionOpenError',
    'ForeignConnectionError',
    'ErrorKind',
    'classify_error',
    'is_retryable',
]
