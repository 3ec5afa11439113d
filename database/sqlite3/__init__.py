"""
SQLite3 방언 패키지

사용 예시:
    from database.engine import get_dialect

    dialect = get_dialect('sqlite')
    raw = await dialect.connect(settings.database)
"""

from database.sqlite3.connection import (
    SQLiteDialect,
    SqliteOptions,
    MEMORY_DATABASE,
)

__all__ = [
    'SQLiteDialect',
    'SqliteOptions',
    'MEMORY_DATABASE',
]
