"""PostgreSQL 방언 패키지"""

from database.postgres.connection import PostgresDialect

__all__ = ['PostgresDialect']
