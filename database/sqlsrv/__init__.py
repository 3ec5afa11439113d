"""SQL Server 방언 패키지"""

from database.sqlsrv.connection import SQLServerDialect, build_dsn

__all__ = ['SQLServerDialect', 'build_dsn']
